"""Config, credentials and runtime loading."""

import json

import pytest

from agroweather.clients.config_loader import load_provider_config
from agroweather.clients.session import AuthenticationError, Session
from agroweather.core.config import ConfigError, load_credentials, load_locations, provider_setting
from agroweather.core.runtime import QueryRuntime


def write_config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


CONFIG = {
    "providers": {"awhere": {"key": "k", "secret": "s", "workers": 3}},
    "locations": {
        "boulder": {"lat": 40.0, "lon": -105.3, "crop": "wheat"},
        "north": {"fieldId": "field1"},
    },
}


def test_locations_support_coordinates_and_fields():
    items, extras = load_locations(CONFIG)

    assert items == [("boulder", 40.0, -105.3, None), ("north", None, None, "field1")]
    assert extras == {"boulder": {"crop": "wheat"}, "north": {}}


def test_bad_locations_rejected():
    with pytest.raises(ConfigError):
        load_locations({})
    with pytest.raises(ConfigError):
        load_locations({"locations": {"x": {"lat": "north"}}})
    with pytest.raises(ConfigError):
        load_locations({"locations": {}})


def test_provider_config_lookup(tmp_path):
    path = write_config(tmp_path, CONFIG)

    _, provider_cfg = load_provider_config(path, "awhere", exception_cls=ConfigError, required_keys=("key",))

    assert provider_cfg["secret"] == "s"
    assert provider_setting(CONFIG, "awhere", "workers") == 3
    assert provider_setting(CONFIG, "other", "workers", 2) == 2
    assert load_provider_config(tmp_path / "nope.json", "awhere", exception_cls=ConfigError, missing_ok=True) == ({}, {})
    with pytest.raises(ConfigError):
        load_provider_config(path, "other", exception_cls=ConfigError)
    with pytest.raises(ConfigError):
        load_provider_config(path, "awhere", exception_cls=ConfigError, required_keys=("baseUrl",))


def test_session_from_config(tmp_path):
    path = write_config(tmp_path, CONFIG)

    session = Session.from_config(path)

    assert (session.key, session.secret) == ("k", "s")
    assert session.can_refresh
    with pytest.raises(AuthenticationError):
        Session.from_config(write_config(tmp_path, {"providers": {"awhere": {"key": "k"}}}))


def test_credentials_file(tmp_path):
    path = tmp_path / "credentials.txt"
    path.write_text("my-key\nmy-secret\n", encoding="utf-8")

    assert load_credentials(path) == ("my-key", "my-secret")

    path.write_text("only-key\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_credentials(path)


def test_runtime_dates_and_locations(tmp_path):
    runtime = QueryRuntime(write_config(tmp_path, CONFIG))

    runtime.update_dates("2024-01-01", "2024-01-31")
    runtime.reload_locations(limit=1)

    assert len(runtime.date_range) == 31
    assert [name for name, *_ in runtime.location_items] == ["boulder"]
    assert runtime.setting("workers") == 3
    with pytest.raises(ValueError):
        runtime.update_dates("2024-02-01", "2024-01-01")


def test_required_provider_keys():
    from agroweather.core.config import ensure_provider_keys

    ensure_provider_keys(CONFIG["providers"]["awhere"], required_keys=("key", "secret"), exception_cls=ConfigError)
    with pytest.raises(ConfigError, match="baseUrl"):
        ensure_provider_keys(CONFIG["providers"]["awhere"], required_keys=("baseUrl",), exception_cls=ConfigError)


def test_session_from_credentials_file(tmp_path):
    path = tmp_path / "credentials.txt"
    path.write_text("my-key\nmy-secret\n", encoding="utf-8")

    session = Session.from_credentials_file(path, base_url="https://example.test")

    assert (session.key, session.secret) == ("my-key", "my-secret")
    assert session.base_url == "https://example.test"
    with pytest.raises(ConfigError):
        Session.from_credentials_file(tmp_path / "missing.txt")
