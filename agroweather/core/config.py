from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union


class ConfigError(RuntimeError):
    """Raised when the project configuration cannot be loaded or parsed."""


# (name, latitude, longitude, field_id); coordinates are None for field-only entries.
LocationItem = Tuple[str, Optional[float], Optional[float], Optional[str]]


def load_project_config(path: Union[str, Path]) -> dict:
    """Return the parsed configuration dictionary from ``config.json``."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        return json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:  # pragma: no cover - invalid user config
        raise ConfigError(f"Config file {config_path} contains invalid JSON.") from exc


def load_locations(config: Mapping[str, object]) -> Tuple[List[LocationItem], Dict[str, Dict[str, object]]]:
    """Extract the configured locations list and any per-location extras."""
    raw_locations = config.get("locations") if isinstance(config, Mapping) else None
    if not isinstance(raw_locations, Mapping):
        raise ConfigError("The configuration must define a 'locations' mapping.")

    location_items: List[LocationItem] = []
    extras: Dict[str, Dict[str, object]] = {}

    for name, entry in raw_locations.items():
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Location '{name}' must be an object with 'lat'/'lon' or 'fieldId'.")
        field_id = entry.get("fieldId")
        if field_id is not None:
            lat = lon = None
        else:
            try:
                lat = float(entry["lat"])
                lon = float(entry["lon"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid coordinates for location '{name}'.") from exc

        location_items.append((name, lat, lon, str(field_id) if field_id is not None else None))
        extras[name] = {
            key: value for key, value in entry.items() if key not in {"lat", "lon", "fieldId"}
        }

    if not location_items:
        raise ConfigError("Define at least one location under 'locations' in config.json.")

    return location_items, extras


def provider_setting(config: Mapping[str, object], provider: str, key: str, default=None):
    """Read a provider-specific setting from the loaded config."""
    providers = config.get("providers") if isinstance(config, Mapping) else None
    if not isinstance(providers, Mapping):
        return default
    provider_cfg = providers.get(provider)
    if not isinstance(provider_cfg, Mapping):
        return default
    return provider_cfg.get(key, default)


def ensure_provider_keys(
    provider_cfg: Mapping[str, object],
    *,
    required_keys: Iterable[str],
    exception_cls: type[Exception],
) -> None:
    """Ensure a provider config contains the required keys."""
    for key in required_keys:
        if key not in provider_cfg:
            raise exception_cls(f"Provider configuration is missing required key '{key}'.")


def load_credentials(path: Union[str, Path]) -> Tuple[str, str]:
    """
    Read an API key and secret from a plain text file.

    The first line holds the key, the second the secret.
    """
    credentials_path = Path(path)
    if not credentials_path.exists():
        raise ConfigError(f"Credentials file not found: {credentials_path}")
    lines = [line.strip() for line in credentials_path.read_text(encoding="utf-8").splitlines()]
    if len(lines) < 2 or not lines[0] or not lines[1]:
        raise ConfigError(f"Credentials file {credentials_path} must hold the key and secret on two lines.")
    return lines[0], lines[1]
