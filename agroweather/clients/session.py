"""Authenticated HTTP session shared by every request of a logical call."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple, Union

import requests

from ..core.config import load_credentials
from .config_loader import load_provider_config
from .request_utils import build_basic_auth, build_request_headers

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.awhere.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
TOKEN_PATH = "oauth/token"


class AuthenticationError(RuntimeError):
    """Raised when the OAuth2 client-credentials exchange fails."""


class Session:
    """
    Holds the API credentials and the current access token.

    The token is shared mutable state: when a request finds it expired, the
    first caller re-authenticates under a lock and every other caller holding
    the same stale token picks up the new one instead of authenticating again.
    A session created from a bare ``token`` (no key/secret) cannot refresh.
    """

    def __init__(
        self,
        key: Optional[str] = None,
        secret: Optional[str] = None,
        token: Optional[str] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[Any] = None,
    ) -> None:
        if token is None and not (key and secret):
            raise AuthenticationError("Provide either a key/secret pair or an access token.")
        self.key = key
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()
        self.refresh_count = 0
        self._token = token
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config_path: Union[str, Path] = "config.json",
        provider: str = "awhere",
        **kwargs: Any,
    ) -> "Session":
        _, provider_cfg = load_provider_config(
            Path(config_path),
            provider,
            exception_cls=AuthenticationError,
            required_keys=("key", "secret"),
        )
        kwargs.setdefault("base_url", provider_cfg.get("baseUrl", DEFAULT_BASE_URL))
        kwargs.setdefault("timeout", float(provider_cfg.get("timeoutSeconds", DEFAULT_TIMEOUT_SECONDS)))
        return cls(str(provider_cfg["key"]), str(provider_cfg["secret"]), **kwargs)

    @classmethod
    def from_credentials_file(cls, path: Union[str, Path], **kwargs: Any) -> "Session":
        """Build a session from a text file holding the key on line one and the secret on line two."""
        key, secret = load_credentials(path)
        return cls(key, secret, **kwargs)

    @property
    def can_refresh(self) -> bool:
        return bool(self.key and self.secret)

    @property
    def token(self) -> str:
        token = self._token
        if token is None:
            with self._lock:
                if self._token is None:
                    self._authenticate_locked()
                token = self._token
        return token

    def authenticate(self) -> str:
        """Exchange the key/secret for a fresh access token."""
        with self._lock:
            return self._authenticate_locked()

    def refresh(self, stale_token: Optional[str]) -> str:
        """
        Replace ``stale_token`` with a fresh token, at most once per expiry.

        If another thread already swapped the token, its value is returned
        without a second authentication call.
        """
        if not self.can_refresh:
            raise AuthenticationError("The access token expired and no key/secret is available to renew it.")
        with self._lock:
            if self._token is not None and self._token != stale_token:
                return self._token
            return self._authenticate_locked()

    def _authenticate_locked(self) -> str:
        if not self.can_refresh:
            raise AuthenticationError("No key/secret configured for authentication.")
        response = self.http.request(
            "POST",
            f"{self.base_url}/{TOKEN_PATH}",
            data="grant_type=client_credentials",
            headers={
                "Authorization": build_basic_auth(self.key, self.secret),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise AuthenticationError("The key/secret combination is incorrect.")
        try:
            token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError("Token endpoint returned an unexpected payload.") from exc
        self._token = token
        self.refresh_count += 1
        logger.info("Obtained new API access token (refresh #%d)", self.refresh_count)
        return token

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        token: Optional[str] = None,
    ) -> Tuple[int, str]:
        """Send one API call and return ``(status_code, raw_body)``."""
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"
        response = self.http.request(
            method,
            url,
            params=dict(params) if params else None,
            json=body,
            headers=build_request_headers(token if token is not None else self.token),
            timeout=self.timeout,
        )
        return response.status_code, response.text

    def close(self) -> None:
        close = getattr(self.http, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
