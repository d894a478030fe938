"""Shared fixtures: an in-memory HTTP transport standing in for requests.Session."""

import json
import sys
import threading
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agroweather.clients.session import Session


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeHttp:
    """
    Records every call and answers API requests through ``handler``.

    The token endpoint is answered here, issuing ``token-1``, ``token-2``...
    """

    def __init__(self, handler=None, auth_status=200):
        self.handler = handler or (lambda call: FakeResponse(200, {}))
        self.auth_status = auth_status
        self.calls = []
        self.tokens_issued = 0
        self._lock = threading.Lock()

    def request(self, method, url, params=None, json=None, data=None, headers=None, timeout=None):
        call = {
            "method": method,
            "url": url,
            "params": dict(params or {}),
            "json": json,
            "data": data,
            "headers": dict(headers or {}),
            "timeout": timeout,
        }
        with self._lock:
            self.calls.append(call)
            if url.endswith("/oauth/token"):
                if self.auth_status != 200:
                    return FakeResponse(self.auth_status, {"error": "invalid_client"})
                self.tokens_issued += 1
                return FakeResponse(200, {"access_token": f"token-{self.tokens_issued}", "expires_in": 3600})
        return self.handler(call)

    @property
    def api_calls(self):
        return [call for call in self.calls if not call["url"].endswith("/oauth/token")]


def bearer(call):
    return call["headers"].get("Authorization", "").replace("Bearer ", "")


@pytest.fixture
def make_session():
    def factory(handler=None, **kwargs):
        http = FakeHttp(handler, **kwargs)
        return Session("key", "secret", http=http), http

    return factory
