"""
Response classification and the per-chunk retry loop.

Every API call ends in one of four outcomes:

- ``Success``: the payload is usable.
- ``CredentialExpired``: the session token must be renewed and the same
  request sent again.
- ``PageTooLarge``: the server rejected the page size; the caller re-plans
  the remaining range with the smaller size.
- ``HardError``: anything else outside the success statuses; never retried.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.dates import DateRange, plan_chunks
from .session import Session

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({200, 201, 204})
EXPIRED_MARKER = "API Access Expired"

_LIMIT_MENTION = re.compile(r"\blimit\b", re.IGNORECASE)
_TOO_LARGE = re.compile(r"too large|exceed|greater than|maximum", re.IGNORECASE)
_SUGGESTED_LIMIT = re.compile(
    r"(?:maximum|max|at most|up to|no more than|less than or equal to)\D{0,40}?(\d+)",
    re.IGNORECASE,
)


class ApiError(RuntimeError):
    """Raised when the API responds with a non-success status or an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CredentialExpiredError(ApiError):
    """Raised when a caller-supplied token expires; it cannot be renewed on their behalf."""


@dataclass(frozen=True)
class Success:
    payload: Any


@dataclass(frozen=True)
class CredentialExpired:
    pass


@dataclass(frozen=True)
class PageTooLarge:
    limit: Optional[int]


@dataclass(frozen=True)
class HardError:
    status_code: int
    message: str

    def to_exception(self) -> ApiError:
        return ApiError(f"API error {self.status_code}: {self.message}", status_code=self.status_code)


ApiOutcome = Union[Success, CredentialExpired, PageTooLarge, HardError]


@dataclass
class RequestSpec:
    """One API call expressed as data; query parameters are serialised by the HTTP client."""

    method: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Any] = None


def _parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _error_message(payload: Any, text: str) -> str:
    if isinstance(payload, dict):
        parts = [
            str(payload[key])
            for key in ("statusName", "simpleMessage", "detailedMessage")
            if payload.get(key)
        ]
        if payload.get("errorId"):
            parts.append(f"ErrorID: {payload['errorId']}")
        if parts:
            return "\n".join(parts)
    return (text or "").strip()[:500]


def _suggested_limit(message: str, current_limit: Optional[int]) -> Optional[int]:
    candidates = [int(value) for value in _SUGGESTED_LIMIT.findall(message)]
    candidates = [value for value in candidates if value > 0]
    if current_limit is not None:
        candidates = [value for value in candidates if value < current_limit]
    if candidates:
        return min(candidates)
    if current_limit is not None and current_limit > 1:
        return current_limit // 2
    return None


def classify_response(status_code: int, text: str, current_limit: Optional[int] = None) -> ApiOutcome:
    """
    Map a raw response onto an ``ApiOutcome``.

    The expiry and page-size signals are read from the body before the status
    check, since the server reports both with a client-error status.
    """
    text = text or ""
    if EXPIRED_MARKER in text:
        return CredentialExpired()

    payload = _parse_json(text)
    message = _error_message(payload, text)
    if status_code not in SUCCESS_STATUSES or (isinstance(payload, dict) and "statusCode" in payload):
        if _LIMIT_MENTION.search(message) and _TOO_LARGE.search(message):
            return PageTooLarge(_suggested_limit(message, current_limit))

    if status_code not in SUCCESS_STATUSES:
        return HardError(status_code, message)

    if status_code == 204 or not text.strip():
        return Success({})
    if payload is None:
        return HardError(status_code, "The API returned a non-JSON response.")
    return Success(payload)


class RequestRetryDriver:
    """
    Sends one logical request until it yields a final outcome.

    Expired session tokens are renewed through the shared ``Session`` and the
    same request is sent again. A token passed in explicitly belongs to the
    caller, so its expiry raises ``CredentialExpiredError`` instead.
    """

    def __init__(self, session: Session, token: Optional[str] = None) -> None:
        self.session = session
        self.explicit_token = token

    def fetch(
        self,
        chunk: Optional[DateRange],
        build_request: Callable[[Optional[DateRange]], RequestSpec],
    ) -> ApiOutcome:
        spec = build_request(chunk)
        current_limit = spec.params.get("limit")
        if current_limit is None and chunk is not None:
            current_limit = len(chunk)

        while True:
            token = self.explicit_token if self.explicit_token is not None else self.session.token
            logger.debug("%s %s params=%s", spec.method, spec.path, spec.params)
            status_code, text = self.session.request(spec.method, spec.path, spec.params, spec.body, token=token)
            outcome = classify_response(status_code, text, current_limit=current_limit)

            if isinstance(outcome, CredentialExpired):
                if self.explicit_token is not None or not self.session.can_refresh:
                    raise CredentialExpiredError(
                        "The supplied access token has expired; re-authenticate and retry the call.",
                        status_code=status_code,
                    )
                logger.info("Access token expired during %s; re-authenticating", spec.path)
                self.session.refresh(token)
                continue

            return outcome


def fetch_paged(
    driver: RequestRetryDriver,
    date_range: DateRange,
    page_size: int,
    build_request: Callable[[Optional[DateRange]], RequestSpec],
) -> List[Any]:
    """
    Fetch ``date_range`` chunk by chunk and return the payloads in order.

    A ``PageTooLarge`` outcome shrinks the page size and re-plans from the
    chunk that was rejected; chunks already fetched are kept.
    """
    payloads: List[Any] = []
    position = date_range.start

    while position <= date_range.end:
        for chunk in plan_chunks(DateRange(position, date_range.end), page_size):
            outcome = driver.fetch(chunk, build_request)

            if isinstance(outcome, PageTooLarge):
                new_size = outcome.limit
                if new_size is None or new_size >= page_size:
                    new_size = page_size // 2
                if new_size < 1:
                    raise ApiError("The API rejected a single-day page as too large.")
                logger.warning("Page size %d rejected; re-planning from %s with %d days", page_size, chunk.start, new_size)
                page_size = new_size
                break

            if isinstance(outcome, HardError):
                raise outcome.to_exception()

            payloads.append(outcome.payload)
            position = chunk.end + dt.timedelta(days=1)

    return payloads
