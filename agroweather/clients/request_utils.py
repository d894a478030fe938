from __future__ import annotations

import base64
import uuid
from typing import Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple, Union

USER_AGENT = "agroweather/0.1 (+python-requests)"


def build_request_headers(
    token: Optional[str] = None,
    base: Optional[Mapping[str, str]] = None,
) -> MutableMapping[str, str]:
    """
    Return the headers sent with every API call.

    Args:
        token: Bearer token to authorise the call, if any.
        base: Optional mapping of headers to seed the final set (values here win over defaults).
    """
    headers: MutableMapping[str, str] = dict(base or {})

    headers["User-Agent"] = headers.get("User-Agent") or USER_AGENT
    headers["Accept"] = headers.get("Accept") or "application/json"
    headers.setdefault("Content-Type", "application/json")
    headers.setdefault("Accept-Encoding", "gzip, deflate")
    headers["X-Request-Id"] = str(uuid.uuid4())

    if token:
        headers["Authorization"] = f"Bearer {token}"

    return headers


def build_basic_auth(key: str, secret: str) -> str:
    encoded = base64.b64encode(f"{key}:{secret}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def format_query_list(values: Optional[Iterable[object]]) -> Optional[str]:
    """Join list-valued query parameters the way the API expects (comma separated)."""
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    cleaned = [str(value).strip() for value in values if value is not None and str(value).strip()]
    return ",".join(cleaned) if cleaned else None


def normalise_location(location: Union[str, Sequence[float], Mapping[str, float]]) -> Tuple[float, float]:
    if isinstance(location, str):
        if not location.strip():
            raise ValueError("Location string cannot be empty.")
        parts = [part.strip() for part in location.split(",")]
        if len(parts) != 2:
            raise ValueError("Provide location as 'latitude,longitude'.")
        lat, lon = map(float, parts)
        return lat, lon

    if isinstance(location, (tuple, list)):
        if len(location) != 2:
            raise ValueError("Expecting (latitude, longitude).")
        lat, lon = location
        return float(lat), float(lon)

    if isinstance(location, dict):
        try:
            lat = float(location["lat"])
            lon = float(location["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("Location dict needs numeric 'lat' and 'lon' keys.") from exc
        return lat, lon

    raise TypeError("Location must be a string, (lat, lon) pair, or {'lat': .., 'lon': ..} dictionary.")
