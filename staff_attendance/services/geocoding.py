from __future__ import annotations

import json
import logging
from typing import Any
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from staff_attendance.settings import get_settings

logger = logging.getLogger("staff_attendance.geocoding")


class ReverseGeocodeError(Exception):
    pass


def _get_json(*, url: str, timeout_seconds: int, user_agent: str) -> dict[str, Any]:
    request = urllib_request.Request(
        url=url,
        method="GET",
        headers={"Accept": "application/json", "User-Agent": user_agent},
    )
    with urllib_request.urlopen(request, timeout=max(1, timeout_seconds)) as response:
        status_code = int(getattr(response, "status", 200) or 200)
        body = response.read().decode("utf-8", errors="ignore")
    if not 200 <= status_code < 300:
        raise ReverseGeocodeError(f"reverse geocode returned HTTP {status_code}")
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ReverseGeocodeError("reverse geocode returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ReverseGeocodeError("reverse geocode returned unexpected payload")
    return payload


def reverse_geocode(lat: float, lon: float) -> str | None:
    """Human readable address for a coordinate, or None when lookups are disabled.

    Network and decoding failures propagate; callers treat the lookup as best-effort.
    """
    settings = get_settings()
    if not settings.reverse_geocode_enabled:
        return None

    query = urllib_parse.urlencode({"lat": f"{lat:.6f}", "lon": f"{lon:.6f}", "format": "json"})
    payload = _get_json(
        url=f"{settings.reverse_geocode_url}?{query}",
        timeout_seconds=settings.reverse_geocode_timeout_seconds,
        user_agent=settings.reverse_geocode_user_agent,
    )
    address = str(payload.get("display_name") or "").strip()
    if not address:
        logger.info("reverse_geocode_empty", extra={"lat": lat, "lon": lon})
        return None
    return address
