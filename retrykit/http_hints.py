"""Best-effort extraction of retry timing hints from HTTP shaped errors.

Recognized shapes, checked in this order:

- ``error.retry_after_ms``: explicit delay in milliseconds
- headers on ``error.response.headers``, ``error.headers`` or
  ``error.__cause__.response.headers``; either a ``Mapping`` (keys compared
  case-insensitively) or an object with a ``get`` accessor such as
  ``httpx.Headers`` or ``aiohttp``'s ``CIMultiDictProxy``
- status on ``error.response.status_code``/``status``, ``error.status``/
  ``status_code`` or the same fields under ``error.__cause__.response``
"""

from __future__ import annotations

import math
import re
import time
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional, Union

import structlog

from .interfaces import HeaderLookup

logger = structlog.get_logger(__name__)

HeaderContainer = Union[Mapping[str, Any], HeaderLookup]

RETRY_AFTER_HEADER = "Retry-After"
RATE_LIMIT_RESET_HEADERS = ("x-ratelimit-reset", "x-rate-limit-reset", "rate-limit-reset")
HINTED_STATUS_CODES = frozenset({429, 503})
DEFAULT_STATUS_HINT_MS = 1000.0
# Reset values above this are already epoch milliseconds.
EPOCH_MS_THRESHOLD = 10_000_000_000
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _to_finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not _DECIMAL_RE.fullmatch(text):
            return None
        number = float(text)
    else:
        return None
    return number if math.isfinite(number) else None


def _get_header(headers: HeaderContainer, key: str) -> Optional[str]:
    wanted = key.lower()
    if isinstance(headers, Mapping):
        for name in headers:
            if isinstance(name, str) and name.lower() == wanted:
                value = headers[name]
                if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                    return str(value)
                return None
        return None
    if isinstance(headers, HeaderLookup):
        value = headers.get(key)
        return None if value is None else str(value)
    return None


def _response_of(error: Any) -> Any:
    return getattr(error, "response", None)


def _pick_headers(error: Any) -> Optional[HeaderContainer]:
    response = _response_of(error)
    for candidate in (
        getattr(response, "headers", None),
        getattr(error, "headers", None),
        getattr(_response_of(error.__cause__), "headers", None)
        if isinstance(error, BaseException)
        else None,
    ):
        if isinstance(candidate, (Mapping, HeaderLookup)):
            return candidate
    return None


def _status_of(obj: Any) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(obj, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _pick_status(error: Any) -> Optional[int]:
    cause_response = _response_of(error.__cause__) if isinstance(error, BaseException) else None
    for source in (_response_of(error), error, cause_response):
        if source is None:
            continue
        status = _status_of(source)
        if status is not None:
            return status
    return None


def _retry_after_from_headers(headers: HeaderContainer) -> Optional[float]:
    retry_after = _get_header(headers, RETRY_AFTER_HEADER)
    if retry_after is not None:
        seconds = _to_finite_number(retry_after)
        if seconds is not None:
            return max(0.0, seconds * 1000.0)
        try:
            when = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError, IndexError):
            when = None
        if when is not None:
            if when.tzinfo is None:
                when = when.replace(tzinfo=timezone.utc)
            ms = when.timestamp() * 1000.0 - time.time() * 1000.0
            if ms > 0:
                return ms

    reset = None
    for name in RATE_LIMIT_RESET_HEADERS:
        reset = _get_header(headers, name)
        if reset is not None:
            break
    timestamp = _to_finite_number(reset)
    if timestamp is not None:
        epoch_ms = timestamp if timestamp > EPOCH_MS_THRESHOLD else timestamp * 1000.0
        ms = epoch_ms - time.time() * 1000.0
        if ms > 0:
            return ms
    return None


def extract_retry_after_ms(error: Any) -> Optional[float]:
    """Return the minimum delay in ms suggested by ``error``, if any."""
    if error is None:
        return None

    direct = _to_finite_number(getattr(error, "retry_after_ms", None))
    if direct is not None:
        return direct

    try:
        headers = _pick_headers(error)
        if headers is not None:
            hinted = _retry_after_from_headers(headers)
            if hinted is not None:
                return hinted
    except Exception as exc:  # header accessors of foreign clients
        logger.debug("retry_hint_header_unreadable", error=str(exc))

    if _pick_status(error) in HINTED_STATUS_CODES:
        return DEFAULT_STATUS_HINT_MS
    return None
