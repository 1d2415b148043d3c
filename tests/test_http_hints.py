import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from types import SimpleNamespace

import pytest

from retrykit.exceptions import APIError, RateLimitError, ServiceUnavailableError
from retrykit.http_hints import extract_retry_after_ms


class Headers:
    """Case-insensitive header container with only a ``get`` accessor."""

    def __init__(self, values):
        self._values = {k.lower(): v for k, v in values.items()}

    def get(self, key):
        return self._values.get(key.lower())


class ExplodingHeaders:
    def get(self, key):
        raise RuntimeError("closed")


class HTTPStatusError(Exception):
    def __init__(self, status_code, headers=None):
        super().__init__(f"status {status_code}")
        self.response = SimpleNamespace(status_code=status_code, headers=headers or {})


def http_date(delta_seconds):
    return format_datetime(datetime.now(timezone.utc) + timedelta(seconds=delta_seconds), usegmt=True)


def test_explicit_field_wins():
    error = APIError("x", retry_after_ms=250, headers={"Retry-After": "9"})
    assert extract_retry_after_ms(error) == 250


def test_explicit_field_accepts_numeric_string():
    error = SimpleNamespace(retry_after_ms="125")
    assert extract_retry_after_ms(error) == 125


def test_retry_after_seconds_case_insensitive():
    error = APIError("x", headers={"retry-after": "5"})
    assert extract_retry_after_ms(error) == 5000


def test_negative_retry_after_is_clamped():
    error = APIError("x", headers={"Retry-After": "-3"})
    assert extract_retry_after_ms(error) == 0


def test_retry_after_from_response_header_lookup():
    error = HTTPStatusError(500, Headers({"Retry-After": "2"}))
    assert extract_retry_after_ms(error) == 2000


def test_retry_after_http_date():
    error = APIError("x", headers={"Retry-After": http_date(30)})
    hint = extract_retry_after_ms(error)
    assert hint is not None
    assert 27_000 < hint <= 30_000


def test_past_http_date_falls_back_to_status():
    stale = {"Retry-After": http_date(-60)}
    assert extract_retry_after_ms(APIError("x", headers=stale)) is None
    assert extract_retry_after_ms(RateLimitError(headers=stale)) == 1000


def test_unparseable_retry_after_is_ignored():
    error = APIError("x", status=500, headers={"Retry-After": "soon"})
    assert extract_retry_after_ms(error) is None


@pytest.mark.parametrize("value", ["1_0", "0x10", "Infinity", "nan", "1e400", ""])
def test_non_decimal_retry_after_is_ignored(value):
    error = APIError("x", status=500, headers={"Retry-After": value})
    assert extract_retry_after_ms(error) is None


def test_decimal_retry_after_forms():
    assert extract_retry_after_ms(APIError("x", headers={"Retry-After": " 1.5 "})) == 1500
    assert extract_retry_after_ms(APIError("x", headers={"Retry-After": "+2"})) == 2000
    assert extract_retry_after_ms(APIError("x", headers={"Retry-After": ".5"})) == 500


@pytest.mark.parametrize(
    "header", ["x-ratelimit-reset", "X-Rate-Limit-Reset", "rate-limit-reset"]
)
def test_rate_limit_reset_epoch_seconds(header):
    error = APIError("x", headers={header: str(int(time.time()) + 20)})
    hint = extract_retry_after_ms(error)
    assert hint is not None
    assert 18_000 < hint <= 20_000


def test_rate_limit_reset_epoch_milliseconds():
    error = APIError("x", headers={"x-ratelimit-reset": (time.time() + 10) * 1000})
    hint = extract_retry_after_ms(error)
    assert hint is not None
    assert 8_000 < hint <= 10_000


def test_past_rate_limit_reset_yields_nothing():
    error = APIError("x", headers={"x-ratelimit-reset": str(int(time.time()) - 5)})
    assert extract_retry_after_ms(error) is None


def test_retry_after_takes_precedence_over_reset():
    error = APIError(
        "x",
        headers={"x-ratelimit-reset": str(int(time.time()) + 100), "Retry-After": "1"},
    )
    assert extract_retry_after_ms(error) == 1000


@pytest.mark.parametrize("error", [RateLimitError(), ServiceUnavailableError(), HTTPStatusError(429)])
def test_status_without_headers_defaults_to_one_second(error):
    assert extract_retry_after_ms(error) == 1000


def test_other_status_has_no_hint():
    assert extract_retry_after_ms(HTTPStatusError(500)) is None
    assert extract_retry_after_ms(APIError("x", status=404)) is None


def test_hint_from_cause_response():
    try:
        try:
            raise HTTPStatusError(502, {"Retry-After": "3"})
        except HTTPStatusError as exc:
            raise RuntimeError("wrapped") from exc
    except RuntimeError as wrapped:
        assert extract_retry_after_ms(wrapped) == 3000


def test_status_from_cause_response():
    outer = RuntimeError("wrapped")
    outer.__cause__ = HTTPStatusError(503)
    assert extract_retry_after_ms(outer) == 1000


def test_throwing_header_accessor_falls_through_to_status():
    error = SimpleNamespace(status=429, headers=ExplodingHeaders())
    assert extract_retry_after_ms(error) == 1000


@pytest.mark.parametrize("value", [None, "boom", 42, ValueError("plain")])
def test_values_without_hints(value):
    assert extract_retry_after_ms(value) is None
