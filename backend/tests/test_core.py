import json
import logging
from datetime import datetime, timezone

import pytest

from beacon.core.errors import RateLimitedError, error_payload
from beacon.core.logging import JsonFormatter, RequestIdFilter
from beacon.core.rate_limit import InMemoryRateLimiter
from beacon.core.request_id import ensure_request_id, get_request_id, set_request_id
from beacon.core.settings import DEFAULT_JWT_SECRET, Settings
from beacon.schemas.common import PageMeta, format_instant, parse_iso_datetime


def test_rate_limiter_fixed_window():
    limiter = InMemoryRateLimiter(window_seconds=60)

    limiter.hit("key:bk_1", "POST /api/v1/events", limit=2, now=1000.0)
    limiter.hit("key:bk_1", "POST /api/v1/events", limit=2, now=1001.0)
    with pytest.raises(RateLimitedError) as excinfo:
        limiter.hit("key:bk_1", "POST /api/v1/events", limit=2, now=1002.0)
    assert excinfo.value.details == {"limit_rpm": 2}

    # autre émetteur : compteur séparé
    limiter.hit("key:bk_2", "POST /api/v1/events", limit=2, now=1002.0)
    # nouvelle fenêtre
    limiter.hit("key:bk_1", "POST /api/v1/events", limit=2, now=1060.0)


def test_rate_limiter_forgets_expired_senders():
    limiter = InMemoryRateLimiter(window_seconds=60)

    for i in range(10_000):
        limiter.hit(f"key:forged-{i}", "POST /api/v1/events", limit=5, now=1000.0)
    assert len(limiter._windows) == 10_000

    limiter.hit("key:bk_1", "POST /api/v1/events", limit=5, now=1060.0)
    assert list(limiter._windows) == [("key:bk_1", "POST /api/v1/events")]


def test_rate_limiter_scope():
    assert InMemoryRateLimiter.applies_to("/api/v1/events/batch")
    assert InMemoryRateLimiter.applies_to("/api/v1/telemetry/install")
    assert not InMemoryRateLimiter.applies_to("/api/v1/projects")


def test_prod_refuses_default_secret():
    with pytest.raises(RuntimeError):
        Settings(ENV="prod", JWT_SECRET=DEFAULT_JWT_SECRET).validate_for_runtime()

    Settings(ENV="prod", JWT_SECRET="a-real-secret").validate_for_runtime()
    Settings(ENV="dev", JWT_SECRET=DEFAULT_JWT_SECRET).validate_for_runtime()


def test_json_formatter_keeps_whitelisted_extras():
    set_request_id("rid-1")
    try:
        record = logging.LogRecord("beacon.events", logging.INFO, __file__, 1, "batch ingested", None, None)
        record.event_count = 3
        record.password = "never-logged"
        RequestIdFilter().filter(record)

        line = json.loads(JsonFormatter().format(record))
    finally:
        set_request_id(None)

    assert line["request_id"] == "rid-1"
    assert line["event_count"] == 3
    assert line["msg"] == "batch ingested"
    assert "password" not in line


def test_request_id_is_reused_or_generated():
    assert ensure_request_id("  abc  ") == "abc"
    assert get_request_id() == "abc"
    assert len(ensure_request_id("x" * 500)) == 128
    assert ensure_request_id(None)
    set_request_id(None)


def test_error_payload_shape():
    payload = error_payload(code="NOT_FOUND", message="Projet introuvable", status=404, request_id="r")
    assert set(payload["error"]) == {"code", "message", "status", "request_id", "timestamp"}

    with_details = error_payload(code="X", message="m", status=400, request_id="r", details={"index": 2})
    assert with_details["error"]["details"] == {"index": 2}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-12-21T18:48:00Z", datetime(2025, 12, 21, 18, 48, tzinfo=timezone.utc)),
        ("2025-12-21T18:48:00.4600072Z", datetime(2025, 12, 21, 18, 48, 0, 460007, tzinfo=timezone.utc)),
        ("2025-12-21T20:48:00+02:00", datetime(2025, 12, 21, 18, 48, tzinfo=timezone.utc)),
        ("2025-12-21T18:48:00", datetime(2025, 12, 21, 18, 48, tzinfo=timezone.utc)),
    ],
)
def test_parse_iso_datetime(raw, expected):
    assert parse_iso_datetime(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "yesterday",
        "2025-12-21T18:48:00.abcZ",
        # hors de la plage datetime une fois ramenés en UTC
        "0001-01-01T00:00:00+01:00",
        "9999-12-31T23:00:00-05:00",
    ],
)
def test_parse_iso_datetime_rejects(raw):
    with pytest.raises(ValueError):
        parse_iso_datetime(raw)


def test_format_instant_is_fixed_width_utc():
    assert format_instant(datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "2026-01-02T03:04:05.000000Z"
    assert format_instant(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05.000000Z"


def test_page_meta():
    assert PageMeta.build(2, 10, 21).pages == 3
    assert PageMeta.build(1, 10, 0).pages == 0
