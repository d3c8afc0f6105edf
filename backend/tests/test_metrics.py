import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from beacon.core.errors import ValidationError
from beacon.core.geo import PrefixGeoLookup
from beacon.db.session import AsyncSessionLocal
from beacon.db.transaction import atomic
from beacon.models.metric import Metric
from beacon.models.metric_definition import MetricDefinition
from beacon.services.events import create_event
from beacon.services.metrics import (
    CombinePolicy,
    MetricPolicies,
    bucket_start,
    compute_rollups,
    iter_buckets,
    next_bucket,
    normalize_period,
    query_timeseries,
    record_metric,
)

UTC = timezone.utc
DAY1 = datetime(2026, 3, 2, tzinfo=UTC)
DAY2 = DAY1 + timedelta(days=1)
DAY3 = DAY1 + timedelta(days=2)


def at(*args):
    return datetime(*args, tzinfo=UTC)


# --- Buckets (purs) ---

@pytest.mark.parametrize(
    "period, expected",
    [
        ("hourly", at(2026, 3, 4, 15)),
        ("daily", at(2026, 3, 4)),
        ("weekly", at(2026, 3, 2)),
        ("monthly", at(2026, 3, 1)),
    ],
)
def test_bucket_start(period, expected):
    assert bucket_start(at(2026, 3, 4, 15, 42, 7), period) == expected


def test_bucket_start_converts_to_utc():
    paris = timezone(timedelta(hours=1))
    assert bucket_start(datetime(2026, 3, 4, 0, 30, tzinfo=paris), "daily") == at(2026, 3, 3)


def test_normalize_period():
    assert normalize_period("day") == "daily"
    assert normalize_period("Hourly") == "hourly"
    with pytest.raises(ValidationError):
        normalize_period("fortnight")


def test_iter_buckets_crosses_year_boundary():
    buckets = iter_buckets(at(2025, 11, 20), at(2026, 1, 5), "monthly", max_points=10)
    assert buckets == [at(2025, 11, 1), at(2025, 12, 1), at(2026, 1, 1)]


def test_iter_buckets_rejects_bad_windows():
    with pytest.raises(ValidationError):
        iter_buckets(DAY2, DAY1, "daily", max_points=10)
    with pytest.raises(ValidationError):
        iter_buckets(DAY1, DAY1 + timedelta(days=30), "hourly", max_points=100)


@pytest.mark.parametrize(
    "start, end, period",
    [
        (at(9999, 11, 1), at(9999, 12, 31, 23), "monthly"),
        (at(9999, 12, 31), at(9999, 12, 31, 12), "daily"),
        (at(9999, 12, 31, 23), at(9999, 12, 31, 23, 30), "hourly"),
        (at(9999, 12, 27), at(9999, 12, 31), "weekly"),
    ],
)
def test_last_bucket_of_the_calendar_is_a_validation_error(start, end, period):
    buckets = iter_buckets(start, end, period, max_points=2000)
    with pytest.raises(ValidationError):
        next_bucket(buckets[-1], period)


def test_policies_from_csv():
    policies = MetricPolicies.from_csv(" dau, mau ,,")
    assert policies.policy_for("dau") is CombinePolicy.REPLACE
    assert policies.policy_for("events") is CombinePolicy.SUM


# --- Upserts ---

@pytest.mark.anyio
async def test_sum_accumulates_into_one_row(db, project):
    async with atomic(db):
        for delta in (1, 2, 3.5):
            await record_metric(db, project.id, "clicks", "hourly", at(2026, 3, 2, 10, 5), {"b": 1, "a": 2}, delta)
        # même dimensions, ordre des clés différent
        metric = await record_metric(db, project.id, "clicks", "hourly", at(2026, 3, 2, 10, 59), {"a": 2, "b": 1}, 1)

    assert metric.value == 7.5
    assert len((await db.execute(select(Metric))).scalars().all()) == 1


@pytest.mark.anyio
async def test_distinct_dimensions_are_distinct_rows(db, project):
    async with atomic(db):
        await record_metric(db, project.id, "clicks", "hourly", DAY1, {"button": "buy"}, 1)
        await record_metric(db, project.id, "clicks", "hourly", DAY1, {"button": "share"}, 1)
        await record_metric(db, project.id, "clicks", "hourly", DAY1, None, 1)

    assert len((await db.execute(select(Metric))).scalars().all()) == 3


@pytest.mark.anyio
async def test_concurrent_increments_commute(project):
    async def increment(delta):
        async with AsyncSessionLocal() as session:
            async with atomic(session):
                await record_metric(session, project.id, "clicks", "hourly", DAY1, {"button": "buy"}, delta)

    await asyncio.gather(*(increment(d) for d in range(1, 11)))

    async with AsyncSessionLocal() as session:
        metric = (await session.execute(select(Metric))).scalar_one()
    assert metric.value == sum(range(1, 11))


@pytest.mark.anyio
async def test_replace_keeps_last_written_value(db, project):
    async with atomic(db):
        await record_metric(db, project.id, "dau", "daily", DAY1, None, 4)
        metric = await record_metric(db, project.id, "dau", "daily", DAY1, None, 7)

    assert metric.value == 7


# --- Séries temporelles ---

def definition(project, metric_type="events", period="hourly", dimensions=None):
    return MetricDefinition(
        project_id=project.id,
        name=f"{metric_type}-{period}",
        metric_type=metric_type,
        period=period,
        dimensions=dimensions,
    )


@pytest.mark.anyio
async def test_timeseries_fills_empty_buckets_with_zero(db, project):
    async with atomic(db):
        await record_metric(db, project.id, "events", "hourly", DAY2 + timedelta(hours=10), {"event_type": "click"}, 3)
        await record_metric(db, project.id, "events", "hourly", DAY2 + timedelta(hours=15), {"event_type": "view"}, 2)

    points = await query_timeseries(db, definition(project), DAY1, DAY3, "day")

    assert [p.timestamp for p in points] == [
        "2026-03-02T00:00:00.000000Z",
        "2026-03-03T00:00:00.000000Z",
        "2026-03-04T00:00:00.000000Z",
    ]
    assert [p.value for p in points] == [0, 5, 0]


@pytest.mark.anyio
async def test_timeseries_applies_dimension_filter(db, project):
    async with atomic(db):
        await record_metric(db, project.id, "events", "hourly", DAY2, {"event_type": "click"}, 3)
        await record_metric(db, project.id, "events", "hourly", DAY2, {"event_type": "view"}, 2)

    points = await query_timeseries(
        db, definition(project, dimensions={"event_type": "view"}), DAY2, DAY2, "day"
    )
    assert [p.value for p in points] == [2]


@pytest.mark.anyio
async def test_timeseries_replace_metric_takes_latest_row_of_bucket(db, project):
    async with atomic(db):
        await record_metric(db, project.id, "dau", "daily", DAY1, None, 4)
        await record_metric(db, project.id, "dau", "daily", DAY2, None, 7)
        await record_metric(db, project.id, "clicks", "daily", DAY1, None, 4)
        await record_metric(db, project.id, "clicks", "daily", DAY2, None, 7)

    dau = await query_timeseries(db, definition(project, "dau", "daily"), DAY1, DAY2, "week")
    clicks = await query_timeseries(db, definition(project, "clicks", "daily"), DAY1, DAY2, "week")

    assert [p.value for p in dau] == [7]
    assert [p.value for p in clicks] == [11]


@pytest.mark.anyio
async def test_timeseries_rejects_too_many_points(db, project):
    with pytest.raises(ValidationError):
        await query_timeseries(db, definition(project), DAY1, DAY3, "hour", max_points=24)


@pytest.mark.anyio
async def test_timeseries_in_the_last_month_of_the_calendar_is_rejected(db, project):
    with pytest.raises(ValidationError):
        await query_timeseries(
            db, definition(project, period="monthly"), at(9999, 12, 1), at(9999, 12, 31), "month"
        )


# --- Rollups ---

def sdk_event(device_id, event_type, timestamp, parameters=None):
    return {
        "device_id": device_id,
        "platform": "android",
        "event_type": event_type,
        "timestamp": timestamp,
        "parameters": parameters,
    }


@pytest.mark.anyio
async def test_rollups(db, project):
    geo = PrefixGeoLookup()
    noon = DAY2 + timedelta(hours=12)

    # d3 : vu la veille uniquement (compte dans mau, pas dans dau ni new_devices)
    await create_event(db, project.id, sdk_event("d3", "app_open", "2026-03-02T08:00:00Z"), DAY1 + timedelta(hours=9), geo)
    await create_event(db, project.id, sdk_event("d1", "session_start", "2026-03-03T09:00:00Z"), noon, geo)
    await create_event(
        db, project.id, sdk_event("d1", "session_end", "2026-03-03T09:30:00Z", {"duration_seconds": 30}), noon, geo
    )
    await create_event(
        db, project.id, sdk_event("d2", "session_end", "2026-03-03T10:00:00Z", {"duration_seconds": 90}), noon, geo
    )

    async with atomic(db):
        values = await compute_rollups(db, project.id, date(2026, 3, 3), now=noon)

    assert values == {
        "dau": 2.0,
        "mau": 3.0,
        "new_devices": 2.0,
        "sessions": 1.0,
        "avg_session_seconds": 60.0,
    }

    # Recalcul : REPLACE, pas de double comptage
    async with atomic(db):
        await compute_rollups(db, project.id, date(2026, 3, 3), now=noon)

    rows = {
        m.metric_type: (m.period, m.value)
        for m in (await db.execute(select(Metric).where(Metric.metric_type != "events"))).scalars()
    }
    assert rows == {
        "dau": ("daily", 2.0),
        "mau": ("monthly", 3.0),
        "new_devices": ("daily", 2.0),
        "sessions": ("daily", 1.0),
        "avg_session_seconds": ("daily", 60.0),
    }
