from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.errors import ValidationError
from beacon.core.settings import settings
from beacon.db.types import as_utc, canonical_json, utcnow
from beacon.db.upsert import dialect_insert
from beacon.models.device import Device
from beacon.models.event import Event
from beacon.models.metric import PERIODS, Metric
from beacon.models.metric_definition import MetricDefinition
from beacon.schemas.common import format_instant
from beacon.schemas.metrics import MetricOut, TimeseriesPoint

"""
Service Metrics (agrégation).

Rôle (fonctionnel) :
- Découpage temporel : bucket_start(instant, period) pour hourly / daily / weekly / monthly.
- record_metric : upsert atomique sur la clé d’agrégation
  (project_id, metric_type, period, period_start, dimensions).
- query_timeseries : un point par bucket de l’intervalle demandé, buckets vides à 0.
- compute_rollups : statistiques journalières / mensuelles à la demande (dau, mau, sessions…).

Politique de combinaison (par type de métrique) :
- SUM     : compteurs (ex : "events") ; value = value + delta. Commutatif : l’ordre des appels
            concurrents ne change pas la valeur finale.
- REPLACE : jauges recalculées (ex : "dau") ; value = delta, dernier écrit gagne.
Les types REPLACE viennent de settings.METRIC_REPLACE_TYPES ; tout autre type est SUM.

Conventions :
- Les semaines commencent le lundi (ISO) ; tous les buckets sont en UTC.
"""

logger = logging.getLogger("beacon.metrics")

EVENTS_METRIC = "events"

# Intervalle de lecture (API) -> période de bucket
INTERVALS: dict[str, str] = {
    "hour": "hourly",
    "day": "daily",
    "week": "weekly",
    "month": "monthly",
}


class CombinePolicy(str, Enum):
    SUM = "sum"
    REPLACE = "replace"


@dataclass(frozen=True)
class MetricPolicies:
    replace_types: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_csv(cls, value: str) -> "MetricPolicies":
        return cls(frozenset(t.strip() for t in (value or "").split(",") if t.strip()))

    def policy_for(self, metric_type: str) -> CombinePolicy:
        return CombinePolicy.REPLACE if metric_type in self.replace_types else CombinePolicy.SUM


DEFAULT_POLICIES = MetricPolicies.from_csv(settings.METRIC_REPLACE_TYPES)

# Les rollups sont des jauges recalculées : toujours REPLACE, quelle que soit la configuration
ROLLUP_TYPES = ("dau", "mau", "new_devices", "sessions", "avg_session_seconds")
ROLLUP_POLICIES = MetricPolicies(frozenset(ROLLUP_TYPES))


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------

def normalize_period(value: str) -> str:
    """Accepte "day" comme "daily" ; lève ValidationError sinon."""
    v = (value or "").strip().lower()
    v = INTERVALS.get(v, v)
    if v not in PERIODS:
        raise ValidationError(
            f"Intervalle invalide : {value!r}",
            details={"allowed": sorted(INTERVALS) + list(PERIODS)},
        )
    return v


def _bucket_start(dt: datetime, period: str) -> datetime:
    if period == "hourly":
        return dt.replace(minute=0, second=0, microsecond=0)
    day = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "daily":
        return day
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    raise ValidationError(f"Période inconnue : {period!r}")


def _next_bucket(start: datetime, period: str) -> datetime:
    if period == "hourly":
        return start + timedelta(hours=1)
    if period == "daily":
        return start + timedelta(days=1)
    if period == "weekly":
        return start + timedelta(weeks=1)
    if period == "monthly":
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)
    raise ValidationError(f"Période inconnue : {period!r}")


def bucket_start(instant: datetime, period: str) -> datetime:
    try:
        return _bucket_start(as_utc(instant), period)
    except (OverflowError, ValueError):
        raise ValidationError("Fenêtre hors limites", details={"period": period}) from None


def next_bucket(start: datetime, period: str) -> datetime:
    """Début du bucket suivant ; ValidationError si l’on sort de la plage datetime (an 9999)."""
    try:
        return _next_bucket(start, period)
    except (OverflowError, ValueError):
        raise ValidationError("Fenêtre hors limites", details={"period": period}) from None


def iter_buckets(start: datetime, end: datetime, period: str, max_points: int) -> list[datetime]:
    """Buckets de bucket_start(start) à bucket_start(end) inclus."""
    if as_utc(end) < as_utc(start):
        raise ValidationError("start_date doit précéder end_date")

    current = bucket_start(start, period)
    last = bucket_start(end, period)
    buckets: list[datetime] = [current]
    while current < last:
        if len(buckets) >= max_points:
            raise ValidationError(
                "Trop de points demandés pour cet intervalle",
                details={"max_points": max_points},
            )
        current = next_bucket(current, period)
        buckets.append(current)
    return buckets


# ---------------------------------------------------------------------------
# Écriture
# ---------------------------------------------------------------------------

async def record_metric(
    db: AsyncSession,
    project_id: uuid.UUID,
    metric_type: str,
    period: str,
    period_start: datetime,
    dimensions: Optional[Mapping[str, Any]],
    delta: float,
    *,
    policies: MetricPolicies = DEFAULT_POLICIES,
    now: Optional[datetime] = None,
) -> Metric:
    """
    Upsert atomique d’un bucket de métrique (une seule instruction SQL).

    Ne commit pas : l’appelant délimite la transaction (ingestion, rollups, tests).
    """
    period = normalize_period(period)
    start = bucket_start(period_start, period)
    dims = dict(dimensions or {})
    dims_key = canonical_json(dims)
    stamp = as_utc(now) if now else utcnow()
    policy = policies.policy_for(metric_type)

    stmt = dialect_insert(db, Metric).values(
        id=uuid.uuid4(),
        project_id=project_id,
        metric_type=metric_type,
        period=period,
        period_start=start,
        dimensions=dims,
        dimensions_key=dims_key,
        value=float(delta),
        created_at=stamp,
        updated_at=stamp,
    )

    if policy is CombinePolicy.SUM:
        new_value = Metric.__table__.c.value + stmt.excluded.value
    else:
        new_value = stmt.excluded.value

    stmt = stmt.on_conflict_do_update(
        index_elements=["project_id", "metric_type", "period", "period_start", "dimensions_key"],
        set_={"value": new_value, "updated_at": stmt.excluded.updated_at},
    )
    await db.execute(stmt)

    metric = (
        await db.execute(
            select(Metric)
            .where(
                Metric.project_id == project_id,
                Metric.metric_type == metric_type,
                Metric.period == period,
                Metric.period_start == start,
                Metric.dimensions_key == dims_key,
            )
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    return metric


# ---------------------------------------------------------------------------
# Lecture
# ---------------------------------------------------------------------------

def _matches(dimensions: Mapping[str, Any] | None, wanted: Mapping[str, Any] | None) -> bool:
    if not wanted:
        return True
    dims = dimensions or {}
    return all(dims.get(k) == v for k, v in wanted.items())


def fold_buckets(
    rows: Iterable[Metric],
    buckets: list[datetime],
    period: str,
    policy: CombinePolicy,
) -> list[TimeseriesPoint]:
    """
    Replie des lignes de métrique dans les buckets demandés.

    - SUM     : somme des lignes du bucket.
    - REPLACE : ligne la plus récente du bucket (period_start puis updated_at).
    - Bucket sans ligne : 0.
    """
    sums: dict[datetime, float] = {}
    latest: dict[datetime, tuple[datetime, datetime, float]] = {}

    for row in rows:
        start = as_utc(row.period_start)
        b = bucket_start(start, period)
        if policy is CombinePolicy.SUM:
            sums[b] = sums.get(b, 0.0) + float(row.value)
        else:
            rank = (start, as_utc(row.updated_at) or start, float(row.value))
            if b not in latest or rank[:2] > latest[b][:2]:
                latest[b] = rank

    points: list[TimeseriesPoint] = []
    for b in buckets:
        if policy is CombinePolicy.SUM:
            value = sums.get(b, 0.0)
        else:
            value = latest[b][2] if b in latest else 0.0
        points.append(TimeseriesPoint(timestamp=format_instant(b), value=value))
    return points


async def query_timeseries(
    db: AsyncSession,
    definition: MetricDefinition,
    start: datetime,
    end: datetime,
    interval: str = "day",
    *,
    policies: MetricPolicies = DEFAULT_POLICIES,
    max_points: Optional[int] = None,
) -> list[TimeseriesPoint]:
    period = normalize_period(interval)
    buckets = iter_buckets(start, end, period, max_points or settings.TIMESERIES_MAX_POINTS)
    range_end = next_bucket(buckets[-1], period)

    stmt = select(Metric).where(
        Metric.project_id == definition.project_id,
        Metric.metric_type == definition.metric_type,
        Metric.period_start >= buckets[0],
        Metric.period_start < range_end,
    )
    if definition.period:
        stmt = stmt.where(Metric.period == definition.period)

    rows = [
        m for m in (await db.execute(stmt)).scalars().all()
        if _matches(m.dimensions, definition.dimensions)
    ]

    logger.debug(
        "timeseries",
        extra={"project_id": str(definition.project_id), "metric_type": definition.metric_type},
    )
    return fold_buckets(rows, buckets, period, policies.policy_for(definition.metric_type))


def metric_out(m: Metric) -> MetricOut:
    return MetricOut(
        id=str(m.id),
        metric_type=m.metric_type,
        period=m.period,
        period_start=format_instant(as_utc(m.period_start)),
        dimensions=m.dimensions or {},
        value=float(m.value),
    )


async def list_metrics(
    db: AsyncSession,
    project_id: uuid.UUID,
    *,
    metric_type: Optional[str] = None,
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 500,
) -> list[MetricOut]:
    stmt = select(Metric).where(Metric.project_id == project_id)
    if metric_type:
        stmt = stmt.where(Metric.metric_type == metric_type)
    if period:
        stmt = stmt.where(Metric.period == normalize_period(period))
    if start:
        stmt = stmt.where(Metric.period_start >= as_utc(start))
    if end:
        stmt = stmt.where(Metric.period_start <= as_utc(end))

    stmt = stmt.order_by(Metric.period_start, Metric.metric_type, Metric.dimensions_key).limit(limit)
    return [metric_out(m) for m in (await db.execute(stmt)).scalars().all()]


# ---------------------------------------------------------------------------
# Rollups (à la demande)
# ---------------------------------------------------------------------------

def _duration(parameters: Any) -> Optional[float]:
    if not isinstance(parameters, dict):
        return None
    value = parameters.get("duration_seconds")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


async def compute_rollups(
    db: AsyncSession,
    project_id: uuid.UUID,
    day: date,
    *,
    now: Optional[datetime] = None,
) -> dict[str, float]:
    """
    Recalcule les statistiques d’un jour (UTC) et les enregistre.

    - dau                 : devices distincts ayant émis un événement dans la journée
    - mau                 : devices distincts sur le mois calendaire du jour
    - new_devices         : devices dont first_seen tombe dans la journée
    - sessions            : nombre d’événements session_start
    - avg_session_seconds : moyenne des duration_seconds des session_end

    Ne commit pas.
    """
    day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    day_end = next_bucket(day_start, "daily")
    month_start = bucket_start(day_start, "monthly")
    month_end = next_bucket(month_start, "monthly")

    in_day = (
        Event.project_id == project_id,
        Event.timestamp >= day_start,
        Event.timestamp < day_end,
    )

    dau = (await db.execute(select(func.count(func.distinct(Event.device_id))).where(*in_day))).scalar_one()

    mau = (
        await db.execute(
            select(func.count(func.distinct(Event.device_id))).where(
                Event.project_id == project_id,
                Event.timestamp >= month_start,
                Event.timestamp < month_end,
            )
        )
    ).scalar_one()

    new_devices = (
        await db.execute(
            select(func.count(Device.id)).where(
                Device.project_id == project_id,
                Device.first_seen >= day_start,
                Device.first_seen < day_end,
            )
        )
    ).scalar_one()

    sessions = (
        await db.execute(select(func.count(Event.id)).where(*in_day, Event.event_type == "session_start"))
    ).scalar_one()

    durations = [
        d
        for d in (
            _duration(p)
            for p in (
                await db.execute(select(Event.parameters).where(*in_day, Event.event_type == "session_end"))
            ).scalars()
        )
        if d is not None
    ]
    avg_session = sum(durations) / len(durations) if durations else 0.0

    values: dict[str, float] = {
        "dau": float(dau),
        "mau": float(mau),
        "new_devices": float(new_devices),
        "sessions": float(sessions),
        "avg_session_seconds": float(avg_session),
    }
    periods = {"mau": ("monthly", month_start)}

    for metric_type, value in values.items():
        period, start = periods.get(metric_type, ("daily", day_start))
        await record_metric(
            db,
            project_id,
            metric_type,
            period,
            start,
            None,
            value,
            policies=ROLLUP_POLICIES,
            now=now,
        )

    logger.info("rollups computed", extra={"project_id": str(project_id), "metric_type": "rollup"})
    return values
