from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.errors import ValidationError
from beacon.core.geo import GeoLookup
from beacon.db.transaction import retry_on_conflict
from beacon.db.types import as_utc
from beacon.models.device import Device
from beacon.models.event import Event
from beacon.schemas.common import PageMeta, format_instant
from beacon.schemas.events import EventCreate, EventListResponse, EventOut
from beacon.services.devices import DeviceAttributes, upsert_device
from beacon.services.metrics import EVENTS_METRIC, bucket_start, record_metric

"""
Service Events (ingestion + lecture).

Rôle (fonctionnel) :
- Valide les payloads SDK (EventCreate) et convertit les erreurs Pydantic en ValidationError.
- Persiste un événement : upsert du device, insertion de l’événement (received_at = now),
  incrément du compteur horaire "events" (dimension event_type), le tout dans UNE transaction.
- Batch : politique atomique.
  - Tous les éléments sont validés avant la moindre écriture ; le premier élément invalide
    rejette le batch complet (details.index = position de l’élément).
  - Les écritures partagent une transaction : un échec de persistance ne laisse aucune ligne.
- Lecture : liste filtrée / paginée, détail par id (la visibilité est décidée par la policy).

Notes :
- timestamp est l’instant client, stocké tel quel (dérive d’horloge tolérée, pas comparé à now).
"""

logger = logging.getLogger("beacon.events")


@dataclass(frozen=True)
class EventFilters:
    event_type: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


def _errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def validate_event_payload(raw: Any, index: Optional[int] = None) -> EventCreate:
    if isinstance(raw, EventCreate):
        return raw

    details: dict[str, Any] = {} if index is None else {"index": index}

    if not isinstance(raw, dict):
        details["errors"] = [{"loc": [], "msg": "objet JSON attendu", "type": "dict_type"}]
        raise ValidationError("Événement invalide", details=details)

    try:
        return EventCreate.model_validate(raw)
    except PydanticValidationError as exc:
        details["errors"] = _errors(exc)
        message = "Événement invalide" if index is None else f"Événement invalide à l’index {index}"
        raise ValidationError(message, details=details) from None


def event_out(event: Event, natural_device_id: str) -> EventOut:
    return EventOut(
        id=str(event.id),
        project_id=str(event.project_id),
        device_id=natural_device_id,
        event_type=event.event_type,
        event_name=event.event_name,
        parameters=event.parameters,
        timestamp=format_instant(as_utc(event.timestamp)),
        received_at=format_instant(as_utc(event.received_at)),
    )


async def _store(
    db: AsyncSession,
    project_id: uuid.UUID,
    payload: EventCreate,
    now: datetime,
    geo: GeoLookup,
) -> tuple[Event, str]:
    device = await upsert_device(
        db,
        project_id,
        DeviceAttributes(
            device_id=payload.device_id,
            platform=payload.platform,
            os_version=payload.os_version,
            app_version=payload.app_version,
            ip_address=payload.ip_address,
        ),
        now,
        geo,
    )

    event = Event(
        id=uuid.uuid4(),
        project_id=project_id,
        device_id=device.id,
        event_type=payload.event_type,
        event_name=payload.event_name,
        parameters=payload.parameters,
        timestamp=as_utc(payload.timestamp),
        received_at=as_utc(now),
    )
    db.add(event)
    await db.flush()
    return event, device.device_id


async def _count(db: AsyncSession, project_id: uuid.UUID, payloads: Sequence[EventCreate], now: datetime) -> None:
    """Compteur horaire "events" par event_type (un upsert par bucket / type)."""
    counts = Counter((bucket_start(p.timestamp, "hourly"), p.event_type) for p in payloads)
    for (start, event_type), n in counts.items():
        await record_metric(
            db,
            project_id,
            EVENTS_METRIC,
            "hourly",
            start,
            {"event_type": event_type},
            n,
            now=now,
        )


async def create_event(
    db: AsyncSession,
    project_id: uuid.UUID,
    payload: Any,
    now: datetime,
    geo: GeoLookup,
) -> EventOut:
    event_in = validate_event_payload(payload)

    async def work() -> EventOut:
        event, natural_id = await _store(db, project_id, event_in, now, geo)
        await _count(db, project_id, [event_in], now)
        return event_out(event, natural_id)

    out = await retry_on_conflict(db, work)

    logger.info(
        "event ingested",
        extra={"project_id": str(project_id), "device_id": event_in.device_id, "event_count": 1},
    )
    return out


async def create_batch_events(
    db: AsyncSession,
    project_id: uuid.UUID,
    payloads: Any,
    now: datetime,
    geo: GeoLookup,
    *,
    max_events: int = 1000,
) -> list[EventOut]:
    if not isinstance(payloads, list):
        raise ValidationError("Champ 'events' : liste attendue")
    if not payloads:
        raise ValidationError("Batch vide")
    if len(payloads) > max_events:
        raise ValidationError(
            f"Batch trop volumineux ({len(payloads)} > {max_events})",
            details={"max_events": max_events},
        )

    # Validation complète AVANT toute écriture
    events_in = [validate_event_payload(raw, index=i) for i, raw in enumerate(payloads)]

    async def work() -> list[EventOut]:
        stored = [await _store(db, project_id, e, now, geo) for e in events_in]
        await _count(db, project_id, events_in, now)
        return [event_out(ev, natural_id) for ev, natural_id in stored]

    out = await retry_on_conflict(db, work)

    logger.info(
        "batch ingested",
        extra={"project_id": str(project_id), "event_count": len(out)},
    )
    return out


async def list_events(
    db: AsyncSession,
    project_id: uuid.UUID,
    filters: EventFilters,
    *,
    page: int = 1,
    limit: int = 50,
) -> EventListResponse:
    conditions = [Event.project_id == project_id]
    if filters.event_type:
        conditions.append(Event.event_type == filters.event_type)
    if filters.start:
        conditions.append(Event.timestamp >= as_utc(filters.start))
    if filters.end:
        conditions.append(Event.timestamp <= as_utc(filters.end))

    total = (await db.execute(select(func.count(Event.id)).where(*conditions))).scalar_one()

    stmt = (
        select(Event, Device.device_id)
        .join(Device, Device.id == Event.device_id)
        .where(*conditions)
        .order_by(Event.timestamp.desc(), Event.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()

    return EventListResponse(
        data=[event_out(ev, natural_id) for ev, natural_id in rows],
        meta=PageMeta.build(page, limit, total),
    )


async def get_event(db: AsyncSession, event_id: uuid.UUID) -> Optional[tuple[Event, str]]:
    """Événement + clé naturelle du device, ou None. Aucune décision de visibilité ici."""
    row = (
        await db.execute(
            select(Event, Device.device_id)
            .join(Device, Device.id == Event.device_id)
            .where(Event.id == event_id)
        )
    ).first()
    if row is None:
        return None
    return row[0], row[1]
