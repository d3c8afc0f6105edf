from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.geo import GeoLookup
from beacon.schemas.events import EventCreate, EventOut, InstallIn, SessionEndIn, SessionStartIn
from beacon.services.events import create_event

"""
Service Telemetry (raccourcis SDK).

Rôle (fonctionnel) :
- Traduit les appels typés des SDK (début / fin de session, installation) en événements standards,
  ingérés par le même pipeline que POST /events (device, compteur "events").

Types produits :
- session_start : parameters.session_id si fourni
- session_end   : parameters.duration_seconds (+ session_id) ; alimente avg_session_seconds
- install       : première installation de l’app
"""

SESSION_START = "session_start"
SESSION_END = "session_end"
INSTALL = "install"


def _to_event(event_type: str, payload: SessionStartIn, extra: dict[str, Any] | None = None) -> EventCreate:
    parameters: dict[str, Any] = dict(payload.parameters or {})
    if payload.session_id:
        parameters["session_id"] = payload.session_id
    parameters.update(extra or {})

    return EventCreate(
        device_id=payload.device_id,
        platform=payload.platform,
        os_version=payload.os_version,
        app_version=payload.app_version,
        ip_address=payload.ip_address,
        event_type=event_type,
        parameters=parameters or None,
        timestamp=payload.timestamp,
    )


async def session_start(
    db: AsyncSession, project_id: uuid.UUID, payload: SessionStartIn, now: datetime, geo: GeoLookup
) -> EventOut:
    return await create_event(db, project_id, _to_event(SESSION_START, payload), now, geo)


async def session_end(
    db: AsyncSession, project_id: uuid.UUID, payload: SessionEndIn, now: datetime, geo: GeoLookup
) -> EventOut:
    event = _to_event(SESSION_END, payload, {"duration_seconds": payload.duration_seconds})
    return await create_event(db, project_id, event, now, geo)


async def install(
    db: AsyncSession, project_id: uuid.UUID, payload: InstallIn, now: datetime, geo: GeoLookup
) -> EventOut:
    return await create_event(db, project_id, _to_event(INSTALL, payload), now, geo)
