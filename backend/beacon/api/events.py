from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import (
    authorize_project,
    get_geo,
    get_now,
    parse_bound,
    require_project_key,
    require_user,
)
from beacon.core.errors import NotFoundError
from beacon.core.geo import GeoLookup
from beacon.core.settings import settings
from beacon.db.session import get_db
from beacon.schemas.events import BatchResponse, EventListResponse, EventOut
from beacon.services import events as event_service
from beacon.services.identity import ProjectKeyIdentity, UserIdentity
from beacon.services.policy import Action

"""
API Events.

Rôle (fonctionnel) :
- Ingestion (SDK, clé API) : POST /events, POST /events/batch.
- Lecture (opérateurs) : GET /events (filtré, paginé), GET /events/{id}.

Notes :
- Les corps d’ingestion sont reçus bruts puis validés par le service : une erreur désigne
  l’élément fautif (details.index en batch) et renvoie 400.
- GET /events/{id} : un événement d’un projet invisible pour l’appelant répond 404, jamais 403.
"""

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=201)
async def ingest_event(
    payload: Dict[str, Any] = Body(...),
    identity: ProjectKeyIdentity = Depends(require_project_key),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    geo: GeoLookup = Depends(get_geo),
):
    await authorize_project(db, identity, Action.INGEST, identity.project_id)
    return await event_service.create_event(db, identity.project_id, payload, now, geo)


@router.post("/batch", response_model=BatchResponse, status_code=201)
async def ingest_batch(
    body: Dict[str, Any] = Body(...),
    identity: ProjectKeyIdentity = Depends(require_project_key),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    geo: GeoLookup = Depends(get_geo),
):
    await authorize_project(db, identity, Action.INGEST, identity.project_id)
    events = await event_service.create_batch_events(
        db,
        identity.project_id,
        body.get("events"),
        now,
        geo,
        max_events=settings.BATCH_MAX_EVENTS,
    )
    return BatchResponse(accepted=len(events), events=events)


@router.get("", response_model=EventListResponse)
async def list_events(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    event_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    await authorize_project(db, identity, Action.READ, project_id)
    filters = event_service.EventFilters(
        event_type=event_type,
        start=parse_bound(start_date, "start_date"),
        end=parse_bound(end_date, "end_date"),
    )
    return await event_service.list_events(db, project_id, filters, page=page, limit=limit)


@router.get("/{event_id}", response_model=EventOut)
async def get_event(
    event_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    found = await event_service.get_event(db, event_id)
    if found is None:
        raise NotFoundError("Événement introuvable")

    event, natural_device_id = found
    await authorize_project(
        db, identity, Action.READ, event.project_id, not_found_message="Événement introuvable"
    )
    return event_service.event_out(event, natural_device_id)
