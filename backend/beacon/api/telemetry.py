from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import authorize_project, get_geo, get_now, require_project_key
from beacon.core.geo import GeoLookup
from beacon.db.session import get_db
from beacon.schemas.events import EventOut, InstallIn, SessionEndIn, SessionStartIn
from beacon.services import telemetry
from beacon.services.identity import ProjectKeyIdentity
from beacon.services.policy import Action

"""
API Telemetry (raccourcis SDK).

Rôle (fonctionnel) :
- Début / fin de session et installation, ingérés comme des événements standards.
- Même authentification que POST /events (clé API du projet).
"""

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


@router.post("/session/start", response_model=EventOut, status_code=201)
async def session_start(
    payload: SessionStartIn,
    identity: ProjectKeyIdentity = Depends(require_project_key),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    geo: GeoLookup = Depends(get_geo),
):
    await authorize_project(db, identity, Action.INGEST, identity.project_id)
    return await telemetry.session_start(db, identity.project_id, payload, now, geo)


@router.post("/session/end", response_model=EventOut, status_code=201)
async def session_end(
    payload: SessionEndIn,
    identity: ProjectKeyIdentity = Depends(require_project_key),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    geo: GeoLookup = Depends(get_geo),
):
    await authorize_project(db, identity, Action.INGEST, identity.project_id)
    return await telemetry.session_end(db, identity.project_id, payload, now, geo)


@router.post("/install", response_model=EventOut, status_code=201)
async def install(
    payload: InstallIn,
    identity: ProjectKeyIdentity = Depends(require_project_key),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    geo: GeoLookup = Depends(get_geo),
):
    await authorize_project(db, identity, Action.INGEST, identity.project_id)
    return await telemetry.install(db, identity.project_id, payload, now, geo)
