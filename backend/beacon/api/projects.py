from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import authorize_project, get_now, get_token_settings, parse_bound, require_user
from beacon.core.credentials import TokenSettings, issue_project_key_token
from beacon.core.errors import NotFoundError
from beacon.core.settings import settings
from beacon.db.session import get_db
from beacon.db.transaction import atomic
from beacon.schemas.events import DeviceListResponse
from beacon.schemas.metrics import MetricOut, RollupResponse
from beacon.schemas.projects import (
    ApiKeyOut,
    ProjectCreate,
    ProjectOut,
    ProjectTokenOut,
    ProjectUpdate,
    ProjectWithRoleOut,
)
from beacon.services import projects as project_service
from beacon.services.devices import list_devices
from beacon.services.identity import UserIdentity
from beacon.services.metrics import compute_rollups, list_metrics
from beacon.services.policy import Action

"""
API Projects.

Rôle (fonctionnel) :
- CRUD des projets (tenants) pour les opérateurs humains.
- Clé API : lecture (member), rotation (admin), émission d’un token scope api_key (admin).
- Lectures analytiques du projet : devices, lignes de métriques, rollups à la demande.

Contrôle d’accès :
- Chaque route appelle authorize_project(...) avec son action ; un projet invisible pour
  l’appelant répond 404 (même réponse qu’un projet inexistant).
"""

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectOut, status_code=201)
async def create_project(
    payload: ProjectCreate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.create_project(db, identity.user_id, payload.name)
    return ProjectOut.model_validate(project)


@router.get("", response_model=list[ProjectWithRoleOut])
async def list_projects(
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await project_service.list_projects(db, identity.user_id)
    return [
        ProjectWithRoleOut(**ProjectOut.model_validate(p).model_dump(), role=role)
        for p, role in rows
    ]


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.READ, project_id)
    project = await project_service.get_project(db, project_id)
    if project is None:
        raise NotFoundError("Projet introuvable")
    return ProjectOut.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.UPDATE, project_id)
    return ProjectOut.model_validate(await project_service.update_project(db, project_id, payload))


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.DELETE_PROJECT, project_id)
    await project_service.delete_project(db, project_id)
    return Response(status_code=204)


# --- Clé API ---

@router.get("/{project_id}/api-key", response_model=ApiKeyOut)
async def get_api_key(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    # Lecture du secret : rôle member minimum (même seuil que CREATE)
    await authorize_project(db, identity, Action.CREATE, project_id)
    project = await project_service.get_project(db, project_id)
    return ApiKeyOut(project_id=project.id, api_key=project.api_key)


@router.post("/{project_id}/api-key/regenerate", response_model=ApiKeyOut)
async def regenerate_api_key(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.UPDATE, project_id)
    project = await project_service.regenerate_api_key(db, project_id)
    return ApiKeyOut(project_id=project.id, api_key=project.api_key)


@router.post("/{project_id}/token", response_model=ProjectTokenOut)
async def issue_project_token(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    token_settings: TokenSettings = Depends(get_token_settings),
):
    await authorize_project(db, identity, Action.UPDATE, project_id)
    issued = issue_project_key_token(str(project_id), token_settings, now)
    return ProjectTokenOut(project_id=project_id, access_token=issued.token, expires_at=issued.expires_at)


# --- Analytics ---

@router.get("/{project_id}/devices", response_model=DeviceListResponse)
async def get_devices(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    platform: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    await authorize_project(db, identity, Action.READ, project_id)
    return await list_devices(db, project_id, page=page, limit=limit, platform=platform)


@router.get("/{project_id}/metrics", response_model=list[MetricOut])
async def get_metrics(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    metric_type: Optional[str] = None,
    period: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    limit: int = Query(settings.MAX_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    await authorize_project(db, identity, Action.READ, project_id)
    return await list_metrics(
        db,
        project_id,
        metric_type=metric_type,
        period=period,
        start=parse_bound(start_date, "start_date"),
        end=parse_bound(end_date, "end_date"),
        limit=limit,
    )


@router.post("/{project_id}/metrics/rollups", response_model=RollupResponse)
async def run_rollups(
    project_id: uuid.UUID,
    day: Optional[date] = None,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    await authorize_project(db, identity, Action.CREATE, project_id)
    target = day or now.date()
    async with atomic(db):
        values = await compute_rollups(db, project_id, target, now=now)
    return RollupResponse(project_id=project_id, day=target.isoformat(), values=values)
