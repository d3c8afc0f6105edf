from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import authorize_project, get_now, parse_bound, require_user
from beacon.core.errors import NotFoundError, ValidationError
from beacon.db.session import get_db
from beacon.models.metric_definition import MetricDefinition
from beacon.schemas.common import format_instant
from beacon.schemas.metrics import (
    MetricDefinitionCreate,
    MetricDefinitionOut,
    MetricDefinitionUpdate,
    TimeseriesResponse,
)
from beacon.services import definitions
from beacon.services.identity import UserIdentity
from beacon.services.metrics import query_timeseries
from beacon.services.policy import Action

"""
API Metrics.

Rôle (fonctionnel) :
- CRUD des définitions de métriques (par projet).
- Série temporelle d’une définition : GET /metrics/definitions/{id}/data
  (start_date / end_date ISO-8601, interval hour|day|week|month, défaut day).

Valeurs par défaut de la fenêtre :
- end_date = maintenant, start_date = end_date - 7 jours.
"""

router = APIRouter(prefix="/metrics", tags=["metrics"])

NOT_FOUND = "Définition de métrique introuvable"


async def _load(db: AsyncSession, identity: UserIdentity, definition_id: uuid.UUID, action: Action) -> MetricDefinition:
    definition = await definitions.get_definition(db, definition_id)
    if definition is None:
        raise NotFoundError(NOT_FOUND)
    await authorize_project(db, identity, action, definition.project_id, not_found_message=NOT_FOUND)
    return definition


@router.post("/definitions", response_model=MetricDefinitionOut, status_code=201)
async def create_definition(
    payload: MetricDefinitionCreate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.CREATE, payload.project_id)
    return MetricDefinitionOut.model_validate(await definitions.create_definition(db, payload))


@router.get("/definitions", response_model=list[MetricDefinitionOut])
async def list_definitions(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.READ, project_id)
    return [MetricDefinitionOut.model_validate(d) for d in await definitions.list_definitions(db, project_id)]


@router.get("/definitions/{definition_id}", response_model=MetricDefinitionOut)
async def get_definition(
    definition_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return MetricDefinitionOut.model_validate(await _load(db, identity, definition_id, Action.READ))


@router.patch("/definitions/{definition_id}", response_model=MetricDefinitionOut)
async def update_definition(
    definition_id: uuid.UUID,
    payload: MetricDefinitionUpdate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await _load(db, identity, definition_id, Action.UPDATE)
    return MetricDefinitionOut.model_validate(await definitions.update_definition(db, definition_id, payload))


@router.delete("/definitions/{definition_id}", status_code=204)
async def delete_definition(
    definition_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await _load(db, identity, definition_id, Action.UPDATE)
    await definitions.delete_definition(db, definition_id)
    return Response(status_code=204)


@router.get("/definitions/{definition_id}/data", response_model=TimeseriesResponse)
async def get_timeseries(
    definition_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    interval: str = "day",
):
    definition = await _load(db, identity, definition_id, Action.READ)

    end = parse_bound(end_date, "end_date") or now
    start = parse_bound(start_date, "start_date")
    if start is None:
        try:
            start = end - timedelta(days=7)
        except OverflowError:
            raise ValidationError("end_date : instant hors limites", details={"field": "end_date"}) from None

    points = await query_timeseries(db, definition, start, end, interval)
    return TimeseriesResponse(
        definition_id=definition.id,
        metric_type=definition.metric_type,
        interval=interval,
        start=format_instant(start),
        end=format_instant(end),
        data=points,
    )
