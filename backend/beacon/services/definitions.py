from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.errors import NotFoundError
from beacon.db.transaction import atomic
from beacon.models.metric_definition import MetricDefinition
from beacon.schemas.metrics import MetricDefinitionCreate, MetricDefinitionUpdate

"""
Service Metric Definitions.

Rôle (fonctionnel) :
- CRUD simple des définitions de métriques (persistance seule, aucune agrégation).
- Un nom est unique par projet : un doublon remonte en ConflictError (409) via atomic().
"""

logger = logging.getLogger("beacon.metrics")


async def create_definition(db: AsyncSession, data: MetricDefinitionCreate) -> MetricDefinition:
    async with atomic(db):
        definition = MetricDefinition(
            id=uuid.uuid4(),
            project_id=data.project_id,
            name=data.name.strip(),
            metric_type=data.metric_type.strip(),
            period=data.period,
            dimensions=data.dimensions,
            description=data.description,
        )
        db.add(definition)
        await db.flush()

    logger.info(
        "metric definition created",
        extra={"project_id": str(data.project_id), "metric_type": definition.metric_type},
    )
    return definition


async def list_definitions(db: AsyncSession, project_id: uuid.UUID) -> list[MetricDefinition]:
    stmt = (
        select(MetricDefinition)
        .where(MetricDefinition.project_id == project_id)
        .order_by(MetricDefinition.name)
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_definition(db: AsyncSession, definition_id: uuid.UUID) -> Optional[MetricDefinition]:
    return await db.get(MetricDefinition, definition_id)


async def update_definition(
    db: AsyncSession,
    definition_id: uuid.UUID,
    data: MetricDefinitionUpdate,
) -> MetricDefinition:
    async with atomic(db):
        definition = await db.get(MetricDefinition, definition_id)
        if definition is None:
            raise NotFoundError("Définition de métrique introuvable")
        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(definition, name, value.strip() if isinstance(value, str) and name != "description" else value)
        await db.flush()
    await db.refresh(definition)
    return definition


async def delete_definition(db: AsyncSession, definition_id: uuid.UUID) -> None:
    async with atomic(db):
        definition = await db.get(MetricDefinition, definition_id)
        if definition is None:
            raise NotFoundError("Définition de métrique introuvable")
        await db.delete(definition)
