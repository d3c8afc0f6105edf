from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

"""
Schemas Metrics (Pydantic).

Rôle (fonctionnel) :
- Définitions de métriques (CRUD) : ce qu’il faut lire, pas la valeur.
- Séries temporelles : un point par bucket, y compris les buckets vides (valeur 0).
- Lignes brutes de métriques (lecture analytique).
"""

Period = Literal["hourly", "daily", "weekly", "monthly"]


class MetricDefinitionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    metric_type: str = Field(..., min_length=1, max_length=100)
    period: Period = "hourly"
    dimensions: Optional[dict[str, Any]] = None
    description: Optional[str] = Field(default=None, max_length=2000)


class MetricDefinitionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    metric_type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    period: Optional[Period] = None
    dimensions: Optional[dict[str, Any]] = None
    description: Optional[str] = Field(default=None, max_length=2000)


class MetricDefinitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    name: str
    metric_type: str
    period: str
    dimensions: Optional[dict[str, Any]] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TimeseriesPoint(BaseModel):
    timestamp: str
    value: float


class TimeseriesResponse(BaseModel):
    definition_id: UUID
    metric_type: str
    interval: str
    start: str
    end: str
    data: list[TimeseriesPoint]


class MetricOut(BaseModel):
    id: str
    metric_type: str
    period: str
    period_start: str
    dimensions: dict[str, Any]
    value: float


class RollupResponse(BaseModel):
    project_id: UUID
    day: str
    values: dict[str, float]
