from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base
from beacon.db.types import JSONDocument, utcnow

"""
Model Metric.

Rôle (fonctionnel) :
- Valeur agrégée d’un bucket temporel (compteur d’événements, DAU, durée moyenne de session…).
- Clé d’agrégation : (project_id, metric_type, period, period_start, dimensions).

Notes :
- `dimensions_key` est le JSON canonique de `dimensions` : c’est lui qui entre dans la
  contrainte d’unicité (un JSON brut n’est pas comparable de façon fiable).
- Modifié uniquement par upsert (INSERT … ON CONFLICT DO UPDATE).
"""

PERIODS = ("hourly", "daily", "weekly", "monthly")


class Metric(Base):
    __tablename__ = "metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )

    metric_type: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    dimensions: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    dimensions_key: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "project_id", "metric_type", "period", "period_start", "dimensions_key",
            name="uq_metrics_aggregation_key",
        ),
    )
