from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base
from beacon.db.types import JSONDocument, utcnow

"""
Model MetricDefinition.

Rôle (fonctionnel) :
- Décrit QUOI lire (type de métrique, période de stockage, filtre de dimensions),
  pas la valeur calculée.
- Sert de point d’entrée aux séries temporelles : /metrics/definitions/{id}/data.
"""


class MetricDefinition(Base):
    __tablename__ = "metric_definitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False, default="hourly")

    # Filtre optionnel : sous-ensemble de dimensions à faire correspondre exactement
    dimensions: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_metric_definitions_project_name"),
    )
