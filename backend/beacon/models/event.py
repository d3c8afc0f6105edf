from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beacon.db.base import Base
from beacon.db.types import JSONDocument

"""
Model Event.

Rôle (fonctionnel) :
- Événement brut envoyé par un SDK (écran vu, session, achat…).
- Immuable une fois stocké.

Champs :
- timestamp   : instant rapporté par le client (stocké tel quel, dérive d’horloge tolérée).
- received_at : instant de réception serveur.
- parameters  : document JSON libre (aucun schéma imposé).

Index :
- (project_id, timestamp) et (project_id, event_type, timestamp) pour la lecture paginée filtrée.
"""


class Event(Base):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    # Clé technique du device (pas la clé naturelle)
    device_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True
    )

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parameters: Mapped[Any | None] = mapped_column(JSONDocument, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    device = relationship("Device")

    __table_args__ = (
        Index("ix_events_project_ts", "project_id", "timestamp"),
        Index("ix_events_project_type_ts", "project_id", "event_type", "timestamp"),
    )
