from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base

"""
Model Device.

Rôle (fonctionnel) :
- Appareil instrumenté (SDK) d’un projet.
- Identité naturelle : (project_id, device_id) fournie par le client, unique par projet.
- `id` (UUID) est la clé technique référencée par les événements.

Cycle de vie :
- Upserté à chaque ingestion (first_seen fixé une fois, last_seen avancé), jamais supprimé par l’API.
"""


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )

    # Clé naturelle côté client (unique par projet)
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Environnement d’exécution
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    os_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    app_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Première / dernière observation (horloge serveur)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Réseau : IP brute + pays dérivé (GeoLookup)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "device_id", name="uq_devices_project_device"),
    )
