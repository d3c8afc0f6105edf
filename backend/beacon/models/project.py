from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beacon.db.base import Base
from beacon.db.types import utcnow

"""
Model Project.

Rôle (fonctionnel) :
- Frontière de tenant : possède devices, événements, métriques et la liste des membres.
- Porte la clé API (secret opaque, unique) utilisée par les SDK pour l’ingestion.

Invariants :
- Exactement un propriétaire (owner_id) ; il détient implicitement le rôle le plus élevé,
  sans ligne dans project_members.
"""


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Clé API (secret opaque) : lookup direct à l’ingestion
    api_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    # Propriétaire (rôle implicite "owner")
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    owner = relationship("User", back_populates="owned_projects")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
