from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beacon.db.base import Base
from beacon.db.types import utcnow

"""
Model ProjectMember.

Rôle (fonctionnel) :
- Rôle d’un utilisateur sur UN projet (distinct du rôle global User.role).
- Clé composite (project_id, user_id).

Invariants :
- role ∈ {admin, member, viewer} (contrainte CHECK) ; "owner" n’est jamais stocké ici.
"""

MEMBER_ROLES = ("admin", "member", "viewer")


class ProjectMember(Base):
    __tablename__ = "project_members"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    project = relationship("Project", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'member', 'viewer')", name="ck_project_members_role"),
    )
