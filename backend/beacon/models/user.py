from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beacon.db.base import Base
from beacon.db.types import utcnow

"""
Model User.

Rôle (fonctionnel) :
- Opérateur humain (dashboard) : s’authentifie par email / mot de passe puis token “user”.
- Rôle global (admin / user) distinct des rôles par projet (ProjectMember).

Cycle de vie :
- Créé à l’inscription, modifié (profil / rôle global), jamais supprimé par l’API.
"""

USER_ROLES = ("admin", "user")


class User(Base):
    __tablename__ = "users"

    # Identifiant technique (UUID)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Identifiant de connexion (unique)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Rôle global : "admin" gère les utilisateurs, "user" sinon
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    owned_projects = relationship("Project", back_populates="owner")
