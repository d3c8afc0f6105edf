from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

"""
Schemas Projects / Members (Pydantic).

Rôle (fonctionnel) :
- Contrat HTTP des projets (tenants), de leur clé API et de leur liste de membres.

Notes :
- La clé API n’apparaît jamais dans ProjectOut : lecture dédiée (ApiKeyOut) réservée aux membres.
- Le rôle "owner" n’est pas assignable : il est implicite (Project.owner_id).
"""

MemberRole = Literal["admin", "member", "viewer"]


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> Any:
        return _strip(v)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> Any:
        return _strip(v)


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    owner_id: UUID
    created_at: datetime
    updated_at: datetime


class ProjectWithRoleOut(ProjectOut):
    """Projet vu par l’appelant : son rôle effectif est joint (owner / admin / member / viewer)."""
    role: str


class ApiKeyOut(BaseModel):
    project_id: UUID
    api_key: str


class ProjectTokenOut(BaseModel):
    """Token bearer de scope api_key (capacité d’ingestion longue durée)."""
    project_id: UUID
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class MemberAdd(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: Optional[UUID] = None
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    role: MemberRole = "member"

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class MemberRoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: MemberRole


class MemberOut(BaseModel):
    user_id: UUID
    email: str
    name: str
    role: str
    created_at: Optional[datetime] = None
