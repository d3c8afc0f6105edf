from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from beacon.schemas.common import PageMeta, coerce_instant

"""
Schemas Events / Devices (Pydantic).

Rôle (fonctionnel) :
- Contrat d’ingestion des SDK : un événement = champs device + type + paramètres libres.
- Projections de lecture (événements, devices) avec instants au format fixe.

Validation (ingestion) :
- event_type non vide, device_id / platform requis.
- timestamp : chaîne ISO-8601 obligatoire (un entier epoch est refusé).
- parameters : n’importe quel document JSON (aucun schéma).
- Champs inconnus refusés (extra="forbid").
"""


class DeviceFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    device_id: str = Field(..., min_length=1, max_length=255)
    platform: str = Field(..., min_length=1, max_length=50)
    os_version: Optional[str] = Field(default=None, max_length=50)
    app_version: Optional[str] = Field(default=None, max_length=50)
    ip_address: Optional[str] = Field(default=None, max_length=45)

    @field_validator("device_id", "platform", mode="before")
    @classmethod
    def _strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class EventCreate(DeviceFields):
    event_type: str = Field(..., min_length=1, max_length=100)
    event_name: Optional[str] = Field(default=None, max_length=255)
    parameters: Optional[Any] = None
    timestamp: datetime

    @field_validator("event_type", mode="before")
    @classmethod
    def _strip_type(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, v: Any) -> Any:
        return coerce_instant(v)


class SessionStartIn(DeviceFields):
    """Raccourci SDK : ouverture de session (event_type = session_start)."""
    session_id: Optional[str] = Field(default=None, max_length=255)
    timestamp: datetime
    parameters: Optional[dict[str, Any]] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, v: Any) -> Any:
        return coerce_instant(v)


class SessionEndIn(SessionStartIn):
    """Raccourci SDK : fin de session, durée en secondes (event_type = session_end)."""
    duration_seconds: float = Field(..., ge=0)


class InstallIn(SessionStartIn):
    """Raccourci SDK : première installation (event_type = install)."""


class EventOut(BaseModel):
    id: str
    project_id: str
    device_id: str
    event_type: str
    event_name: Optional[str] = None
    parameters: Optional[Any] = None
    timestamp: str
    received_at: str


class EventListResponse(BaseModel):
    data: list[EventOut]
    meta: PageMeta


class BatchResponse(BaseModel):
    accepted: int
    events: list[EventOut]


class DeviceOut(BaseModel):
    id: str
    device_id: str
    platform: str
    os_version: Optional[str] = None
    app_version: Optional[str] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    first_seen: str
    last_seen: str


class DeviceListResponse(BaseModel):
    data: list[DeviceOut]
    meta: PageMeta
