"""
beacon.models

Package ORM (SQLAlchemy) : entités persistées.

Rôle (fonctionnel) :
- Importer ce package enregistre toutes les tables dans Base.metadata (Alembic, tests).
- Expose l’API publique via __all__.
"""

from beacon.models.user import User
from beacon.models.project import Project
from beacon.models.project_member import ProjectMember
from beacon.models.device import Device
from beacon.models.event import Event
from beacon.models.metric import Metric
from beacon.models.metric_definition import MetricDefinition
from beacon.models.auth_token import AuthToken

__all__ = [
    "User",
    "Project",
    "ProjectMember",
    "Device",
    "Event",
    "Metric",
    "MetricDefinition",
    "AuthToken",
]
