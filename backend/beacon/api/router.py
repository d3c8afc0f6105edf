from fastapi import APIRouter

from .auth import router as auth_router
from .events import router as events_router
from .health import router as health_router
from .members import router as members_router
from .metrics import router as metrics_router
from .projects import router as projects_router
from .status import router as status_router
from .telemetry import router as telemetry_router
from .users import router as users_router

"""
Router principal de l’API.

Rôle (fonctionnel) :
- api_router : routes versionnées (/api/v1) par domaine (auth, users, projects, members, events,
  telemetry, metrics).
- system_router : sondes hors version (/health, /system/status).
"""

API_PREFIX = "/api/v1"

api_router = APIRouter(prefix=API_PREFIX)

api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(projects_router)
api_router.include_router(members_router)
api_router.include_router(events_router)
api_router.include_router(telemetry_router)
api_router.include_router(metrics_router)

system_router = APIRouter()
system_router.include_router(health_router, tags=["health"])
system_router.include_router(status_router)
