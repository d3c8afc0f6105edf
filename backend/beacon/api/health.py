from fastapi import APIRouter

from beacon.core.settings import settings

"""
API Health.

Rôle (fonctionnel) :
- Liveness : répond sans toucher la base (sondes d’orchestrateur).
"""

router = APIRouter()


@router.get("/health")
def health():
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "env": settings.ENV,
    }
