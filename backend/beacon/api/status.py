from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.session import get_db
from beacon.models.event import Event

"""
API System Status.

Rôle (fonctionnel) :
- Readiness : vérifie la base (requête minimale).
- Fraîcheur de l’ingestion : received_at du dernier événement reçu.
"""

router = APIRouter(prefix="/system", tags=["system"])

log = logging.getLogger("beacon.http")


@router.get("/status")
async def system_status(db: AsyncSession = Depends(get_db)):
    db_ok = True
    last_event = None
    try:
        await db.execute(text("SELECT 1"))
        last = (await db.execute(select(func.max(Event.received_at)))).scalar_one_or_none()
        if last is not None:
            last_event = (last if last.tzinfo else last.replace(tzinfo=timezone.utc)).isoformat()
    except SQLAlchemyError:
        log.warning("status: base indisponible", exc_info=True, extra={"error_code": "DB_UNAVAILABLE"})
        db_ok = False

    return {
        "ok": db_ok,
        "db": {"ok": db_ok},
        "last_event_received_at": last_event,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
