from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.errors import ConflictError, InternalError

"""
DB Transaction.

Rôle (fonctionnel) :
- `atomic(db)` : délimite une unité de travail (commit en sortie normale, rollback sinon).
- Traduit les erreurs de persistance en erreurs du cœur :
  - IntegrityError (course sur une contrainte unique) -> ConflictError,
  - toute autre SQLAlchemyError -> InternalError (détail loggé, message générique).
- `retry_on_conflict(db, work)` : rejoue une fois l’unité de travail sur ConflictError.

Notes :
- Le rollback couvre aussi les BaseException (annulation de la tâche si le client se déconnecte) :
  aucune écriture partielle d’événement / métrique ne subsiste.
"""

logger = logging.getLogger("beacon.db")

T = TypeVar("T")


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Conflit d’unicité, transaction annulée", extra={"error_code": "CONFLICT"})
        raise ConflictError("Conflit d’écriture concurrente") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Erreur de persistance", extra={"error_code": "INTERNAL_ERROR"})
        raise InternalError() from exc
    except BaseException:
        await db.rollback()
        raise


async def retry_on_conflict(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    attempts: int = 2,
) -> T:
    """Exécute `work` dans atomic(db) ; une ConflictError déclenche un nouvel essai (une fois par défaut)."""
    attempt = 1
    while True:
        try:
            async with atomic(db):
                return await work()
        except ConflictError:
            if attempt >= attempts:
                raise
            attempt += 1
            logger.warning("Conflit concurrent, nouvel essai", extra={"error_code": "CONFLICT"})
