from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.errors import InternalError

"""
DB Upsert.

Rôle (fonctionnel) :
- Fournit l’INSERT du dialecte courant (Postgres en prod, SQLite en test), seul à exposer
  ON CONFLICT DO NOTHING / DO UPDATE sur une contrainte unique.
- Utilisé par les deux écritures concurrentes du pipeline : devices et métriques.
"""

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def dialect_insert(db: AsyncSession, model: Any):
    dialect = db.get_bind().dialect.name
    factory = _INSERTS.get(dialect)
    if factory is None:
        raise InternalError(f"Dialecte non supporté pour l’upsert : {dialect}")
    return factory(model)
