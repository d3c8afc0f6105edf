from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

"""
DB Types.

Rôle (fonctionnel) :
- Types de colonnes portables Postgres / SQLite (JSONB en prod, JSON en test).
- Normalisation des instants : tout est stocké en UTC.

Notes :
- SQLite ne conserve pas le fuseau : une valeur relue peut être naïve, `as_utc` la rattache à UTC.
"""

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def canonical_json(value: Optional[Mapping[str, Any]]) -> str:
    """Texte JSON canonique (clés triées, sans espaces) : sert de clé d’unicité."""
    return json.dumps(dict(value or {}), sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
