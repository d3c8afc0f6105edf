from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

"""
Schemas Common.

Rôle (fonctionnel) :
- Parse robuste des instants ISO-8601 reçus des SDK (mobile / web / scripts).
- Format textuel FIXE des instants renvoyés par l’API.
- Métadonnées de pagination partagées.
"""


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse un instant ISO-8601.

    Accepte :
    - "2025-12-21T18:48:00Z"
    - "2025-12-21T18:48:00.4600072Z" (7 digits -> tronqué à 6)
    - "2025-12-21T18:48:00.460007+02:00"

    Comportement :
    - "Z" -> "+00:00" pour datetime.fromisoformat
    - fraction de secondes tronquée à 6 digits
    - sans tzinfo : UTC
    - résultat toujours converti en UTC
    Lève ValueError si la chaîne n’est pas un instant valide.
    """
    s = value.strip()
    if not s:
        raise ValueError("instant vide")

    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"

    if "." in s:
        head, rest = s.split(".", 1)
        frac, tz = rest, ""
        if "+" in rest:
            frac, tz = rest.split("+", 1)
            tz = "+" + tz
        elif "-" in rest[1:]:
            frac, tz = rest.split("-", 1)
            tz = "-" + tz

        if not frac.isdigit():
            raise ValueError(f"fraction de secondes invalide : {value!r}")
        s = f"{head}.{frac[:6]}{tz}"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        # ex : 0001-01-01T00:00:00+01:00 sort de la plage datetime une fois en UTC
        raise ValueError(f"instant hors limites : {value!r}") from None


def coerce_instant(v: Any) -> Any:
    """Validator “before” : seules les chaînes ISO (ou datetime déjà construits) sont acceptées."""
    if isinstance(v, str):
        return parse_iso_datetime(v)
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    raise ValueError("instant ISO-8601 attendu (chaîne)")


def format_instant(dt: datetime) -> str:
    """Format fixe : 2025-01-02T03:04:05.000000Z (toujours UTC, toujours 6 décimales)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class PageMeta(BaseModel):
    page: int
    page_size: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "PageMeta":
        pages = (total + page_size - 1) // page_size if page_size else 0
        return cls(page=page, page_size=page_size, total=total, pages=pages)
