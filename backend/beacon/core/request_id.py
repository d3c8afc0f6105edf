from __future__ import annotations

import uuid
from contextvars import ContextVar

"""
Core Request ID.

Rôle (fonctionnel) :
- Porte l’identifiant de la requête HTTP en cours (header X-Request-Id) dans un ContextVar.
- Lu par le logging (RequestIdFilter) et par les handlers d’erreurs (champ request_id du payload).

Notes :
- Seul le request_id est porté en contexte : l’identité résolue (utilisateur / clé projet)
  est toujours passée en argument explicite le long de la chaîne d’appel.
"""

REQUEST_ID_HEADER = "X-Request-Id"

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(rid: str | None) -> None:
    _request_id.set(rid)


def get_request_id() -> str | None:
    return _request_id.get()


def ensure_request_id(incoming: str | None = None) -> str:
    """Réutilise le request_id entrant (nettoyé, borné à 128 caractères) ou en génère un."""
    rid = (incoming or "").strip()[:128] or str(uuid.uuid4())
    set_request_id(rid)
    return rid
