from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

"""
Core Errors.

Rôle (fonctionnel) :
- Standardise le format des erreurs renvoyées par l’API (payload homogène).
- Définit la taxonomie d’erreurs du cœur (indépendante de FastAPI) :
  - AuthenticationError -> 401 (credential absent / malformé / invalide / expiré / clé inconnue)
  - AuthorizationError  -> 403 (identité valide, rôle ou scope insuffisant)
  - NotFoundError       -> 404 (ressource absente ou invisible pour l’appelant)
  - ValidationError     -> 400 (entrée malformée)
  - ConflictError       -> 409 (course sur une contrainte unique, rejouée une fois)
  - RateLimitedError    -> 429
  - InternalError       -> 500 (persistance / codec ; détail loggé, jamais exposé)
- Chaque point d’entrée du cœur renvoie une valeur ou lève exactement une de ces erreurs.

Convention de réponse (exemple) :
{
  "error": {
    "code": "NOT_FOUND",
    "message": "Événement introuvable",
    "status": 404,
    "request_id": "...",
    "timestamp": "...",
    "details": {...}
  }
}
"""


def now_iso() -> str:
    """Timestamp ISO-8601 en UTC (utilisé dans toutes les erreurs)."""
    return datetime.now(timezone.utc).isoformat()


def error_payload(
    *,
    code: str,
    message: str,
    status: int,
    request_id: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """Construit un payload d’erreur homogène pour l’API."""
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "status": status,
            "request_id": request_id,
            "timestamp": now_iso(),
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AuthFailure(str, Enum):
    """Motifs de rejet d’authentification (résolution d’identité)."""
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    MALFORMED_CREDENTIAL = "MALFORMED_CREDENTIAL"
    INVALID_OR_EXPIRED = "INVALID_OR_EXPIRED"
    UNKNOWN_KEY = "UNKNOWN_KEY"


class AppError(Exception):
    """
    Erreur applicative standardisée.

    Usage :
    - Lever une erreur “métier” avec un code stable et un message explicite.
    - Laisser la couche API produire une réponse cohérente (voir main.py).

    Exemple :
        raise NotFoundError("Projet introuvable")
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, reason: AuthFailure, message: str | None = None):
        super().__init__(message or "Authentification requise", details={"reason": reason.value})
        self.reason = reason


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Accès refusé", details: Any = None):
        super().__init__(message, details)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMITED"


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Erreur interne du serveur", details: Any = None):
        super().__init__(message, details)
