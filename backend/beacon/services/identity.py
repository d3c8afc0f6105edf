from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Literal, Optional, Union

from beacon.core.credentials import PresentedCredentials, TokenScope, TokenSettings, verify_token
from beacon.core.errors import AuthenticationError, AuthFailure

"""
Service Identity.

Rôle (fonctionnel) :
- Transforme les credentials présentés (bearer et/ou X-API-Key) en UNE identité typée :
  - UserIdentity        : opérateur humain (token scope "user"),
  - ProjectKeyIdentity  : SDK agissant sous la clé d’un projet (X-API-Key brute ou token scope "api_key").
- Sinon : AuthenticationError avec un motif (MISSING_CREDENTIAL, MALFORMED_CREDENTIAL,
  INVALID_OR_EXPIRED, UNKNOWN_KEY).

Règles :
- Si les deux headers sont présents, la clé API brute l’emporte.
- Aucune règle de routage ici (quelle identité pour quel endpoint) : c’est le rôle de la policy.
  Le resolver se contente d’étiqueter le type d’identité.
"""

# Lookup clé API brute -> id projet (None si inconnue)
ProjectKeyLookup = Callable[[str], Awaitable[Optional[uuid.UUID]]]


@dataclass(frozen=True)
class UserIdentity:
    user_id: uuid.UUID
    global_role: str
    kind: Literal["user"] = "user"

    @property
    def is_global_admin(self) -> bool:
        return self.global_role == "admin"


@dataclass(frozen=True)
class ProjectKeyIdentity:
    project_id: uuid.UUID
    kind: Literal["api_key"] = "api_key"


Identity = Union[UserIdentity, ProjectKeyIdentity]


def _parse_uuid(value: Optional[str]) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token mal formé") from None


async def resolve_identity(
    credentials: PresentedCredentials,
    *,
    token_settings: TokenSettings,
    now: datetime,
    find_project_by_key: ProjectKeyLookup,
) -> Identity:
    if credentials.api_key:
        project_id = await find_project_by_key(credentials.api_key)
        if project_id is None:
            raise AuthenticationError(AuthFailure.UNKNOWN_KEY, "Clé API invalide")
        return ProjectKeyIdentity(project_id=project_id)

    if credentials.malformed_authorization:
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Header Authorization mal formé")

    if not credentials.bearer:
        raise AuthenticationError(AuthFailure.MISSING_CREDENTIAL, "Credential manquant")

    payload = verify_token(credentials.bearer, token_settings, now)

    if payload.scope is TokenScope.USER:
        return UserIdentity(user_id=_parse_uuid(payload.sub), global_role=payload.role)

    return ProjectKeyIdentity(project_id=_parse_uuid(payload.project_id))


def describe(identity: Identity) -> str:
    """Libellé court pour les logs (champ `identity`)."""
    if isinstance(identity, UserIdentity):
        return f"user:{identity.user_id}"
    return f"api_key:{identity.project_id}"
