from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.credentials import TokenSettings, extract_credentials
from beacon.core.errors import AuthenticationError, AuthFailure, AuthorizationError, NotFoundError, ValidationError
from beacon.core.geo import GeoLookup, default_geo_lookup
from beacon.core.settings import settings
from beacon.db.session import get_db
from beacon.db.types import utcnow
from beacon.models.user import User
from beacon.schemas.common import parse_iso_datetime
from beacon.services.accounts import get_user, touch_session
from beacon.services.identity import Identity, ProjectKeyIdentity, UserIdentity, resolve_identity
from beacon.services.policy import Action, ProjectAccess, authorize, enforce
from beacon.services.projects import find_project_id_by_key, load_access

"""
Dépendances API.

Rôle (fonctionnel) :
- Collaborateurs injectables (surchargés en test via app.dependency_overrides) :
  - get_now            : horloge,
  - get_geo            : géolocalisation IP -> pays,
  - get_token_settings : configuration explicite du codec de tokens.
- Pipeline d’accès, explicite et dans cet ordre :
  headers -> credentials -> identité (resolve_identity) -> classe d’endpoint -> policy (authorize).
  L’identité résolue est passée en argument aux handlers, jamais stockée sur request.state.
"""


def get_now() -> datetime:
    return utcnow()


def get_geo() -> GeoLookup:
    return default_geo_lookup


def get_token_settings() -> TokenSettings:
    return TokenSettings.from_settings(settings)


async def get_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    token_settings: TokenSettings = Depends(get_token_settings),
) -> Identity:
    async def lookup(api_key: str) -> Optional[uuid.UUID]:
        return await find_project_id_by_key(db, api_key)

    return await resolve_identity(
        extract_credentials(request.headers),
        token_settings=token_settings,
        now=now,
        find_project_by_key=lookup,
    )


async def get_current_user(
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
) -> User:
    """Endpoints de gestion : token “user” obligatoire, session encore ouverte, utilisateur rechargé en base."""
    if not isinstance(identity, UserIdentity):
        raise AuthorizationError("Endpoint réservé aux utilisateurs (token de session requis)")

    bearer = extract_credentials(request.headers).bearer or ""
    if not await touch_session(db, identity.user_id, bearer, now):
        raise AuthenticationError(AuthFailure.INVALID_OR_EXPIRED, "Session révoquée")

    user = await get_user(db, identity.user_id)
    if user is None:
        raise AuthenticationError(AuthFailure.INVALID_OR_EXPIRED, "Utilisateur inconnu")
    return user


async def require_user(user: User = Depends(get_current_user)) -> UserIdentity:
    # Rôle global relu en base (un changement de rôle prend effet sans attendre l’expiration du token)
    return UserIdentity(user_id=user.id, global_role=user.role)


async def require_project_key(identity: Identity = Depends(get_identity)) -> ProjectKeyIdentity:
    """Endpoints d’ingestion : clé API brute ou token scope api_key."""
    if not isinstance(identity, ProjectKeyIdentity):
        raise AuthorizationError("Endpoint d’ingestion : clé API du projet requise")
    return identity


async def authorize_project(
    db: AsyncSession,
    identity: Identity,
    action: Action,
    project_id: uuid.UUID,
    *,
    not_found_message: str = "Projet introuvable",
) -> ProjectAccess:
    """Charge le snapshot d’accès (frais), décide, et lève si refus."""
    user_id = identity.user_id if isinstance(identity, UserIdentity) else None
    access = await load_access(db, project_id, user_id)
    enforce(authorize(identity, action, access), not_found_message=not_found_message)
    if access is None:
        raise NotFoundError(not_found_message)
    return access


def parse_bound(value: Optional[str], name: str) -> Optional[datetime]:
    """Borne de filtre ISO-8601 (query string) ; ValidationError si illisible."""
    if value is None or not value.strip():
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} : instant ISO-8601 invalide", details={"field": name}) from None
