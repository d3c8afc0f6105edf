from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import require_user
from beacon.core.settings import settings
from beacon.db.session import get_db
from beacon.schemas.auth import UserOut, UserRoleUpdate
from beacon.schemas.common import PageMeta
from beacon.services import accounts
from beacon.services.identity import UserIdentity
from beacon.services.policy import Action, authorize_global, enforce

"""
API Users (administration globale).

Rôle (fonctionnel) :
- Liste des utilisateurs et changement de rôle global.
- Réservé au rôle global "admin" (action MANAGE_USERS).
"""

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
):
    enforce(authorize_global(identity, Action.MANAGE_USERS))
    users, total = await accounts.list_users(db, page=page, limit=limit)
    return {
        "data": [UserOut.model_validate(u).model_dump(mode="json") for u in users],
        "meta": PageMeta.build(page, limit, total).model_dump(),
    }


@router.patch("/{user_id}/role", response_model=UserOut)
async def change_role(
    user_id: uuid.UUID,
    payload: UserRoleUpdate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    enforce(authorize_global(identity, Action.MANAGE_USERS))
    return UserOut.model_validate(await accounts.set_user_role(db, user_id, payload.role))
