from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import authorize_project, require_user
from beacon.db.session import get_db
from beacon.schemas.projects import MemberAdd, MemberOut, MemberRoleUpdate
from beacon.services import projects as project_service
from beacon.services.identity import UserIdentity
from beacon.services.policy import Action, authorize_member_change, enforce

"""
API Members.

Rôle (fonctionnel) :
- Liste / ajout / changement de rôle / retrait des membres d’un projet.
- Le propriétaire (implicite) n’est ni rétrogradable ni retirable : refus 403 par la policy.
"""

router = APIRouter(prefix="/projects/{project_id}/members", tags=["members"])


@router.get("", response_model=list[MemberOut])
async def list_members(
    project_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.READ, project_id)
    return await project_service.list_members(db, project_id)


@router.post("", response_model=MemberOut, status_code=201)
async def add_member(
    project_id: uuid.UUID,
    payload: MemberAdd,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await authorize_project(db, identity, Action.MANAGE_MEMBERS, project_id)
    return await project_service.add_member(db, project_id, payload)


@router.patch("/{user_id}", response_model=MemberOut)
async def update_member(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    payload: MemberRoleUpdate,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    access = await project_service.load_access(db, project_id, identity.user_id)
    enforce(authorize_member_change(identity, access, user_id))
    return await project_service.update_member_role(db, project_id, user_id, payload.role)


@router.delete("/{user_id}", status_code=204)
async def remove_member(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    identity: UserIdentity = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    access = await project_service.load_access(db, project_id, identity.user_id)
    enforce(authorize_member_change(identity, access, user_id))
    await project_service.remove_member(db, project_id, user_id)
    return Response(status_code=204)
