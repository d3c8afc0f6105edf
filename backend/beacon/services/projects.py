from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.credentials import generate_api_key
from beacon.core.errors import ConflictError, NotFoundError, ValidationError
from beacon.db.transaction import atomic, retry_on_conflict
from beacon.models.device import Device
from beacon.models.event import Event
from beacon.models.metric import Metric
from beacon.models.metric_definition import MetricDefinition
from beacon.models.project import Project
from beacon.models.project_member import ProjectMember
from beacon.models.user import User
from beacon.schemas.projects import MemberAdd, MemberOut, ProjectUpdate
from beacon.services.policy import ProjectAccess, ProjectRole

"""
Service Projects (tenants + membres).

Rôle (fonctionnel) :
- Chargement du snapshot d’accès (ProjectAccess) utilisé par la policy, frais à chaque requête.
- Lookup d’une clé API brute -> projet (résolution d’identité côté ingestion).
- CRUD projet, rotation de clé API, gestion de la liste des membres.

Notes :
- Les décisions d’accès ne sont PAS prises ici (voir services/policy.py) ; ce module exécute.
- Le propriétaire n’a pas de ligne project_members : il est listé avec le rôle "owner".
"""

logger = logging.getLogger("beacon.projects")


async def load_access(
    db: AsyncSession,
    project_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
) -> Optional[ProjectAccess]:
    project = await db.get(Project, project_id, populate_existing=True)
    if project is None:
        return None

    member_role: Optional[str] = None
    if user_id is not None:
        member_role = (
            await db.execute(
                select(ProjectMember.role).where(
                    ProjectMember.project_id == project_id,
                    ProjectMember.user_id == user_id,
                )
            )
        ).scalar_one_or_none()

    return ProjectAccess(project_id=project.id, owner_id=project.owner_id, member_role=member_role)


async def find_project_id_by_key(db: AsyncSession, api_key: str) -> Optional[uuid.UUID]:
    return (await db.execute(select(Project.id).where(Project.api_key == api_key))).scalar_one_or_none()


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Optional[Project]:
    return await db.get(Project, project_id)


async def _require(db: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Projet introuvable")
    return project


async def create_project(db: AsyncSession, owner_id: uuid.UUID, name: str) -> Project:
    async def work() -> Project:
        project = Project(id=uuid.uuid4(), name=name, api_key=generate_api_key(), owner_id=owner_id)
        db.add(project)
        await db.flush()
        return project

    project = await retry_on_conflict(db, work)
    logger.info("project created", extra={"project_id": str(project.id), "user_id": str(owner_id)})
    return project


async def list_projects(db: AsyncSession, user_id: uuid.UUID) -> list[tuple[Project, str]]:
    """Projets visibles : possédés ou dont l’utilisateur est membre, avec le rôle effectif."""
    stmt = (
        select(Project, ProjectMember.role)
        .outerjoin(
            ProjectMember,
            (ProjectMember.project_id == Project.id) & (ProjectMember.user_id == user_id),
        )
        .where(or_(Project.owner_id == user_id, ProjectMember.user_id == user_id))
        .order_by(Project.created_at, Project.name)
    )
    rows = (await db.execute(stmt)).all()
    return [
        (project, ProjectRole.OWNER.label if project.owner_id == user_id else role)
        for project, role in rows
    ]


async def update_project(db: AsyncSession, project_id: uuid.UUID, data: ProjectUpdate) -> Project:
    async with atomic(db):
        project = await _require(db, project_id)
        if data.name is not None:
            project.name = data.name
        await db.flush()
    await db.refresh(project)
    return project


async def delete_project(db: AsyncSession, project_id: uuid.UUID) -> None:
    """Suppression explicite des dépendances (portable, même sans FK actives côté SQLite)."""
    async with atomic(db):
        await _require(db, project_id)
        for model in (Event, Metric, MetricDefinition, Device, ProjectMember):
            await db.execute(delete(model).where(model.project_id == project_id))
        await db.execute(delete(Project).where(Project.id == project_id))

    logger.info("project deleted", extra={"project_id": str(project_id)})


async def regenerate_api_key(db: AsyncSession, project_id: uuid.UUID) -> Project:
    async def work() -> Project:
        project = await _require(db, project_id)
        project.api_key = generate_api_key()
        await db.flush()
        return project

    project = await retry_on_conflict(db, work)
    logger.info("api key regenerated", extra={"project_id": str(project_id)})
    return project


# ---------------------------------------------------------------------------
# Membres
# ---------------------------------------------------------------------------

async def list_members(db: AsyncSession, project_id: uuid.UUID) -> list[MemberOut]:
    project = await _require(db, project_id)
    owner = await db.get(User, project.owner_id)

    members: list[MemberOut] = []
    if owner is not None:
        members.append(
            MemberOut(user_id=owner.id, email=owner.email, name=owner.name, role=ProjectRole.OWNER.label,
                      created_at=project.created_at)
        )

    rows = (
        await db.execute(
            select(ProjectMember, User)
            .join(User, User.id == ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.created_at, User.email)
        )
    ).all()
    for member, user in rows:
        members.append(
            MemberOut(user_id=user.id, email=user.email, name=user.name, role=member.role,
                      created_at=member.created_at)
        )
    return members


async def add_member(db: AsyncSession, project_id: uuid.UUID, data: MemberAdd) -> MemberOut:
    if data.user_id is None and not data.email:
        raise ValidationError("user_id ou email requis")

    async with atomic(db):
        project = await _require(db, project_id)

        if data.user_id is not None:
            user = await db.get(User, data.user_id)
        else:
            user = (await db.execute(select(User).where(User.email == data.email))).scalar_one_or_none()
        if user is None:
            raise NotFoundError("Utilisateur introuvable")

        if user.id == project.owner_id:
            raise ConflictError("Le propriétaire est déjà membre implicite du projet")

        existing = await db.get(ProjectMember, (project_id, user.id))
        if existing is not None:
            raise ConflictError("Utilisateur déjà membre du projet")

        member = ProjectMember(project_id=project_id, user_id=user.id, role=data.role)
        db.add(member)
        await db.flush()
        out = MemberOut(user_id=user.id, email=user.email, name=user.name, role=member.role,
                        created_at=member.created_at)

    logger.info("member added", extra={"project_id": str(project_id), "user_id": str(user.id)})
    return out


async def update_member_role(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID, role: str) -> MemberOut:
    async with atomic(db):
        member = await db.get(ProjectMember, (project_id, user_id))
        if member is None:
            raise NotFoundError("Membre introuvable")
        member.role = role
        await db.flush()
        user = await db.get(User, user_id)
        out = MemberOut(user_id=user_id, email=user.email if user else "", name=user.name if user else "",
                        role=member.role, created_at=member.created_at)

    logger.info("member role changed", extra={"project_id": str(project_id), "user_id": str(user_id)})
    return out


async def remove_member(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> None:
    async with atomic(db):
        result = await db.execute(
            delete(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
        )
        if not result.rowcount:
            raise NotFoundError("Membre introuvable")

    logger.info("member removed", extra={"project_id": str(project_id), "user_id": str(user_id)})
