from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Union

from beacon.core.errors import AuthorizationError, NotFoundError
from beacon.services.identity import Identity, ProjectKeyIdentity, UserIdentity

"""
Service Policy (autorisation).

Rôle (fonctionnel) :
- Fonction de décision PURE : authorize(identity, action, project) -> Allow | Deny(reason).
- Aucune I/O : le snapshot ProjectAccess (propriétaire + rôle de membre de l’appelant) est chargé
  par l’appelant, à chaque requête (pas de cache de rôles).

Ordre des règles :
1. Projet absent                                        -> Deny(NOT_FOUND)
2. INGEST + ProjectKeyIdentity du même projet           -> Allow
3. UserIdentity, action hors ingestion :
   - rôle effectif "none"                               -> Deny(NOT_FOUND)  (isolation des tenants)
   - rôle effectif < rôle minimal de l’action           -> Deny(FORBIDDEN)
   - sinon                                              -> Allow
4. Toute autre combinaison                              -> Deny(FORBIDDEN)

Rôle effectif : owner (Project.owner_id) > ligne project_members > none.
Ordre total : none < viewer < member < admin < owner.
"""


class ProjectRole(IntEnum):
    NONE = 0
    VIEWER = 1
    MEMBER = 2
    ADMIN = 3
    OWNER = 4

    @classmethod
    def parse(cls, value: Optional[str]) -> "ProjectRole":
        if not value:
            return cls.NONE
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.NONE

    @property
    def label(self) -> str:
        return self.name.lower()


class Action(str, Enum):
    INGEST = "ingest"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE_PROJECT = "delete_project"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_USERS = "manage_users"


# Rôle minimal requis par action (actions portées par un projet)
MINIMUM_ROLE: dict[Action, ProjectRole] = {
    Action.READ: ProjectRole.VIEWER,
    Action.CREATE: ProjectRole.MEMBER,
    Action.UPDATE: ProjectRole.ADMIN,
    Action.MANAGE_MEMBERS: ProjectRole.ADMIN,
    Action.DELETE_PROJECT: ProjectRole.OWNER,
}


class DenyReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"


@dataclass(frozen=True)
class ProjectAccess:
    """Snapshot d’accès : propriétaire du projet + rôle de membre de l’appelant (si utilisateur)."""
    project_id: uuid.UUID
    owner_id: uuid.UUID
    member_role: Optional[str] = None

    def effective_role(self, user_id: uuid.UUID) -> ProjectRole:
        if user_id == self.owner_id:
            return ProjectRole.OWNER
        return ProjectRole.parse(self.member_role)


@dataclass(frozen=True)
class Allow:
    role: Optional[ProjectRole] = None


@dataclass(frozen=True)
class Deny:
    reason: DenyReason
    message: str = ""


Decision = Union[Allow, Deny]


def authorize(identity: Identity, action: Action, project: Optional[ProjectAccess]) -> Decision:
    if action is Action.MANAGE_USERS:
        return authorize_global(identity, action)

    # 1) Ressource absente : avant toute comparaison de rôle
    if project is None:
        return Deny(DenyReason.NOT_FOUND, "Projet introuvable")

    # 2) Ingestion sous la clé du projet
    if action is Action.INGEST:
        if isinstance(identity, ProjectKeyIdentity) and identity.project_id == project.project_id:
            return Allow()
        return Deny(DenyReason.FORBIDDEN, "Ingestion réservée à la clé API du projet")

    # 3) Opérateur humain
    if isinstance(identity, UserIdentity):
        role = project.effective_role(identity.user_id)
        if role is ProjectRole.NONE:
            return Deny(DenyReason.NOT_FOUND, "Projet introuvable")
        required = MINIMUM_ROLE[action]
        if role < required:
            return Deny(DenyReason.FORBIDDEN, f"Rôle {required.label} requis")
        return Allow(role=role)

    # 4) Clé API sur une action de gestion
    return Deny(DenyReason.FORBIDDEN, "Action interdite pour une clé API")


def authorize_global(identity: Identity, action: Action = Action.MANAGE_USERS) -> Decision:
    """Actions globales (hors projet) : réservées au rôle global admin."""
    if isinstance(identity, UserIdentity) and identity.is_global_admin:
        return Allow()
    return Deny(DenyReason.FORBIDDEN, "Rôle global admin requis")


def authorize_member_change(
    identity: Identity,
    project: Optional[ProjectAccess],
    target_user_id: uuid.UUID,
) -> Decision:
    """MANAGE_MEMBERS + protection du propriétaire implicite (ni rétrogradé, ni retiré)."""
    decision = authorize(identity, Action.MANAGE_MEMBERS, project)
    if isinstance(decision, Deny):
        return decision
    if project is not None and target_user_id == project.owner_id:
        return Deny(DenyReason.FORBIDDEN, "Le propriétaire du projet ne peut pas être modifié ni retiré")
    return decision


def enforce(decision: Decision, *, not_found_message: str = "Projet introuvable") -> Allow:
    """Convertit un Deny en erreur du cœur (NotFoundError / AuthorizationError)."""
    if isinstance(decision, Allow):
        return decision
    if decision.reason is DenyReason.NOT_FOUND:
        raise NotFoundError(not_found_message)
    raise AuthorizationError(decision.message or "Accès refusé")
