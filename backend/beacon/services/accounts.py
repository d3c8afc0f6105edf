from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.credentials import IssuedToken, TokenSettings, hash_password, issue_user_token, verify_password
from beacon.core.errors import AuthenticationError, AuthFailure, ConflictError, NotFoundError, ValidationError
from beacon.db.transaction import atomic
from beacon.db.types import as_utc
from beacon.models.auth_token import AuthToken
from beacon.models.user import User
from beacon.schemas.auth import PasswordChange, ProfileUpdate, RegisterIn

"""
Service Accounts.

Rôle (fonctionnel) :
- Inscription, login (token “user” + trace AuthToken), logout (suppression de la trace).
- Une session n’est valable que tant que sa trace AuthToken existe (logout / changement de mot de passe révoquent).
- Profil (nom / email), changement de mot de passe.
- Administration globale : liste des utilisateurs, changement de rôle global.

Notes :
- Le login ne révèle pas si l’email existe : même erreur pour email inconnu / mauvais mot de passe.
- Le premier compte créé sur une base vide reçoit le rôle global "admin" (amorçage).
"""

logger = logging.getLogger("beacon.auth")


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return (await db.execute(select(User).where(User.email == email.strip().lower()))).scalar_one_or_none()


async def register(db: AsyncSession, data: RegisterIn) -> User:
    async with atomic(db):
        if await get_user_by_email(db, data.email) is not None:
            raise ConflictError("Email déjà utilisé")

        is_first = (await db.execute(select(func.count(User.id)))).scalar_one() == 0

        user = User(
            id=uuid.uuid4(),
            email=data.email,
            password_hash=hash_password(data.password),
            name=data.name,
            role="admin" if is_first else "user",
        )
        db.add(user)
        await db.flush()

    logger.info("user registered", extra={"user_id": str(user.id)})
    return user


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
    token_settings: TokenSettings,
    now: datetime,
) -> tuple[User, IssuedToken]:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login refused", extra={"error_code": "UNAUTHORIZED"})
        raise AuthenticationError(AuthFailure.INVALID_OR_EXPIRED, "Email ou mot de passe incorrect")

    issued = issue_user_token(str(user.id), user.role, token_settings, now)

    async with atomic(db):
        db.add(
            AuthToken(
                id=uuid.uuid4(),
                user_id=user.id,
                token=issued.token,
                expires_at=issued.expires_at,
                last_used_at=as_utc(now),
            )
        )

    logger.info("login", extra={"user_id": str(user.id)})
    return user, issued


async def touch_session(db: AsyncSession, user_id: uuid.UUID, token: str, now: datetime) -> bool:
    """Vrai si la session (trace AuthToken) existe encore ; met à jour last_used_at."""
    async with atomic(db):
        result = await db.execute(
            update(AuthToken)
            .where(AuthToken.user_id == user_id, AuthToken.token == token)
            .values(last_used_at=as_utc(now))
            .execution_options(synchronize_session=False)
        )
    return bool(result.rowcount)


async def logout(db: AsyncSession, user_id: uuid.UUID, token: str) -> int:
    """Supprime la trace de session : le bearer est refusé dès la requête suivante."""
    async with atomic(db):
        result = await db.execute(
            delete(AuthToken).where(AuthToken.user_id == user_id, AuthToken.token == token)
        )
    logger.info("logout", extra={"user_id": str(user_id)})
    return int(result.rowcount or 0)


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    async with atomic(db):
        if data.email is not None and data.email != user.email:
            if await get_user_by_email(db, data.email) is not None:
                raise ConflictError("Email déjà utilisé")
            user.email = data.email
        if data.name is not None:
            user.name = data.name.strip()
        await db.flush()
    await db.refresh(user)
    return user


async def change_password(db: AsyncSession, user: User, data: PasswordChange) -> None:
    if not verify_password(data.current_password, user.password_hash):
        raise ValidationError("Mot de passe actuel incorrect")

    async with atomic(db):
        user.password_hash = hash_password(data.new_password)
        # Révoque toutes les sessions ouvertes (voir touch_session)
        await db.execute(delete(AuthToken).where(AuthToken.user_id == user.id))

    logger.info("password changed", extra={"user_id": str(user.id)})


async def list_users(db: AsyncSession, *, page: int = 1, limit: int = 50) -> tuple[list[User], int]:
    total = (await db.execute(select(func.count(User.id)))).scalar_one()
    rows = (
        await db.execute(select(User).order_by(User.created_at, User.email).offset((page - 1) * limit).limit(limit))
    ).scalars().all()
    return list(rows), total


async def set_user_role(db: AsyncSession, user_id: uuid.UUID, role: str) -> User:
    async with atomic(db):
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("Utilisateur introuvable")
        user.role = role
        await db.flush()
    await db.refresh(user)

    logger.info("user role changed", extra={"user_id": str(user_id)})
    return user
