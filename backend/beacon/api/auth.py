from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import get_current_user, get_now, get_token_settings
from beacon.core.credentials import TokenSettings, extract_credentials
from beacon.db.session import get_db
from beacon.models.user import User
from beacon.schemas.auth import LoginIn, PasswordChange, ProfileUpdate, RegisterIn, TokenOut, UserOut
from beacon.services import accounts

"""
API Auth.

Rôle (fonctionnel) :
- Inscription / login / logout des opérateurs humains.
- Profil de l’utilisateur courant (lecture, mise à jour, mot de passe).
"""

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=201)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)):
    user = await accounts.register(db, payload)
    return UserOut.model_validate(user)


@router.post("/login", response_model=TokenOut)
async def login(
    payload: LoginIn,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    token_settings: TokenSettings = Depends(get_token_settings),
):
    user, issued = await accounts.authenticate(db, payload.email, payload.password, token_settings, now)
    return TokenOut(access_token=issued.token, expires_at=issued.expires_at, user=UserOut.model_validate(user))


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = extract_credentials(request.headers).bearer or ""
    await accounts.logout(db, user.id, token)
    return Response(status_code=204)


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return UserOut.model_validate(user)


@router.patch("/me", response_model=UserOut)
async def update_me(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return UserOut.model_validate(await accounts.update_profile(db, user, payload))


@router.post("/me/password", status_code=204)
async def change_password(
    payload: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await accounts.change_password(db, user, payload)
    return Response(status_code=204)
