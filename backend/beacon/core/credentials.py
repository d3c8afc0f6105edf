from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from beacon.core.errors import AuthenticationError, AuthFailure, InternalError

"""
Core Credentials.

Rôle (fonctionnel) :
- Hash / vérification des mots de passe (passlib, pbkdf2_sha256 salé).
- Émission / vérification des tokens signés (python-jose, HS256) pour les deux modes :
  - scope "user"    : session d’un opérateur humain (durée courte, JWT_EXPIRATION_SECONDS),
  - scope "api_key" : capacité d’ingestion longue durée attachée à un projet (~10 ans).
- Extraction des credentials présentés dans les headers HTTP.

Payload (claims JWT) :
{ "sub": str, "role": str, "exp": unix_seconds, "projectId": str | null, "scope": "user" | "api_key" }

Notes :
- Aucune lecture de configuration globale ici : secret, algorithme et durées arrivent via TokenSettings.
- L’horloge (`now`) est toujours fournie par l’appelant.
- Vérifier un token authentifie “qui / quoi” : aucune décision d’autorisation n’est prise ici.
"""

# Schéma pur Python (pas de dépendance native type bcrypt)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

API_KEY_ROLE = "api_key"


class TokenScope(str, Enum):
    USER = "user"
    API_KEY = "api_key"


@dataclass(frozen=True)
class TokenSettings:
    """Configuration explicite du codec (construite depuis Settings à la frontière HTTP)."""
    secret: str
    algorithm: str = "HS256"
    ttl_seconds: int = 86400
    api_key_token_days: int = 3650

    @classmethod
    def from_settings(cls, s: Any) -> "TokenSettings":
        return cls(
            secret=s.JWT_SECRET,
            algorithm=s.JWT_ALGORITHM,
            ttl_seconds=int(s.JWT_EXPIRATION_SECONDS),
            api_key_token_days=int(s.API_KEY_TOKEN_DAYS),
        )


@dataclass(frozen=True)
class TokenPayload:
    sub: str
    role: str
    exp: int
    scope: TokenScope
    project_id: Optional[str] = None

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": self.sub,
            "role": self.role,
            "exp": self.exp,
            "projectId": self.project_id,
            "scope": self.scope.value,
        }

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    payload: TokenPayload

    @property
    def expires_at(self) -> datetime:
        return self.payload.expires_at


@dataclass(frozen=True)
class PresentedCredentials:
    """Credentials bruts lus dans la requête (aucune vérification à ce stade)."""
    bearer: Optional[str] = None
    api_key: Optional[str] = None
    # Header Authorization présent mais pas au format "Bearer <token>"
    malformed_authorization: bool = False

    @property
    def empty(self) -> bool:
        return not self.bearer and not self.api_key and not self.malformed_authorization


# ---------------------------------------------------------------------------
# Mots de passe
# ---------------------------------------------------------------------------

def hash_password(plaintext: str) -> str:
    try:
        return pwd_context.hash(plaintext)
    except (TypeError, ValueError) as exc:
        raise InternalError("Échec du hachage du mot de passe") from exc


def verify_password(plaintext: str, password_hash: str) -> bool:
    """
    Vérifie un mot de passe.

    - Mauvais mot de passe : False (jamais d’exception).
    - Hash stocké illisible / inconnu : InternalError (donnée corrompue côté serveur).
    """
    try:
        return bool(pwd_context.verify(plaintext, password_hash))
    except (TypeError, ValueError) as exc:
        raise InternalError("Hash de mot de passe stocké invalide") from exc


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def _as_utc(now: datetime) -> datetime:
    return now.replace(tzinfo=timezone.utc) if now.tzinfo is None else now.astimezone(timezone.utc)


def _encode(payload: TokenPayload, settings: TokenSettings) -> IssuedToken:
    try:
        token = jwt.encode(payload.to_claims(), settings.secret, algorithm=settings.algorithm)
    except JWTError as exc:
        raise InternalError("Échec de la signature du token") from exc
    return IssuedToken(token=token, payload=payload)


def issue_user_token(user_id: str, role: str, settings: TokenSettings, now: datetime) -> IssuedToken:
    exp = int(_as_utc(now).timestamp()) + settings.ttl_seconds
    return _encode(
        TokenPayload(sub=str(user_id), role=role, exp=exp, scope=TokenScope.USER),
        settings,
    )


def issue_project_key_token(project_id: str, settings: TokenSettings, now: datetime) -> IssuedToken:
    # Sujet aléatoire : le token ne représente personne, seulement une capacité sur le projet
    exp = int((_as_utc(now) + timedelta(days=settings.api_key_token_days)).timestamp())
    return _encode(
        TokenPayload(
            sub=str(uuid.uuid4()),
            role=API_KEY_ROLE,
            exp=exp,
            scope=TokenScope.API_KEY,
            project_id=str(project_id),
        ),
        settings,
    )


def _payload_from_claims(claims: Mapping[str, Any]) -> TokenPayload:
    sub = claims.get("sub")
    role = claims.get("role")
    exp = claims.get("exp")
    project_id = claims.get("projectId")

    if not isinstance(sub, str) or not sub or not isinstance(role, str):
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token mal formé")
    if isinstance(exp, bool) or not isinstance(exp, int):
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token mal formé")
    if project_id is not None and not isinstance(project_id, str):
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token mal formé")

    try:
        scope = TokenScope(claims.get("scope"))
    except ValueError:
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Scope de token inconnu") from None

    if scope is TokenScope.API_KEY and not project_id:
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token api_key sans projectId")

    return TokenPayload(sub=sub, role=role, exp=exp, scope=scope, project_id=project_id)


def verify_token(token: str, settings: TokenSettings, now: datetime) -> TokenPayload:
    """
    Vérifie signature + expiration d’un token.

    - Pas un JWT du tout : MALFORMED_CREDENTIAL.
    - Signature invalide : INVALID_OR_EXPIRED.
    - Claims incomplets / mal typés : MALFORMED_CREDENTIAL.
    - `now` >= exp : INVALID_OR_EXPIRED (l’expiration est évaluée avec l’horloge fournie).
    """
    try:
        jwt.get_unverified_header(token)
    except JWTError:
        raise AuthenticationError(AuthFailure.MALFORMED_CREDENTIAL, "Token mal formé") from None

    try:
        claims = jwt.decode(
            token,
            settings.secret,
            algorithms=[settings.algorithm],
            options={"verify_exp": False},
        )
    except JWTError:
        raise AuthenticationError(AuthFailure.INVALID_OR_EXPIRED, "Token invalide ou expiré") from None

    payload = _payload_from_claims(claims)

    if _as_utc(now).timestamp() >= payload.exp:
        raise AuthenticationError(AuthFailure.INVALID_OR_EXPIRED, "Token invalide ou expiré")

    return payload


# ---------------------------------------------------------------------------
# Clés API / headers
# ---------------------------------------------------------------------------

def generate_api_key() -> str:
    """Secret opaque de projet (non dérivable, non signé)."""
    return f"bk_{secrets.token_hex(24)}"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Mapping simple (dict) : recherche insensible à la casse
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value


def extract_credentials(headers: Mapping[str, str]) -> PresentedCredentials:
    """Lit `Authorization: Bearer <token>` et `X-API-Key: <key>`."""
    bearer: Optional[str] = None
    malformed = False

    auth = _header(headers, "authorization")
    if auth is not None and auth.strip():
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            bearer = parts[1].strip()
        else:
            malformed = True

    api_key = (_header(headers, "x-api-key") or "").strip() or None

    return PresentedCredentials(bearer=bearer, api_key=api_key, malformed_authorization=malformed)
