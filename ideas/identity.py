from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from db.models import Profile, UserRole

from .errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthConfig:
    secret: str
    algorithm: str
    audience: str | None = None


@dataclass(frozen=True)
class Identity:
    """The caller of a request, resolved once at the API boundary.

    ``role`` is ``None`` when the token is valid but no profile row exists yet.
    """

    user_id: UUID
    role: UserRole | None
    claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def profile_missing(self) -> bool:
        return self.role is None


def load_auth_config() -> AuthConfig:
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is not set")
    return AuthConfig(
        secret=secret,
        algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        audience=os.getenv("JWT_AUDIENCE") or None,
    )


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise Unauthenticated("You must be logged in to access this resource")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        logger.warning("Rejected authorization header without bearer token")
        raise Unauthenticated("Invalid token format")
    return token.strip()


def decode_claims(token: str, config: AuthConfig) -> dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            config.secret,
            algorithms=[config.algorithm],
            audience=config.audience,
            options={"verify_aud": config.audience is not None},
        )
    except JWTError as exc:
        logger.warning("JWT decode failed: %s", exc)
        raise Unauthenticated("Invalid or expired token") from exc
    if not claims.get("sub"):
        raise Unauthenticated("Token missing subject")
    return claims


def resolve_identity(session, authorization: str | None, config: AuthConfig) -> Identity:
    claims = decode_claims(_bearer_token(authorization), config)
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError as exc:
        raise Unauthenticated("Token subject is not a valid user id") from exc

    profile = session.get(Profile, user_id)
    if profile is None:
        logger.info("Authenticated user %s has no profile yet", user_id)
        return Identity(user_id=user_id, role=None, claims=claims)
    return Identity(user_id=user_id, role=UserRole(profile.role), claims=claims)
