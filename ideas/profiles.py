from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import Profile, UserRole

from .errors import DatabaseError, NotFound
from .identity import Identity

logger = logging.getLogger(__name__)


def _claim(claims: dict, *names: str) -> str | None:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def ensure_profile(session: Session, identity: Identity) -> tuple[Profile, bool]:
    """Return the caller's profile, creating it on first authentication.

    New profiles always start as owners. Returns the row and whether it was
    created by this call.
    """
    profile = session.get(Profile, identity.user_id)
    if profile is not None:
        return profile, False

    profile = Profile(
        id=identity.user_id,
        role=UserRole.OWNER.value,
        full_name=_claim(identity.claims, "name", "full_name"),
        avatar_url=_claim(identity.claims, "avatar_url", "picture"),
    )
    session.add(profile)
    try:
        session.commit()
    except IntegrityError as exc:
        # Concurrent first login already created it.
        session.rollback()
        existing = session.get(Profile, identity.user_id)
        if existing is None:
            raise DatabaseError("Failed to create profile") from exc
        return existing, False
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to create profile for %s", identity.user_id)
        raise DatabaseError("Failed to create profile") from exc
    logger.info("Created profile for user %s", identity.user_id)
    return profile, True


def set_role(session: Session, user_id: UUID, role: UserRole) -> Profile:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFound(f"Profile {user_id} not found")
    previous = profile.role
    profile.role = UserRole(role).value
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise DatabaseError("Failed to update role") from exc
    logger.info("Changed role of %s from %s to %s", user_id, previous, profile.role)
    return profile
