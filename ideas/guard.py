"""
Authorization predicates for the idea review workflow.

Every predicate is pure: it looks only at the caller and the idea's owner and
status. Mutating operations call the matching predicate before any write and
raise ``Forbidden`` when it is false.

- Owner: view, comment, edit while draft/rejected, delete while draft
- Admin: view and comment on any idea, decide on submitted ideas
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from db.models import IdeaStatus

from .errors import Forbidden
from .identity import Identity

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = frozenset({IdeaStatus.DRAFT.value, IdeaStatus.REJECTED.value})


class GuardedIdea(Protocol):
    owner_id: UUID
    status: str


def is_owner(actor: Identity, idea: GuardedIdea) -> bool:
    return actor.user_id == idea.owner_id


def can_view(actor: Identity, idea: GuardedIdea) -> bool:
    """
    Check if the caller can read an idea and its comments.

    Args:
        actor: The resolved caller.
        idea: The idea being read.

    Returns:
        True for the idea's owner or any admin.
    """
    return is_owner(actor, idea) or actor.is_admin


def can_modify_content(actor: Identity, idea: GuardedIdea) -> bool:
    """
    Check if the caller can edit title, description or tags.

    Admins never edit content; their only write is the decision itself.

    Args:
        actor: The resolved caller.
        idea: The idea being edited.

    Returns:
        True for the owner while the idea is draft or rejected.
    """
    return is_owner(actor, idea) and idea.status in EDITABLE_STATUSES


def can_decide(actor: Identity, idea: GuardedIdea) -> bool:
    """
    Check if the caller can approve or reject an idea.

    Args:
        actor: The resolved caller.
        idea: The idea under review.

    Returns:
        True for an admin while the idea is submitted.
    """
    return actor.is_admin and idea.status == IdeaStatus.SUBMITTED.value


def can_comment(actor: Identity, idea: GuardedIdea) -> bool:
    """
    Check if the caller can add a comment.

    Args:
        actor: The resolved caller.
        idea: The idea being discussed.

    Returns:
        True for the idea's owner or any admin, regardless of status.
    """
    return is_owner(actor, idea) or actor.is_admin


def can_delete(actor: Identity, idea: GuardedIdea) -> bool:
    """
    Check if the caller can delete an idea.

    Args:
        actor: The resolved caller.
        idea: The idea to delete.

    Returns:
        True for the owner while the idea is still a draft.
    """
    return is_owner(actor, idea) and idea.status == IdeaStatus.DRAFT.value


def ensure(allowed: bool, actor: Identity, action: str, message: str) -> None:
    if not allowed:
        logger.warning(
            "Permission denied: %s for user %s (role=%s)",
            action,
            actor.user_id,
            actor.role.value if actor.role else None,
        )
        raise Forbidden(message)


def require_profile(actor: Identity) -> None:
    if actor.profile_missing:
        raise Forbidden("A profile is required for this action; sign in again to create one")


def require_admin(actor: Identity) -> None:
    ensure(actor.is_admin, actor, "admin", "Admin privileges required")
