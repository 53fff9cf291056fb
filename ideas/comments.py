from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import Comment, Idea
from notifications.fanout import notify_comment

from .errors import DatabaseError, NotFound, ValidationError
from .guard import can_comment, ensure, require_profile
from .identity import Identity

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 1000


def clean_comment_body(body: str | None, *, min_length: int = 1) -> str:
    text = (body or "").strip()
    if len(text) < min_length:
        if min_length <= 1:
            raise ValidationError("Comment body cannot be empty")
        raise ValidationError(f"Comment must be at least {min_length} characters")
    if len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters")
    return text


def insert_comment(session: Session, *, idea: Idea, author_id: UUID, body: str) -> Comment:
    comment = Comment(idea_id=idea.id, author_id=author_id, body=body)
    session.add(comment)
    session.commit()
    return comment


def add_comment(session: Session, identity: Identity, idea_id: UUID, *, body: str) -> Comment:
    """Append a comment to an idea and notify the other party.

    Owners and admins may comment at any status. The comment is committed
    before notifications are created, so a fan-out failure never loses it.
    """
    require_profile(identity)
    text = clean_comment_body(body)

    idea = session.get(Idea, idea_id)
    if idea is None:
        raise NotFound("Idea not found")
    ensure(
        can_comment(identity, idea),
        identity,
        f"comment on idea {idea_id}",
        "You do not have permission to comment on this idea",
    )

    try:
        comment = insert_comment(session, idea=idea, author_id=identity.user_id, body=text)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to insert comment on idea %s", idea_id)
        raise DatabaseError("Failed to create comment") from exc

    logger.info("User %s commented on idea %s", identity.user_id, idea_id)
    notify_comment(session, comment=comment, idea=idea, author_is_admin=identity.is_admin)
    return comment
