"""
Notification fan-out for comment and status events.

Recipients are planned by a pure function and persisted after the triggering
write has committed. Persistence is best effort: a failed insert is logged and
rolled back, and the comment or status change that caused it stands.
"""

from __future__ import annotations

import logging
from typing import Iterable, NamedTuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import Comment, Idea, Notification, NotificationType, Profile, UserRole

from .events import CommentAdded, StatusChange, dump_meta

logger = logging.getLogger(__name__)


class PlannedNotification(NamedTuple):
    recipient_id: UUID
    type: NotificationType


def comment_notification_type(author_is_admin: bool) -> NotificationType:
    return NotificationType.ADMIN_COMMENT if author_is_admin else NotificationType.USER_COMMENT


def plan_comment_notifications(
    *,
    author_id: UUID,
    author_is_admin: bool,
    owner_id: UUID,
    admin_ids: Iterable[UUID],
) -> list[PlannedNotification]:
    """Decide who hears about a new comment.

    The owner hears about comments from anyone else, typed by the author's
    role. Comments from non-admins are broadcast to every admin as
    ``new_comment``. Each recipient appears once; the owner entry wins over the
    broadcast and the author is never a recipient.
    """
    planned: dict[UUID, NotificationType] = {}
    if author_id != owner_id:
        planned[owner_id] = comment_notification_type(author_is_admin)
    if not author_is_admin:
        for admin_id in admin_ids:
            if admin_id == author_id or admin_id in planned:
                continue
            planned[admin_id] = NotificationType.NEW_COMMENT
    return [PlannedNotification(recipient, kind) for recipient, kind in planned.items()]


def _admin_ids(session: Session) -> list[UUID]:
    stmt = select(Profile.id).where(Profile.role == UserRole.ADMIN.value).order_by(Profile.created_at)
    return list(session.execute(stmt).scalars().all())


def _persist(session: Session, rows: list[Notification], event: str) -> list[Notification]:
    if not rows:
        return []
    try:
        session.add_all(rows)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Notification fan-out failed for %s", event)
        return []
    logger.info("Created %d notification(s) for %s", len(rows), event)
    return rows


def notify_comment(
    session: Session,
    *,
    comment: Comment,
    idea: Idea,
    author_is_admin: bool,
) -> list[Notification]:
    try:
        admin_ids = [] if author_is_admin else _admin_ids(session)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not load admins for comment %s", comment.id)
        return []

    planned = plan_comment_notifications(
        author_id=comment.author_id,
        author_is_admin=author_is_admin,
        owner_id=idea.owner_id,
        admin_ids=admin_ids,
    )
    rows = [
        Notification(
            user_id=item.recipient_id,
            idea_id=idea.id,
            type=item.type.value,
            meta=dump_meta(
                CommentAdded(type=item.type.value, comment_id=comment.id, author_id=comment.author_id)
            ),
            read=False,
        )
        for item in planned
    ]
    return _persist(session, rows, f"comment {comment.id}")


def notify_status_change(
    session: Session,
    *,
    idea: Idea,
    old_status: str,
    new_status: str,
) -> list[Notification]:
    row = Notification(
        user_id=idea.owner_id,
        idea_id=idea.id,
        type=NotificationType.STATUS_CHANGE.value,
        meta=dump_meta(StatusChange(old_status=old_status, new_status=new_status)),
        read=False,
    )
    return _persist(session, [row], f"idea {idea.id} {old_status}->{new_status}")
