"""Reading and acknowledging notifications.

Only the recipient can see or mark a notification. Marking ignores ids that
belong to someone else rather than failing the whole request.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from db.models import Notification
from ideas.errors import DatabaseError, ValidationError
from ideas.identity import Identity

logger = logging.getLogger(__name__)

INBOX_MAX_LIMIT = 50
SORT_COLUMNS = {"created_at": Notification.created_at, "read": Notification.read}


@dataclass(frozen=True)
class InboxPage:
    items: list[Notification]
    total: int
    unread: int
    limit: int
    offset: int


def list_notifications(
    session: Session,
    identity: Identity,
    *,
    read: bool | None = None,
    sort: str = "created_at",
    order: str = "desc",
    limit: int = 20,
    offset: int = 0,
) -> InboxPage:
    if not 1 <= limit <= INBOX_MAX_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {INBOX_MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("Offset cannot be negative")
    sort_column = SORT_COLUMNS.get(sort)
    if sort_column is None:
        raise ValidationError(f"Cannot sort by '{sort}'")
    if order not in {"asc", "desc"}:
        raise ValidationError("Order must be 'asc' or 'desc'")

    conditions = [Notification.user_id == identity.user_id]
    if read is not None:
        conditions.append(Notification.read.is_(read))

    total = session.execute(
        select(func.count()).select_from(Notification).where(*conditions)
    ).scalar_one()
    unread = session.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == identity.user_id, Notification.read.is_(False))
    ).scalar_one()
    stmt = (
        select(Notification)
        .where(*conditions)
        .options(selectinload(Notification.idea))
        .order_by(sort_column.desc() if order == "desc" else sort_column.asc(), Notification.id)
        .limit(limit)
        .offset(offset)
    )
    items = list(session.execute(stmt).scalars().all())
    return InboxPage(items=items, total=int(total), unread=int(unread), limit=limit, offset=offset)


def mark_notifications(
    session: Session,
    identity: Identity,
    ids: Iterable[UUID],
    *,
    read: bool = True,
) -> list[Notification]:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        raise ValidationError("At least one notification id is required")

    stmt = select(Notification).where(
        Notification.id.in_(wanted),
        Notification.user_id == identity.user_id,
    )
    rows = list(session.execute(stmt).scalars().all())
    for row in rows:
        row.read = read
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to update notifications for %s", identity.user_id)
        raise DatabaseError("Failed to update notifications") from exc
    if len(rows) < len(wanted):
        logger.info(
            "Ignored %d notification id(s) not owned by %s",
            len(wanted) - len(rows),
            identity.user_id,
        )
    return rows
