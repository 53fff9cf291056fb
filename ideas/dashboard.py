from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from db.models import Idea, IdeaStatus, Notification, NotificationType, Profile

from .identity import Identity

RECENT_LIMIT = 5


def status_counts(session: Session, owner_id: UUID | None = None) -> dict[str, int]:
    stmt = select(Idea.status, func.count()).group_by(Idea.status)
    if owner_id is not None:
        stmt = stmt.where(Idea.owner_id == owner_id)
    by_status = {status: int(count) for status, count in session.execute(stmt).all()}
    counts = {status.value: by_status.get(status.value, 0) for status in IdeaStatus}
    counts["total"] = sum(by_status.values())
    return counts


def _counter_fields(counts: dict[str, int]) -> dict[str, int]:
    return {f"{name}_count": value for name, value in counts.items()}


def _idea_summary(idea: Idea | None) -> dict[str, Any] | None:
    if idea is None:
        return None
    return {"id": idea.id, "title": idea.title, "status": idea.status}


def _recent_status_changes(session: Session) -> list[dict[str, Any]]:
    stmt = (
        select(Notification)
        .where(Notification.type == NotificationType.STATUS_CHANGE.value)
        .options(selectinload(Notification.idea).selectinload(Idea.owner))
        .order_by(Notification.created_at.desc())
        .limit(RECENT_LIMIT)
    )
    activity = []
    for row in session.execute(stmt).scalars().all():
        owner = row.idea.owner if row.idea else None
        activity.append(
            {
                "id": row.id,
                "type": row.type,
                "meta": row.meta,
                "created_at": row.created_at,
                "idea": _idea_summary(row.idea),
                "owner": {"id": owner.id, "full_name": owner.full_name} if owner else None,
            }
        )
    return activity


def _recent_notifications(session: Session, user_id: UUID) -> list[dict[str, Any]]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .options(selectinload(Notification.idea))
        .order_by(Notification.created_at.desc())
        .limit(RECENT_LIMIT)
    )
    return [
        {
            "id": row.id,
            "type": row.type,
            "meta": row.meta,
            "read": row.read,
            "created_at": row.created_at,
            "idea": _idea_summary(row.idea),
        }
        for row in session.execute(stmt).scalars().all()
    ]


def dashboard(session: Session, identity: Identity) -> dict[str, Any]:
    """Aggregate counters for the landing page.

    Admins see platform-wide counts with the review queue size and recent
    decisions. Everyone else sees their own ideas and latest notifications.
    """
    if identity.is_admin:
        counts = status_counts(session)
        user_count = session.execute(select(func.count()).select_from(Profile)).scalar_one()
        return {
            **_counter_fields(counts),
            "pending_review_count": counts[IdeaStatus.SUBMITTED.value],
            "user_count": int(user_count),
            "recent_activity": _recent_status_changes(session),
        }

    unread = session.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == identity.user_id, Notification.read.is_(False))
    ).scalar_one()
    return {
        **_counter_fields(status_counts(session, owner_id=identity.user_id)),
        "recent_notifications": _recent_notifications(session, identity.user_id),
        "unread_count": int(unread),
    }
