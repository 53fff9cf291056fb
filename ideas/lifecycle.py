"""
Idea lifecycle: the status state machine and the operations that drive it.

    draft ──submit──▶ submitted ──approve──▶ approved
                        ▲    │
                 submit │    │ reject
                        │    ▼
                       rejected

Every operation takes the resolved caller explicitly and checks the guard
before writing. Status changes are committed first; notifications follow as a
best-effort second step.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Literal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from db.models import Comment, Idea, IdeaStatus
from notifications.fanout import notify_comment, notify_status_change

from .comments import clean_comment_body, insert_comment
from .dashboard import status_counts
from .errors import DatabaseError, InvalidStatus, NotFound, ValidationError
from .guard import (
    can_delete,
    can_modify_content,
    can_view,
    ensure,
    is_owner,
    require_admin,
    require_profile,
)
from .identity import Identity

logger = logging.getLogger(__name__)

DecisionAction = Literal["approve", "reject"]

TRANSITIONS: dict[tuple[str, str], str] = {
    (IdeaStatus.DRAFT.value, "submit"): IdeaStatus.SUBMITTED.value,
    (IdeaStatus.REJECTED.value, "submit"): IdeaStatus.SUBMITTED.value,
    (IdeaStatus.SUBMITTED.value, "approve"): IdeaStatus.APPROVED.value,
    (IdeaStatus.SUBMITTED.value, "reject"): IdeaStatus.REJECTED.value,
}

DECISION_PAST_TENSE: dict[str, str] = {"approve": "approved", "reject": "rejected"}

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10
DECISION_COMMENT_MIN_LENGTH = 3
REVIEW_SORT_COLUMNS = {
    "created_at": Idea.created_at,
    "updated_at": Idea.updated_at,
    "title": Idea.title,
}


def transition(status: str, action: str) -> str:
    target = TRANSITIONS.get((status, action))
    if target is None:
        raise InvalidStatus(f"Cannot {action} an idea with status '{status}'")
    return target


@dataclass(frozen=True)
class Decision:
    idea: Idea
    action: DecisionAction
    comment: Comment | None

    @property
    def message(self) -> str:
        return f"Idea {DECISION_PAST_TENSE[self.action]} successfully"


@dataclass(frozen=True)
class ReviewPage:
    rows: list[tuple[Idea, int]]
    total: int
    counts: dict[str, int]


def _clean_title(title: str | None) -> str:
    text = (title or "").strip()
    if len(text) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters")
    if len(text) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return text


def _clean_description(description: str | None) -> str:
    text = (description or "").strip()
    if len(text) < DESCRIPTION_MIN_LENGTH:
        raise ValidationError(f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters")
    return text


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    cleaned: list[str] = []
    for tag in tags or []:
        text = str(tag).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def _parse_status(status: str | None) -> str | None:
    if status is None:
        return None
    try:
        return IdeaStatus(status).value
    except ValueError as exc:
        raise ValidationError(f"Unknown status '{status}'") from exc


def _load(session: Session, idea_id: UUID) -> Idea:
    idea = session.get(Idea, idea_id)
    if idea is None:
        raise NotFound("Idea not found")
    return idea


def _commit(session: Session, message: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(message)
        raise DatabaseError(message) from exc


def _search_filter(search: str | None):
    term = (search or "").strip()
    if not term:
        return None
    pattern = f"%{term}%"
    return or_(Idea.title.ilike(pattern), Idea.description.ilike(pattern))


def create_idea(
    session: Session,
    identity: Identity,
    *,
    title: str,
    description: str,
    tags: Iterable[str] | None = None,
) -> Idea:
    require_profile(identity)
    idea = Idea(
        owner_id=identity.user_id,
        title=_clean_title(title),
        description=_clean_description(description),
        tags=normalize_tags(tags),
        status=IdeaStatus.DRAFT.value,
    )
    session.add(idea)
    _commit(session, "Failed to create idea")
    logger.info("User %s created idea %s", identity.user_id, idea.id)
    return idea


def get_idea(session: Session, identity: Identity, idea_id: UUID) -> Idea:
    stmt = (
        select(Idea)
        .where(Idea.id == idea_id)
        .options(
            selectinload(Idea.owner),
            selectinload(Idea.comments).selectinload(Comment.author),
        )
    )
    idea = session.execute(stmt).scalar_one_or_none()
    if idea is None:
        raise NotFound("Idea not found")
    ensure(
        can_view(identity, idea),
        identity,
        f"view idea {idea_id}",
        "You do not have permission to view this idea",
    )
    return idea


def list_ideas(
    session: Session,
    identity: Identity,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[Idea], int]:
    conditions = []
    if not identity.is_admin:
        conditions.append(Idea.owner_id == identity.user_id)
    status_value = _parse_status(status)
    if status_value:
        conditions.append(Idea.status == status_value)
    search_clause = _search_filter(search)
    if search_clause is not None:
        conditions.append(search_clause)

    total = session.execute(select(func.count()).select_from(Idea).where(*conditions)).scalar_one()
    stmt = (
        select(Idea)
        .where(*conditions)
        .options(selectinload(Idea.owner))
        .order_by(Idea.created_at.desc(), Idea.id)
        .limit(limit)
        .offset(offset)
    )
    return list(session.execute(stmt).scalars().all()), int(total)


def list_ideas_for_review(
    session: Session,
    identity: Identity,
    *,
    status: str | None = None,
    search: str | None = None,
    sort: str = "updated_at",
    order: str = "desc",
    limit: int = 20,
    offset: int = 0,
) -> ReviewPage:
    require_admin(identity)
    sort_column = REVIEW_SORT_COLUMNS.get(sort)
    if sort_column is None:
        raise ValidationError(f"Cannot sort by '{sort}'")
    if order not in {"asc", "desc"}:
        raise ValidationError("Order must be 'asc' or 'desc'")

    conditions = []
    status_value = _parse_status(status)
    if status_value:
        conditions.append(Idea.status == status_value)
    search_clause = _search_filter(search)
    if search_clause is not None:
        conditions.append(search_clause)

    comment_count = (
        select(func.count(Comment.id))
        .where(Comment.idea_id == Idea.id)
        .correlate(Idea)
        .scalar_subquery()
    )
    total = session.execute(select(func.count()).select_from(Idea).where(*conditions)).scalar_one()
    stmt = (
        select(Idea, comment_count.label("comment_count"))
        .where(*conditions)
        .options(selectinload(Idea.owner))
        .order_by(sort_column.desc() if order == "desc" else sort_column.asc(), Idea.id)
        .limit(limit)
        .offset(offset)
    )
    rows = [(idea, int(count)) for idea, count in session.execute(stmt).all()]
    return ReviewPage(rows=rows, total=int(total), counts=status_counts(session))


def update_idea(
    session: Session,
    identity: Identity,
    idea_id: UUID,
    *,
    title: str | None = None,
    description: str | None = None,
    tags: Iterable[str] | None = None,
) -> Idea:
    idea = _load(session, idea_id)
    ensure(
        can_modify_content(identity, idea),
        identity,
        f"update idea {idea_id}",
        "You can only edit your own ideas while they are draft or rejected",
    )
    if title is not None:
        idea.title = _clean_title(title)
    if description is not None:
        idea.description = _clean_description(description)
    if tags is not None:
        idea.tags = normalize_tags(tags)
    _commit(session, "Failed to update idea")
    return idea


def delete_idea(session: Session, identity: Identity, idea_id: UUID) -> None:
    idea = _load(session, idea_id)
    ensure(
        can_delete(identity, idea),
        identity,
        f"delete idea {idea_id}",
        "You can only delete your own draft ideas",
    )
    session.delete(idea)
    _commit(session, "Failed to delete idea")
    logger.info("User %s deleted idea %s", identity.user_id, idea_id)


def submit_idea(session: Session, identity: Identity, idea_id: UUID) -> Idea:
    idea = _load(session, idea_id)
    ensure(
        is_owner(identity, idea),
        identity,
        f"submit idea {idea_id}",
        "You can only submit your own ideas",
    )
    old_status = idea.status
    new_status = transition(old_status, "submit")
    if len((idea.title or "").strip()) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters before submitting")

    idea.status = new_status
    _commit(session, "Failed to submit idea")
    logger.info("Idea %s moved %s -> %s by owner %s", idea_id, old_status, new_status, identity.user_id)
    notify_status_change(session, idea=idea, old_status=old_status, new_status=new_status)
    return idea


def decide_idea(
    session: Session,
    identity: Identity,
    idea_id: UUID,
    *,
    action: str,
    comment: str,
) -> Decision:
    """Approve or reject a submitted idea with mandatory feedback.

    The status write is committed on its own. The feedback comment is
    inserted afterwards; if that insert fails the decision still stands and
    the failure is only logged.
    """
    require_admin(identity)
    idea = _load(session, idea_id)
    if idea.status != IdeaStatus.SUBMITTED.value:
        raise InvalidStatus("Only submitted ideas can be approved or rejected")
    if action not in {"approve", "reject"}:
        raise ValidationError("Action must be 'approve' or 'reject'")
    body = clean_comment_body(comment, min_length=DECISION_COMMENT_MIN_LENGTH)

    old_status = idea.status
    new_status = transition(old_status, action)
    idea.status = new_status
    _commit(session, "Failed to update idea status")
    logger.info("Idea %s moved %s -> %s by admin %s", idea_id, old_status, new_status, identity.user_id)
    notify_status_change(session, idea=idea, old_status=old_status, new_status=new_status)

    try:
        decision_comment = insert_comment(session, idea=idea, author_id=identity.user_id, body=body)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to store decision comment for idea %s", idea_id)
        decision_comment = None

    if decision_comment is not None:
        notify_comment(session, comment=decision_comment, idea=idea, author_is_admin=True)
    return Decision(idea=idea, action=action, comment=decision_comment)
