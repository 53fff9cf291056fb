from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db.models import Comment, IdeaStatus, Notification, NotificationType, UserRole
from ideas.comments import add_comment
from ideas.errors import Forbidden, NotFound, ValidationError
from notifications.events import CommentAdded, StatusChange, parse_meta
from notifications.fanout import notify_status_change, plan_comment_notifications


def _all_notifications(session) -> list[Notification]:
    return list(session.execute(select(Notification)).scalars().all())


def test_owner_comment_broadcasts_to_admins() -> None:
    owner, admin_b, admin_c = uuid4(), uuid4(), uuid4()

    planned = plan_comment_notifications(
        author_id=owner,
        author_is_admin=False,
        owner_id=owner,
        admin_ids=[admin_b, admin_c],
    )

    assert sorted(planned) == sorted(
        [(admin_b, NotificationType.NEW_COMMENT), (admin_c, NotificationType.NEW_COMMENT)]
    )


def test_admin_comment_notifies_owner_only() -> None:
    owner, admin_d, admin_e = uuid4(), uuid4(), uuid4()

    planned = plan_comment_notifications(
        author_id=admin_d,
        author_is_admin=True,
        owner_id=owner,
        admin_ids=[admin_d, admin_e],
    )

    assert planned == [(owner, NotificationType.ADMIN_COMMENT)]


def test_owner_entry_wins_over_admin_broadcast() -> None:
    owner, author, other_admin = uuid4(), uuid4(), uuid4()

    planned = plan_comment_notifications(
        author_id=author,
        author_is_admin=False,
        owner_id=owner,
        admin_ids=[owner, author, other_admin],
    )

    assert planned == [
        (owner, NotificationType.USER_COMMENT),
        (other_admin, NotificationType.NEW_COMMENT),
    ]


def test_admin_commenting_on_own_idea_notifies_nobody() -> None:
    admin = uuid4()
    planned = plan_comment_notifications(
        author_id=admin,
        author_is_admin=True,
        owner_id=admin,
        admin_ids=[admin, uuid4()],
    )
    assert planned == []


def test_add_comment_fans_out_to_admins(session, make_profile, make_idea, identity_of) -> None:
    owner = make_profile()
    admin_b = make_profile(UserRole.ADMIN)
    admin_c = make_profile(UserRole.ADMIN)
    idea = make_idea(owner, status=IdeaStatus.SUBMITTED)

    comment = add_comment(session, identity_of(owner), idea.id, body="  Added market sizing.  ")

    assert comment.body == "Added market sizing."
    rows = _all_notifications(session)
    assert sorted((row.user_id, row.type) for row in rows) == sorted(
        [(admin_b.id, "new_comment"), (admin_c.id, "new_comment")]
    )
    meta = parse_meta(rows[0].type, rows[0].meta)
    assert isinstance(meta, CommentAdded)
    assert meta.comment_id == comment.id
    assert meta.author_id == owner.id


def test_admin_comment_creates_single_owner_notification(
    session, make_profile, make_idea, identity_of
) -> None:
    owner = make_profile()
    admin_d = make_profile(UserRole.ADMIN)
    make_profile(UserRole.ADMIN)
    idea = make_idea(owner)

    add_comment(session, identity_of(admin_d), idea.id, body="Can you add pricing?")

    rows = _all_notifications(session)
    assert [(row.user_id, row.type) for row in rows] == [(owner.id, "admin_comment")]


def test_stranger_cannot_comment(session, make_profile, make_idea, identity_of) -> None:
    owner = make_profile()
    stranger = make_profile()
    idea = make_idea(owner)

    with pytest.raises(Forbidden):
        add_comment(session, identity_of(stranger), idea.id, body="Nice idea")
    with pytest.raises(NotFound):
        add_comment(session, identity_of(owner), uuid4(), body="Hello")

    assert session.execute(select(Comment)).scalars().all() == []
    assert _all_notifications(session) == []


@pytest.mark.parametrize("body", ["", "   ", "x" * 1001])
def test_comment_body_bounds(session, make_profile, make_idea, identity_of, body: str) -> None:
    owner = make_profile()
    idea = make_idea(owner)
    with pytest.raises(ValidationError):
        add_comment(session, identity_of(owner), idea.id, body=body)


def test_comment_survives_fanout_failure(
    session, make_profile, make_idea, identity_of, monkeypatch
) -> None:
    owner = make_profile()
    make_profile(UserRole.ADMIN)
    idea = make_idea(owner)

    def _failing_add_all(_rows):
        raise SQLAlchemyError("notifications table locked")

    monkeypatch.setattr(session, "add_all", _failing_add_all)

    comment = add_comment(session, identity_of(owner), idea.id, body="Still saved")

    assert session.get(Comment, comment.id) is not None
    assert _all_notifications(session) == []


def test_status_change_metadata_round_trip(session, make_profile, make_idea) -> None:
    owner = make_profile()
    idea = make_idea(owner, status=IdeaStatus.SUBMITTED)

    rows = notify_status_change(session, idea=idea, old_status="submitted", new_status="rejected")

    assert len(rows) == 1
    meta = parse_meta(rows[0].type, rows[0].meta)
    assert meta == StatusChange(old_status="submitted", new_status="rejected")
