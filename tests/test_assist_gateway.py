from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select

import assist.gateway as gateway
from assist.gateway import AssistConfig, improve, list_usage_records, load_assist_config, usage_today
from db.models import AssistUsageRecord, UserRole
from ideas.errors import Forbidden, RateLimited, ServiceError, ValidationError
from ideas.identity import Identity
from llm.mediator import LLMError


class _FakeMediator:
    def __init__(self, result=None, error: LLMError | None = None) -> None:
        self.result = result if result is not None else {
            "improvedCopy": "A sharper pitch for neighbourhood repair cafes.",
            "tags": ["repair", "community"],
        }
        self.error = error
        self.calls: list[dict] = []

    def generate_json(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result, {"provider": "fake", "model": "fake-model", "id": "cmpl-1"}


def _llm_error(code: str, raw: str | None = None) -> LLMError:
    return LLMError(code=code, message="boom", provider="fake", task_type="idea_helper", raw=raw)


def _records(session) -> list[AssistUsageRecord]:
    return list(session.execute(select(AssistUsageRecord)).scalars().all())


@pytest.fixture()
def fixed_clock(monkeypatch):
    state = {"now": datetime(2026, 5, 4, 10, 30, tzinfo=UTC)}
    monkeypatch.setattr(gateway, "_utc_now", lambda: state["now"])
    return state


def test_sixth_call_is_rate_limited_without_calling_service(
    session, make_profile, identity_of, fixed_clock
) -> None:
    owner = make_profile()
    mediator = _FakeMediator()
    config = AssistConfig(daily_limit=5)

    for expected_used in range(1, 6):
        result = improve(
            session,
            identity_of(owner),
            title="Repair cafe",
            description="Fix things together",
            config=config,
            mediator=mediator,
        )
        assert result.usage.used == expected_used
        assert result.usage.remaining == 5 - expected_used

    with pytest.raises(RateLimited) as exc:
        improve(
            session,
            identity_of(owner),
            title="Repair cafe",
            description="Fix things together",
            config=config,
            mediator=mediator,
        )

    assert exc.value.status_code == 429
    assert len(mediator.calls) == 5
    assert len(_records(session)) == 5


def test_quota_resets_at_utc_midnight(session, make_profile, identity_of, fixed_clock) -> None:
    owner = make_profile()
    mediator = _FakeMediator()
    config = AssistConfig(daily_limit=1)

    fixed_clock["now"] = datetime(2026, 5, 4, 23, 59, tzinfo=UTC)
    improve(session, identity_of(owner), title="Idea", description="Text", config=config, mediator=mediator)
    with pytest.raises(RateLimited):
        improve(session, identity_of(owner), title="Idea", description="Text", config=config, mediator=mediator)

    fixed_clock["now"] = datetime(2026, 5, 5, 0, 1, tzinfo=UTC)
    result = improve(
        session, identity_of(owner), title="Idea", description="Text", config=config, mediator=mediator
    )
    assert result.usage.used == 1
    assert usage_today(session, identity_of(owner), config).to_dict() == {
        "used": 1,
        "limit": 1,
        "remaining": 0,
    }


def test_tags_are_trimmed_filtered_and_capped(session, make_profile, identity_of, fixed_clock) -> None:
    owner = make_profile()
    mediator = _FakeMediator(
        result={"improvedCopy": "Better copy", "tags": [" a ", 3, "", "b", "c", None, "d", "e", "f"]}
    )

    result = improve(
        session,
        identity_of(owner),
        title="Idea",
        description="Text",
        config=AssistConfig(daily_limit=5),
        mediator=mediator,
    )

    assert result.improved_text == "Better copy"
    assert result.tags == ["a", "b", "c", "d", "e"]
    record = _records(session)[0]
    assert record.failed is False
    assert record.response["tags"] == ["a", "b", "c", "d", "e"]
    assert "ORIGINAL IDEA TITLE: Idea" in record.prompt
    assert mediator.calls[0]["task_type"] == "idea_helper"


def test_unparsable_output_records_failure(session, make_profile, identity_of, fixed_clock) -> None:
    owner = make_profile()
    mediator = _FakeMediator(error=_llm_error("invalid_json", raw="not json at all"))

    with pytest.raises(ServiceError):
        improve(
            session,
            identity_of(owner),
            title="Idea",
            description="Text",
            config=AssistConfig(daily_limit=5),
            mediator=mediator,
        )

    records = _records(session)
    assert len(records) == 1
    assert records[0].failed is True
    assert records[0].response["raw"] == "not json at all"


def test_wrong_structure_records_failure(session, make_profile, identity_of, fixed_clock) -> None:
    owner = make_profile()
    mediator = _FakeMediator(result={"improvedCopy": "Copy", "tags": "ai, climate"})

    with pytest.raises(ServiceError) as exc:
        improve(
            session,
            identity_of(owner),
            title="Idea",
            description="Text",
            config=AssistConfig(daily_limit=5),
            mediator=mediator,
        )

    assert exc.value.to_dict()["error"] == "AI Service Error"
    records = _records(session)
    assert len(records) == 1
    assert records[0].response["error"] == "Invalid response structure"


def test_transport_failure_leaves_no_record(session, make_profile, identity_of, fixed_clock) -> None:
    owner = make_profile()
    mediator = _FakeMediator(error=_llm_error("network_error"))

    with pytest.raises(ServiceError):
        improve(
            session,
            identity_of(owner),
            title="Idea",
            description="Text",
            config=AssistConfig(daily_limit=5),
            mediator=mediator,
        )

    assert _records(session) == []


@pytest.mark.parametrize(
    "title,description",
    [("", "Text"), ("x" * 101, "Text"), ("Idea", ""), ("Idea", "   ")],
)
def test_input_bounds(session, make_profile, identity_of, title, description) -> None:
    owner = make_profile()
    mediator = _FakeMediator()
    with pytest.raises(ValidationError):
        improve(
            session,
            identity_of(owner),
            title=title,
            description=description,
            config=AssistConfig(daily_limit=5),
            mediator=mediator,
        )
    assert mediator.calls == []


def test_profile_required(session) -> None:
    with pytest.raises(Forbidden):
        improve(
            session,
            Identity(user_id=uuid4(), role=None),
            title="Idea",
            description="Text",
            config=AssistConfig(daily_limit=5),
            mediator=_FakeMediator(),
        )


def test_usage_records_visibility(session, make_profile, identity_of, fixed_clock) -> None:
    alice = make_profile()
    bob = make_profile()
    admin = make_profile(UserRole.ADMIN)
    mediator = _FakeMediator()
    config = AssistConfig(daily_limit=5)
    improve(session, identity_of(alice), title="A", description="Text", config=config, mediator=mediator)
    improve(session, identity_of(bob), title="B", description="Text", config=config, mediator=mediator)

    rows, total = list_usage_records(session, identity_of(alice))
    assert total == 1
    assert rows[0].user_id == alice.id

    rows, total = list_usage_records(session, identity_of(admin))
    assert total == 2

    rows, total = list_usage_records(session, identity_of(admin), user_id=bob.id)
    assert [row.user_id for row in rows] == [bob.id]


def test_load_assist_config(monkeypatch) -> None:
    monkeypatch.delenv("ASSIST_DAILY_LIMIT", raising=False)
    assert load_assist_config().daily_limit == 5
    monkeypatch.setenv("ASSIST_DAILY_LIMIT", "12")
    assert load_assist_config().daily_limit == 12
    monkeypatch.setenv("ASSIST_DAILY_LIMIT", "lots")
    assert load_assist_config().daily_limit == 5
