"""
Rate-limited access to the idea improvement service.

Every call is recorded in ``openai_logs``; that table is both the audit trail
and the quota counter. A user may make ``ASSIST_DAILY_LIMIT`` calls per UTC
day. The request that would exceed the limit is rejected before the service
is contacted.

Checking the count and recording the call are separate steps, so two
concurrent requests at ``limit - 1`` can both pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, time
import logging
import os
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import AssistUsageRecord
from ideas.errors import DatabaseError, RateLimited, ServiceError, ValidationError
from ideas.guard import require_profile
from ideas.identity import Identity
from llm import LLMError, get_mediator

logger = logging.getLogger(__name__)

TASK_TYPE = "idea_helper"
TITLE_MAX_LENGTH = 100
MAX_TAGS = 5

SYSTEM_PROMPT = (
    "You are a helpful startup mentor that improves idea descriptions and generates relevant tags."
)

PROMPT_TEMPLATE = """You are a startup mentor helping improve an idea description and generate relevant tags.

ORIGINAL IDEA TITLE: {title}

ORIGINAL IDEA DESCRIPTION:
{description}

Please provide:
1. An improved, more compelling version of the description that better explains the value proposition and potential impact.
2. Generate up to 5 relevant SEO-friendly tags for this idea.

Return your response in JSON format with the following structure:
{{
  "improvedCopy": "The improved description...",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"]
}}

Keep the improved copy concise but compelling. Focus on clarifying the value proposition and making the idea more marketable.
"""

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "improvedCopy": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["improvedCopy", "tags"],
}


@dataclass(frozen=True)
class AssistConfig:
    daily_limit: int


@dataclass(frozen=True)
class Usage:
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def to_dict(self) -> dict[str, int]:
        return {"used": self.used, "limit": self.limit, "remaining": self.remaining}


@dataclass(frozen=True)
class AssistResult:
    improved_text: str
    tags: list[str]
    usage: Usage


def load_assist_config() -> AssistConfig:
    raw = os.getenv("ASSIST_DAILY_LIMIT", "5").strip()
    try:
        limit = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid ASSIST_DAILY_LIMIT=%r", raw)
        limit = 5
    return AssistConfig(daily_limit=max(0, limit))


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _day_start(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=UTC)


def _count_today(session: Session, user_id: UUID, now: datetime) -> int:
    stmt = (
        select(func.count())
        .select_from(AssistUsageRecord)
        .where(
            AssistUsageRecord.user_id == user_id,
            AssistUsageRecord.created_at >= _day_start(now),
        )
    )
    return int(session.execute(stmt).scalar_one())


def usage_today(session: Session, identity: Identity, config: AssistConfig | None = None) -> Usage:
    config = config or load_assist_config()
    return Usage(used=_count_today(session, identity.user_id, _utc_now()), limit=config.daily_limit)


def build_prompt(title: str, description: str) -> str:
    return PROMPT_TEMPLATE.format(title=title, description=description)


def _clean_tags(raw_tags: list) -> list[str]:
    tags = [tag.strip() for tag in raw_tags if isinstance(tag, str) and tag.strip()]
    return tags[:MAX_TAGS]


def _record(session: Session, user_id: UUID, prompt: str, response: dict, now: datetime) -> AssistUsageRecord:
    record = AssistUsageRecord(user_id=user_id, prompt=prompt, response=response, created_at=now)
    session.add(record)
    session.commit()
    return record


def _record_failure(session: Session, user_id: UUID, prompt: str, error: str, raw: Any, now: datetime) -> None:
    try:
        _record(session, user_id, prompt, {"error": error, "raw": raw}, now)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to record failed assist call for %s", user_id)


def improve(
    session: Session,
    identity: Identity,
    *,
    title: str,
    description: str,
    config: AssistConfig | None = None,
    mediator=None,
) -> AssistResult:
    """Ask the service for improved copy and tags, within the daily quota.

    Raises:
        ValidationError: title or description out of bounds.
        RateLimited: the caller already used today's quota; nothing is called.
        ServiceError: the service failed or answered with an unusable shape.
        DatabaseError: the successful call could not be recorded.
    """
    require_profile(identity)
    if not title or not title.strip():
        raise ValidationError("Title is required")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    if not description or not description.strip():
        raise ValidationError("Description is required")

    config = config or load_assist_config()
    now = _utc_now()
    used = _count_today(session, identity.user_id, now)
    if used >= config.daily_limit:
        logger.info("Assist quota exhausted for %s (%d/%d)", identity.user_id, used, config.daily_limit)
        raise RateLimited(
            f"You have reached your daily limit of {config.daily_limit} AI assists. Please try again tomorrow."
        )

    prompt = build_prompt(title, description)
    mediator = mediator or get_mediator()
    try:
        parsed, meta = mediator.generate_json(
            task_type=TASK_TYPE,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=prompt,
            json_schema=RESPONSE_SCHEMA,
            max_tokens=1000,
            temperature=0.7,
        )
    except LLMError as exc:
        if exc.is_parse_failure:
            logger.error("Assist response could not be parsed for %s: %s", identity.user_id, exc.message)
            _record_failure(session, identity.user_id, prompt, "Failed to parse response", exc.raw, now)
            raise ServiceError("Failed to parse AI response") from exc
        raise ServiceError("Failed to process request with AI service") from exc

    improved = parsed.get("improvedCopy")
    raw_tags = parsed.get("tags")
    if not isinstance(improved, str) or not improved.strip() or not isinstance(raw_tags, list):
        logger.error("Assist response has invalid structure for %s", identity.user_id)
        _record_failure(session, identity.user_id, prompt, "Invalid response structure", parsed, now)
        raise ServiceError("Invalid response from AI service")

    tags = _clean_tags(raw_tags)
    try:
        _record(
            session,
            identity.user_id,
            prompt,
            {"improvedCopy": improved, "tags": tags, "model": meta.get("model")},
            now,
        )
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to record assist call for %s", identity.user_id)
        raise DatabaseError("Failed to record AI usage") from exc

    return AssistResult(
        improved_text=improved,
        tags=tags,
        usage=Usage(used=used + 1, limit=config.daily_limit),
    )


def list_usage_records(
    session: Session,
    identity: Identity,
    *,
    user_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AssistUsageRecord], int]:
    conditions = []
    if not identity.is_admin:
        conditions.append(AssistUsageRecord.user_id == identity.user_id)
    elif user_id is not None:
        conditions.append(AssistUsageRecord.user_id == user_id)

    total = session.execute(
        select(func.count()).select_from(AssistUsageRecord).where(*conditions)
    ).scalar_one()
    stmt = (
        select(AssistUsageRecord)
        .where(*conditions)
        .order_by(AssistUsageRecord.created_at.desc(), AssistUsageRecord.id)
        .limit(limit)
        .offset(offset)
    )
    return list(session.execute(stmt).scalars().all()), int(total)
