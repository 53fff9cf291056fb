from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"


class IdeaStatus(str, Enum):
    """Status of an idea in the review workflow."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    STATUS_CHANGE = "status_change"
    USER_COMMENT = "user_comment"
    ADMIN_COMMENT = "admin_comment"
    NEW_COMMENT = "new_comment"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    role: Mapped[str] = mapped_column(Text, default=UserRole.OWNER.value)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    ideas: Mapped[list["Idea"]] = relationship(back_populates="owner")

    __table_args__ = (
        CheckConstraint("role in ('owner', 'admin')", name="ck_profiles_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class Idea(Base):
    __tablename__ = "ideas"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
    )
    title: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(Text)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(Text, default=IdeaStatus.DRAFT.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    owner: Mapped["Profile"] = relationship(back_populates="ideas")
    comments: Mapped[list["Comment"]] = relationship(
        back_populates="idea",
        cascade="all, delete-orphan",
        order_by="Comment.created_at",
    )
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="idea",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('draft', 'submitted', 'approved', 'rejected')",
            name="ck_ideas_status",
        ),
        Index("idx_ideas_owner_id", "owner_id"),
        Index("idx_ideas_status", "status"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    idea_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ideas.id", ondelete="CASCADE"),
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
    )
    body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    idea: Mapped["Idea"] = relationship(back_populates="comments")
    author: Mapped["Profile"] = relationship()

    __table_args__ = (
        Index("idx_comments_idea_id", "idea_id"),
        Index("idx_comments_author_id", "author_id"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
    )
    idea_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ideas.id", ondelete="CASCADE"),
    )
    type: Mapped[str] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column(JSONType, default=dict)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    idea: Mapped["Idea"] = relationship(back_populates="notifications")

    __table_args__ = (
        CheckConstraint(
            "type in ('status_change', 'user_comment', 'admin_comment', 'new_comment')",
            name="ck_notifications_type",
        ),
        Index("idx_notifications_user_id", "user_id"),
        Index("idx_notifications_read", "read"),
    )


class AssistUsageRecord(Base):
    __tablename__ = "openai_logs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
    )
    prompt: Mapped[str] = mapped_column(Text)
    response: Mapped[dict] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_openai_logs_user_id", "user_id"),
        Index("idx_openai_logs_created_at", "created_at"),
    )

    @property
    def failed(self) -> bool:
        return isinstance(self.response, dict) and "error" in self.response
