"""Typed notification metadata.

Notification rows store ``meta`` as JSON. The shape depends on the
notification type, so payloads are modelled as a discriminated union keyed
on ``type`` and validated again when read back.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class StatusChange(BaseModel):
    type: Literal["status_change"] = "status_change"
    old_status: str
    new_status: str


class CommentAdded(BaseModel):
    type: Literal["user_comment", "admin_comment", "new_comment"]
    comment_id: UUID
    author_id: UUID


NotificationMeta = Annotated[Union[StatusChange, CommentAdded], Field(discriminator="type")]

_meta_adapter: TypeAdapter[StatusChange | CommentAdded] = TypeAdapter(NotificationMeta)


def dump_meta(meta: StatusChange | CommentAdded) -> dict:
    # ``type`` lives on the row itself.
    return meta.model_dump(mode="json", exclude={"type"})


def parse_meta(notification_type: str, meta: dict | None) -> StatusChange | CommentAdded:
    payload = dict(meta or {})
    payload["type"] = notification_type
    return _meta_adapter.validate_python(payload)
