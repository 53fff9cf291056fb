from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class IdeaCreateRequest(BaseModel):
    title: str
    description: str
    tags: Optional[List[str]] = Field(default=None)


class IdeaUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    tags: Optional[List[str]] = Field(default=None)


class CommentCreateRequest(BaseModel):
    body: str


class DecisionRequest(BaseModel):
    action: str
    comment: str = Field(default="")


class InboxUpdateRequest(BaseModel):
    ids: List[UUID] = Field(min_length=1)
    read: bool = Field(default=True)


class IdeaHelperRequest(BaseModel):
    title: str
    description: str
