# agentrecall/models.py
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Vector",
    "Content",
    "Memory",
    "KnowledgeItem",
    "Author",
    "ThreadNode",
]

Vector: TypeAlias = list[float]


class Content(BaseModel):
    """Content carried by a memory; platform-specific keys are kept as extras."""

    text: str = ""
    source: str | None = None
    url: str | None = None
    in_reply_to: uuid.UUID | None = None

    model_config = ConfigDict(extra="allow")


class Memory(BaseModel):
    """A persisted content record scoped to an agent and a room."""

    id: uuid.UUID
    agent_id: uuid.UUID
    user_id: uuid.UUID
    room_id: uuid.UUID
    content: Content
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    unique: bool = True

    similarity: float | None = None  # Search score, never persisted

    model_config = ConfigDict(from_attributes=True)


class KnowledgeItem(BaseModel):
    """A knowledge document as returned by retrieval."""

    id: uuid.UUID
    content: Content


class Author(BaseModel):
    id: str
    username: str
    name: str | None = None


class ThreadNode(BaseModel):
    """A platform-neutral post/cast/publication in a reply chain."""

    id: str
    text: str = ""
    author: Author
    in_reply_to: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    url: str | None = None
