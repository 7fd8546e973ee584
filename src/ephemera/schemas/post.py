# src/ephemera/schemas/post.py
"""Post and reply Pydantic schemas.

Public views never carry the owning device, its fingerprint or the raw
session token; ownership is reduced to ``is_own``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ephemera.db.time import as_utc
from ephemera.models import Post, Reply
from ephemera.schemas.space import SpacePublic


class PostCreate(BaseModel):
    """Schema for submitting a new post."""

    content: str = Field(..., min_length=1, description="Post body; trimmed server side")


class ReplyCreate(BaseModel):
    """Schema for replying to a post."""

    content: str = Field(..., min_length=1, description="Reply body; trimmed server side")


class TimeRemaining(BaseModel):
    """Whole hours and minutes until the post is deleted."""

    expired: bool
    hours: int = 0
    minutes: int = 0


class PostPublic(BaseModel):
    """Post as rendered to anonymous visitors."""

    id: int
    content: str
    created_at: datetime
    expires_at: datetime
    time_remaining: TimeRemaining
    is_grayed: bool
    reaction_count: int
    reply_count: int
    is_own: bool
    user_reaction: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ReplyPublic(BaseModel):
    """Reply as rendered to anonymous visitors."""

    id: int
    post_id: int
    content: str
    created_at: datetime
    is_own: bool

    model_config = ConfigDict(from_attributes=True)


class FeedResponse(BaseModel):
    """One page of a space feed."""

    posts: list[PostPublic]
    space: SpacePublic
    has_more: bool
    cursor: datetime | None = Field(
        None, description="Pass as ``before`` to fetch the next page."
    )


class PostDetailResponse(BaseModel):
    post: PostPublic
    replies: list[ReplyPublic]


class ReplyListResponse(BaseModel):
    replies: list[ReplyPublic]
    count: int


def time_remaining(expires_at: datetime, now: datetime) -> TimeRemaining:
    """Split the time left until ``expires_at`` into hours and minutes."""
    seconds = int((as_utc(expires_at) - now).total_seconds())
    if seconds <= 0:
        return TimeRemaining(expired=True)
    return TimeRemaining(expired=False, hours=seconds // 3600, minutes=(seconds % 3600) // 60)


def _is_own(row_token: str | None, session_token: str | None) -> bool:
    return bool(session_token) and row_token == session_token


def to_post_public(
    post: Post,
    session_token: str | None,
    now: datetime,
    user_reaction: str | None = None,
) -> PostPublic:
    """Project a post row into its public view."""
    return PostPublic(
        id=post.id,
        content=post.content,
        created_at=as_utc(post.created_at),
        expires_at=as_utc(post.expires_at),
        time_remaining=time_remaining(post.expires_at, now),
        is_grayed=post.is_grayed,
        reaction_count=post.reaction_count,
        reply_count=post.reply_count,
        is_own=_is_own(post.session_token, session_token),
        user_reaction=user_reaction,
    )


def to_reply_public(reply: Reply, session_token: str | None) -> ReplyPublic:
    """Project a reply row into its public view."""
    return ReplyPublic(
        id=reply.id,
        post_id=reply.post_id,
        content=reply.content,
        created_at=as_utc(reply.created_at),
        is_own=_is_own(reply.session_token, session_token),
    )
