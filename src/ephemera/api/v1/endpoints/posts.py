# src/ephemera/api/v1/endpoints/posts.py
"""Feed, post, reply, reaction and flag endpoints for a space."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Query, status

from ephemera.api.v1.dependencies import (
    ClockDep,
    CoordinatorDep,
    CurrentDeviceDep,
    PostingDep,
    SessionTokenDep,
    SettingsDep,
    SpaceDep,
    StoreDep,
)
from ephemera.db.time import as_utc
from ephemera.schemas.interaction import (
    FlagCreate,
    FlagResponse,
    ReactionCreate,
    ReactionResponse,
)
from ephemera.schemas.post import (
    FeedResponse,
    PostCreate,
    PostDetailResponse,
    PostPublic,
    ReplyCreate,
    ReplyListResponse,
    ReplyPublic,
    to_post_public,
    to_reply_public,
)
from ephemera.schemas.space import SpacePublic

router = APIRouter(prefix="/spaces/{slug}/posts", tags=["posts"])


@router.get("", response_model=FeedResponse)
def list_feed(
    space: SpaceDep,
    store: StoreDep,
    device: CurrentDeviceDep,
    session_token: SessionTokenDep,
    clock: ClockDep,
    settings: SettingsDep,
    before: Annotated[datetime | None, Query(description="Cursor from the previous page")] = None,
    limit: Annotated[int, Query(ge=1)] = 50,
    include_grayed: bool = True,
) -> FeedResponse:
    """Return visible, unexpired posts newest first."""
    now = clock()
    if before is not None:
        before = as_utc(before).astimezone(UTC)
    posts = store.list_feed(
        space.id,
        limit=limit,
        before=before,
        include_grayed=include_grayed,
        now=now,
    )
    reactions = store.reactions_for_device(device.id, [post.id for post in posts])
    items = [
        to_post_public(post, session_token, now, reactions.get(post.id)) for post in posts
    ]
    return FeedResponse(
        posts=items,
        space=SpacePublic.model_validate(space),
        has_more=len(items) == min(limit, settings.feed_max_limit),
        cursor=items[-1].created_at if items else None,
    )


@router.post("", response_model=PostPublic, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: PostCreate,
    space: SpaceDep,
    device: CurrentDeviceDep,
    session_token: SessionTokenDep,
    posting: PostingDep,
    clock: ClockDep,
) -> PostPublic:
    """Publish a post that expires after the space TTL."""
    now = clock()
    post = posting.submit_post(space, device, payload.content, session_token=session_token, now=now)
    return to_post_public(post, session_token, now)


@router.get("/{post_id}", response_model=PostDetailResponse)
def get_post(
    post_id: int,
    space: SpaceDep,
    store: StoreDep,
    device: CurrentDeviceDep,
    session_token: SessionTokenDep,
    clock: ClockDep,
) -> PostDetailResponse:
    """Return a single post with its replies."""
    now = clock()
    post = store.get_visible_post(post_id, space_id=space.id, now=now)
    reaction = store.get_reaction(post.id, device.id)
    replies = store.list_replies(post.id)
    return PostDetailResponse(
        post=to_post_public(
            post,
            session_token,
            now,
            reaction.reaction_type if reaction else None,
        ),
        replies=[to_reply_public(reply, session_token) for reply in replies],
    )


@router.post("/{post_id}/reactions", response_model=ReactionResponse)
def react_to_post(
    post_id: int,
    payload: ReactionCreate,
    space: SpaceDep,
    store: StoreDep,
    device: CurrentDeviceDep,
    coordinator: CoordinatorDep,
) -> ReactionResponse:
    """Add, change or remove (by repeating it) the caller's reaction."""
    post = store.get_visible_post(post_id, space_id=space.id)
    outcome = coordinator.on_reaction(post, device, payload.type)
    return ReactionResponse(action=outcome.action, reaction=outcome.reaction_type)


@router.post(
    "/{post_id}/flags",
    response_model=FlagResponse,
    status_code=status.HTTP_201_CREATED,
)
def flag_post(
    post_id: int,
    payload: FlagCreate,
    space: SpaceDep,
    store: StoreDep,
    device: CurrentDeviceDep,
    coordinator: CoordinatorDep,
) -> FlagResponse:
    """Report a post; each device may flag a post once."""
    post = store.get_visible_post(post_id, space_id=space.id)
    coordinator.on_flag(post, device, payload.reason, payload.details)
    return FlagResponse()


@router.get("/{post_id}/replies", response_model=ReplyListResponse)
def list_replies(
    post_id: int,
    space: SpaceDep,
    store: StoreDep,
    session_token: SessionTokenDep,
) -> ReplyListResponse:
    post = store.get_visible_post(post_id, space_id=space.id)
    replies = [to_reply_public(reply, session_token) for reply in store.list_replies(post.id)]
    return ReplyListResponse(replies=replies, count=len(replies))


@router.post(
    "/{post_id}/replies",
    response_model=ReplyPublic,
    status_code=status.HTTP_201_CREATED,
)
def create_reply(
    post_id: int,
    payload: ReplyCreate,
    space: SpaceDep,
    store: StoreDep,
    device: CurrentDeviceDep,
    session_token: SessionTokenDep,
    posting: PostingDep,
) -> ReplyPublic:
    """Reply to a visible post; subject to the same posting gate as posts."""
    post = store.get_visible_post(post_id, space_id=space.id)
    reply = posting.submit_reply(post, device, payload.content, session_token=session_token)
    return to_reply_public(reply, session_token)
