"""Moderator endpoints: hiding content, reviewing signals, bans and space management."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ephemera.api.v1.dependencies import (
    ClockDep,
    CoordinatorDep,
    IdentityDep,
    SchedulerDep,
    SpaceDep,
    SpacesDep,
    StoreDep,
    require_admin,
)
from ephemera.core.errors import NotFoundError
from ephemera.models import Device, Post
from ephemera.repositories.lifecycle import LifecycleStore
from ephemera.schemas.interaction import (
    BanRequest,
    FlaggedPostSummary,
    HideRequest,
    HideResponse,
    ReviewSignalsResponse,
)
from ephemera.schemas.post import PostPublic, to_post_public
from ephemera.schemas.space import SpaceAdmin, SpaceCreate, SpaceUpdate
from ephemera.services.identity import IdentityService

router = APIRouter(
    prefix="/moderation",
    tags=["moderation"],
    dependencies=[Depends(require_admin)],
)


def _get_post_or_404(store: LifecycleStore, post_id: int) -> Post:
    post = store.get_post(post_id)
    if post is None:
        raise NotFoundError()
    return post


def _get_device_or_404(identity: IdentityService, device_id: int) -> Device:
    device = identity.get(device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return device


@router.post("/posts/{post_id}/hide", response_model=HideResponse)
def hide_post(
    post_id: int,
    payload: HideRequest,
    store: StoreDep,
    coordinator: CoordinatorDep,
) -> HideResponse:
    """Hide a post; repeating the call is a no-op that reports ``hidden=False``."""
    post = _get_post_or_404(store, post_id)
    hidden = coordinator.on_moderator_hide(post, payload.reason)
    return HideResponse(post_id=post_id, hidden=hidden)


@router.get("/posts/{post_id}/signals", response_model=ReviewSignalsResponse)
def review_signals(
    post_id: int,
    store: StoreDep,
    coordinator: CoordinatorDep,
) -> ReviewSignalsResponse:
    post = _get_post_or_404(store, post_id)
    signals = coordinator.review_signals(post)
    return ReviewSignalsResponse(
        post_id=post.id,
        flag_count=post.flag_count,
        flag_breakdown=signals.flag_breakdown,
        reaction_counts=signals.reaction_counts,
        objectionable=signals.objectionable,
    )


@router.post("/replies/{reply_id}/hide")
def hide_reply(reply_id: int, store: StoreDep) -> dict[str, object]:
    reply = store.get_reply(reply_id)
    if reply is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reply not found")
    return {"reply_id": reply_id, "hidden": store.hide_reply(reply)}


@router.get("/spaces/{slug}/flagged", response_model=list[FlaggedPostSummary])
def heavily_flagged(
    space: SpaceDep,
    store: StoreDep,
    min_flags: Annotated[int, Query(ge=1)] = 3,
) -> list[FlaggedPostSummary]:
    """List live posts in a space with at least ``min_flags`` flags."""
    return [
        FlaggedPostSummary(
            id=post.id,
            content=post.content,
            flag_count=post.flag_count,
            is_grayed=post.is_grayed,
            mod_action=post.mod_action,
        )
        for post in store.heavily_flagged(space.id, min_flags)
    ]


@router.get("/spaces/{slug}/expiring", response_model=list[PostPublic])
def expiring_soon(
    space: SpaceDep,
    store: StoreDep,
    clock: ClockDep,
    within_minutes: Annotated[int, Query(ge=1, le=24 * 60)] = 60,
) -> list[PostPublic]:
    now = clock()
    return [
        to_post_public(post, None, now)
        for post in store.expiring_soon(space.id, within_minutes, now)
    ]


@router.post("/spaces", response_model=SpaceAdmin, status_code=status.HTTP_201_CREATED)
def create_space(payload: SpaceCreate, spaces: SpacesDep) -> SpaceAdmin:
    space = spaces.create(**payload.model_dump())
    return SpaceAdmin.model_validate(space)


@router.patch("/spaces/{slug}", response_model=SpaceAdmin)
def update_space(payload: SpaceUpdate, space: SpaceDep, spaces: SpacesDep) -> SpaceAdmin:
    """Update space parameters; a TTL change only affects new posts."""
    space = spaces.update(space, **payload.model_dump(exclude_unset=True))
    return SpaceAdmin.model_validate(space)


@router.post("/spaces/{slug}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_space(space: SpaceDep, spaces: SpacesDep) -> None:
    spaces.deactivate(space)


@router.get("/expiration/preview")
def expiration_preview(scheduler: SchedulerDep) -> dict[str, object]:
    """Show what the next expiration sweep would delete."""
    preview = scheduler.runner.preview()
    return {"total_expired": preview.total_expired, "by_space": preview.by_space}


@router.get("/devices/{device_id}")
def get_device(device_id: int, identity: IdentityDep) -> dict[str, object]:
    return identity.admin_view(_get_device_or_404(identity, device_id))


@router.post("/devices/{device_id}/ban")
def ban_device(device_id: int, payload: BanRequest, identity: IdentityDep) -> dict[str, object]:
    """Ban a device; omit ``duration_hours`` for a permanent ban."""
    device = _get_device_or_404(identity, device_id)
    identity.ban(device, payload.reason, payload.duration_hours)
    return identity.admin_view(device)


@router.post("/devices/{device_id}/unban")
def unban_device(device_id: int, identity: IdentityDep) -> dict[str, object]:
    device = _get_device_or_404(identity, device_id)
    identity.unban(device)
    return identity.admin_view(device)
