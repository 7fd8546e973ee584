"""Tests for the post and reply submission flow."""

from datetime import timedelta

import pytest

from ephemera.core.errors import ContentRejected, PostingNotAllowed, ValidationError
from ephemera.db.time import as_utc
from ephemera.repositories.lifecycle import LifecycleStore
from ephemera.services.identity import IdentityService
from ephemera.services.posting import PostingService


def test_submit_post_records_activity(posting: PostingService, space, device, clock) -> None:
    post = posting.submit_post(space, device, "Just needed to get this off my chest", "tok")

    assert as_utc(post.expires_at) == clock.now + timedelta(hours=space.ttl_hours)
    assert post.session_token == "tok"
    assert post.is_grayed is False
    assert device.total_posts == 1
    assert device.posts_in_current_window == 1


def test_blocked_content_is_not_stored(posting: PostingService, store: LifecycleStore, space, device) -> None:
    with pytest.raises(ContentRejected) as exc_info:
        posting.submit_post(space, device, "AAAAAAAAAA spam spam spam")

    assert exc_info.value.reasons == ["spam"]
    assert exc_info.value.status_code == 400
    assert store.list_feed(space.id) == []
    assert device.total_posts == 0


def test_warned_content_is_grayed(posting: PostingService, space, device) -> None:
    post = posting.submit_post(space, device, "you are an idiot")
    assert post.is_grayed is True
    assert post.mod_action == "auto_moderated"


def test_auto_moderation_can_be_disabled_per_space(posting: PostingService, spaces, device) -> None:
    lenient = spaces.create("lenient", "Lenient Wall", auto_mod_enabled=False)
    post = posting.submit_post(lenient, device, "you are an idiot")
    assert post.is_grayed is False


def test_rate_limit_raises_with_until(posting: PostingService, space, device, clock) -> None:
    for index in range(5):
        posting.submit_post(space, device, f"message number {index}")
        clock.advance(minutes=1)

    with pytest.raises(PostingNotAllowed) as exc_info:
        posting.submit_post(space, device, "one more please")

    error = exc_info.value
    assert error.reason == "rate_limited"
    assert error.status_code == 429
    assert error.until == clock.now - timedelta(minutes=1) + timedelta(hours=1)


def test_banned_device_is_forbidden(
    posting: PostingService, identity: IdentityService, space, device
) -> None:
    identity.ban(device, "abuse")
    with pytest.raises(PostingNotAllowed) as exc_info:
        posting.submit_post(space, device, "let me back in")
    assert exc_info.value.status_code == 403
    assert exc_info.value.to_dict()["reason"] == "banned"


def test_oversized_post_is_a_validation_error(posting: PostingService, space, device) -> None:
    with pytest.raises(ValidationError):
        posting.submit_post(space, device, "word " * 300)


def test_submit_reply_counts_against_window(
    posting: PostingService, store: LifecycleStore, space, device, make_device
) -> None:
    post = posting.submit_post(space, make_device(), "What got you through this week?")
    reply = posting.submit_reply(post, device, "Long walks and good coffee", "tok")

    assert reply.post_id == post.id
    assert reply.session_token == "tok"
    assert post.reply_count == 1
    assert device.total_posts == 1


def test_reply_is_moderated(posting: PostingService, space, device, make_device) -> None:
    post = posting.submit_post(space, make_device(), "Open thread for the evening")
    with pytest.raises(ContentRejected):
        posting.submit_reply(post, device, "tc 12345678901")
