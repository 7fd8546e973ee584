"""Tests for the content lifecycle store: expiry, visibility, interactions and sweeps."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ephemera.core.errors import ConflictError, NotFoundError, StoreUnavailable, ValidationError
from ephemera.db.time import as_utc
from ephemera.models import Flag, Post, Reaction, Reply
from ephemera.repositories.lifecycle import (
    REACTION_CREATED,
    REACTION_REMOVED,
    REACTION_UPDATED,
    LifecycleStore,
)
from ephemera.repositories.space_repo import SpaceRepository


def _count(store: LifecycleStore, model) -> int:
    return store.session.scalar(select(func.count()).select_from(model))


@pytest.fixture()
def post(store: LifecycleStore, space, device) -> Post:
    return store.create_post(space.id, device.id, "Something I needed to say", space.ttl_hours)


# -- creation -----------------------------------------------------------------------


def test_expiry_is_creation_plus_ttl(store: LifecycleStore, space, device, clock) -> None:
    post = store.create_post(space.id, device.id, "  padded content  ", 6)
    assert as_utc(post.created_at) == clock.now
    assert as_utc(post.expires_at) == clock.now + timedelta(hours=6)
    assert post.content == "padded content"
    assert post.is_visible is True
    assert post.is_grayed is False
    assert (post.reaction_count, post.reply_count, post.flag_count) == (0, 0, 0)


def test_ttl_change_is_not_retroactive(
    store: LifecycleStore, spaces: SpaceRepository, space, device, clock
) -> None:
    old = store.create_post(space.id, device.id, "before the change", space.ttl_hours)
    spaces.update(space, ttl_hours=1)
    new = store.create_post(space.id, device.id, "after the change", space.ttl_hours)

    assert as_utc(old.expires_at) == clock.now + timedelta(hours=24)
    assert as_utc(new.expires_at) == clock.now + timedelta(hours=1)


@pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
def test_create_post_rejects_bad_content(store: LifecycleStore, space, device, content: str) -> None:
    with pytest.raises(ValidationError):
        store.create_post(space.id, device.id, content, 24)


@pytest.mark.parametrize("ttl", [0, 73])
def test_create_post_rejects_ttl_out_of_bounds(store: LifecycleStore, space, device, ttl: int) -> None:
    with pytest.raises(ValidationError):
        store.create_post(space.id, device.id, "valid content", ttl)


def test_is_expired_boundary(post: Post, clock) -> None:
    expires_at = as_utc(post.expires_at)
    assert post.is_expired(expires_at - timedelta(seconds=1)) is False
    assert post.is_expired(expires_at) is True
    assert post.is_displayable(clock.now) is True


# -- reads ----------------------------------------------------------------------------


def test_get_visible_post_hides_every_unavailable_case(
    store: LifecycleStore, spaces: SpaceRepository, space, device, clock
) -> None:
    other_space = spaces.create("other-wall", "Other Wall")
    hidden = store.create_post(space.id, device.id, "to be hidden", 24)
    store.hide_post(hidden)
    short = store.create_post(space.id, device.id, "short lived", 1)
    foreign = store.create_post(other_space.id, device.id, "elsewhere", 24)
    hidden_id, short_id, foreign_id = hidden.id, short.id, foreign.id
    clock.advance(hours=2)

    details = set()
    for post_id in (hidden_id, short_id, 99999):
        with pytest.raises(NotFoundError) as exc_info:
            store.get_visible_post(post_id, space_id=space.id)
        details.add(exc_info.value.detail)
    with pytest.raises(NotFoundError) as exc_info:
        store.get_visible_post(foreign_id, space_id=space.id)
    details.add(exc_info.value.detail)

    assert details == {"Post not found"}
    assert store.get_visible_post(foreign_id).id == foreign_id


def test_feed_is_newest_first_and_paginates(store: LifecycleStore, space, device, clock) -> None:
    ids = []
    for index in range(3):
        ids.append(store.create_post(space.id, device.id, f"post number {index}", 24).id)
        clock.advance(minutes=1)

    first_page = store.list_feed(space.id, limit=2)
    assert [post.id for post in first_page] == [ids[2], ids[1]]

    cursor = as_utc(first_page[-1].created_at)
    second_page = store.list_feed(space.id, limit=2, before=cursor)
    assert [post.id for post in second_page] == [ids[0]]


def test_feed_excludes_hidden_and_expired(store: LifecycleStore, space, device, clock) -> None:
    keep = store.create_post(space.id, device.id, "still here", 24)
    hidden = store.create_post(space.id, device.id, "hidden one", 24)
    store.create_post(space.id, device.id, "gone soon", 1)
    store.hide_post(hidden)
    keep_id = keep.id
    clock.advance(hours=1, minutes=1)

    assert [post.id for post in store.list_feed(space.id)] == [keep_id]


def test_feed_can_exclude_grayed(store: LifecycleStore, space, device) -> None:
    plain = store.create_post(space.id, device.id, "plain post", 24)
    grayed = store.create_post(space.id, device.id, "grayed post", 24)
    store.gray_out(grayed)

    assert {post.id for post in store.list_feed(space.id)} == {plain.id, grayed.id}
    assert [post.id for post in store.list_feed(space.id, include_grayed=False)] == [plain.id]


def test_feed_limit_is_clamped(store: LifecycleStore, space, device) -> None:
    for index in range(3):
        store.create_post(space.id, device.id, f"post number {index}", 24)
    assert len(store.list_feed(space.id, limit=0)) == 1
    assert len(store.list_feed(space.id, limit=10_000)) == 3


def test_expiring_soon(store: LifecycleStore, space, device) -> None:
    soon = store.create_post(space.id, device.id, "leaving soon", 1)
    store.create_post(space.id, device.id, "staying a while", 24)
    assert [post.id for post in store.expiring_soon(space.id, within_minutes=90)] == [soon.id]


# -- visibility transitions -------------------------------------------------------


def test_hide_post_transitions_once(store: LifecycleStore, post: Post) -> None:
    assert store.hide_post(post) is True
    assert store.hide_post(post) is False
    assert post.is_visible is False
    assert post.mod_action == "mod_hidden"


def test_gray_out_transitions_once(store: LifecycleStore, post: Post) -> None:
    assert store.gray_out(post) is True
    assert store.gray_out(post) is False
    assert post.is_grayed is True
    assert post.mod_action == "community_flagged"


def test_hidden_post_is_not_grayed(store: LifecycleStore, post: Post) -> None:
    store.hide_post(post)
    assert store.gray_out(post) is False


# -- replies --------------------------------------------------------------------------


def test_replies_bump_count_and_list_oldest_first(
    store: LifecycleStore, post: Post, make_device, clock
) -> None:
    first = store.create_reply(post.id, make_device().id, "me too")
    clock.advance(minutes=5)
    second = store.create_reply(post.id, make_device().id, "hang in there")

    assert post.reply_count == 2
    assert [reply.id for reply in store.list_replies(post.id)] == [first.id, second.id]


def test_hidden_reply_leaves_post_alone(store: LifecycleStore, post: Post, device) -> None:
    reply = store.create_reply(post.id, device.id, "regrettable reply")
    assert store.hide_reply(reply) is True
    assert store.hide_reply(reply) is False

    assert store.list_replies(post.id) == []
    assert [r.id for r in store.list_replies(post.id, include_hidden=True)] == [reply.id]
    assert post.is_visible is True


@pytest.mark.parametrize("content", ["", "y" * 501])
def test_reply_rejects_bad_content(store: LifecycleStore, post: Post, device, content: str) -> None:
    with pytest.raises(ValidationError):
        store.create_reply(post.id, device.id, content)


# -- reactions ------------------------------------------------------------------------


def test_reaction_toggle(store: LifecycleStore, post: Post, device) -> None:
    created = store.upsert_reaction(post.id, device.id, "agree")
    assert created.action == REACTION_CREATED
    assert post.reaction_count == 1

    removed = store.upsert_reaction(post.id, device.id, "agree")
    assert removed.action == REACTION_REMOVED
    assert removed.reaction_type is None
    assert post.reaction_count == 0
    assert store.get_reaction(post.id, device.id) is None


def test_reaction_switch_keeps_count(store: LifecycleStore, post: Post, device) -> None:
    store.upsert_reaction(post.id, device.id, "agree")
    switched = store.upsert_reaction(post.id, device.id, "exaggerated")
    assert switched.action == REACTION_UPDATED
    assert switched.reaction_type == "exaggerated"
    assert post.reaction_count == 1
    assert store.reactions_for_device(device.id, [post.id]) == {post.id: "exaggerated"}


def test_unknown_reaction_rejected(store: LifecycleStore, post: Post, device) -> None:
    with pytest.raises(ValidationError):
        store.upsert_reaction(post.id, device.id, "love")
    assert post.reaction_count == 0


def test_reaction_counts(store: LifecycleStore, post: Post, make_device) -> None:
    for reaction_type in ("agree", "agree", "crossing_line"):
        store.upsert_reaction(post.id, make_device().id, reaction_type)

    counts = store.reaction_counts(post.id)
    assert counts == {"agree": 2, "not_alone": 0, "exaggerated": 0, "crossing_line": 1}
    assert store.count_reactions(post.id, "crossing_line") == 1
    assert store.reactions_for_device(1, []) == {}


# -- flags ------------------------------------------------------------------------------


def test_flag_once_per_device(store: LifecycleStore, post: Post, device) -> None:
    assert store.create_flag(post.id, device.id, "spam") == 1
    with pytest.raises(ConflictError):
        store.create_flag(post.id, device.id, "harassment")

    assert post.flag_count == 1
    assert store.has_flagged(post.id, device.id) is True
    assert len(store.list_flags(post.id)) == 1


def test_flag_tally_and_breakdown(store: LifecycleStore, post: Post, make_device) -> None:
    tallies = [
        store.create_flag(post.id, make_device().id, reason)
        for reason in ("spam", "spam", "threat")
    ]
    assert tallies == [1, 2, 3]
    breakdown = store.flag_breakdown(post.id)
    assert breakdown["spam"] == 2
    assert breakdown["threat"] == 1
    assert breakdown["other"] == 0


def test_flag_race_with_post_present_is_a_conflict(
    store: LifecycleStore, post: Post, device, mocker
) -> None:
    store.create_flag(post.id, device.id, "spam")
    mocker.patch.object(store, "has_flagged", return_value=False)

    with pytest.raises(ConflictError):
        store.create_flag(post.id, device.id, "spam")
    assert store.flag_breakdown(post.id)["spam"] == 1


def test_reactions_and_flags_use_store_clock(store: LifecycleStore, post: Post, device, clock) -> None:
    stamped_at = clock.advance(minutes=10)
    store.upsert_reaction(post.id, device.id, "agree")
    store.create_flag(post.id, device.id, "spam")

    [flag] = store.list_flags(post.id)
    assert as_utc(store.get_reaction(post.id, device.id).created_at) == stamped_at
    assert as_utc(flag.created_at) == stamped_at


def test_unknown_flag_reason_rejected(store: LifecycleStore, post: Post, device) -> None:
    with pytest.raises(ValidationError):
        store.create_flag(post.id, device.id, "boring")
    assert store.has_flagged(post.id, device.id) is False


def test_heavily_flagged(store: LifecycleStore, space, post: Post, make_device) -> None:
    quiet = store.create_post(space.id, make_device().id, "nobody minds this", 24)
    for _ in range(3):
        store.create_flag(post.id, make_device().id, "spam")
    store.create_flag(quiet.id, make_device().id, "other")

    assert [p.id for p in store.heavily_flagged(space.id, min_flags=3)] == [post.id]
    assert {p.id for p in store.heavily_flagged(space.id, min_flags=1)} == {post.id, quiet.id}


# -- expiration sweep ----------------------------------------------------------------


def _populate(store: LifecycleStore, post: Post, make_device) -> None:
    other = make_device()
    store.create_reply(post.id, other.id, "a reply that dies with it")
    store.upsert_reaction(post.id, other.id, "not_alone")
    store.create_flag(post.id, other.id, "other")


def test_sweep_is_idempotent(store: LifecycleStore, space, device, clock) -> None:
    store.create_post(space.id, device.id, "short one", 1)
    store.create_post(space.id, device.id, "short two", 1)
    keeper = store.create_post(space.id, device.id, "long one", 24)
    keeper_id = keeper.id
    clock.advance(hours=2)

    assert store.delete_expired().deleted_posts == 2
    assert store.delete_expired().deleted_posts == 0
    assert store.session.scalars(select(Post.id)).all() == [keeper_id]


def test_sweep_cascades_to_dependents(store: LifecycleStore, space, device, make_device, clock) -> None:
    post = store.create_post(space.id, device.id, "short and busy", 1)
    _populate(store, post, make_device)
    clock.advance(hours=1, minutes=1)

    result = store.delete_expired()
    assert result.deleted_posts == 1
    assert result.deleted_replies == 1
    for model in (Post, Reply, Reaction, Flag):
        assert _count(store, model) == 0


def test_direct_sweep_removes_dependents(store: LifecycleStore, space, device, make_device, clock) -> None:
    post = store.create_post(space.id, device.id, "short and busy", 1)
    _populate(store, post, make_device)
    clock.advance(hours=1, minutes=1)

    result = store.delete_expired_direct()
    assert (result.deleted_posts, result.deleted_replies) == (1, 1)
    for model in (Post, Reply, Reaction, Flag):
        assert _count(store, model) == 0
    assert store.delete_expired_direct().deleted_posts == 0


def test_swept_post_is_not_found_for_new_interactions(
    store: LifecycleStore, space, device, clock
) -> None:
    post_id = store.create_post(space.id, device.id, "gone within the hour", 1).id
    clock.advance(hours=2)
    assert store.delete_expired().deleted_posts == 1

    with pytest.raises(NotFoundError):
        store.create_reply(post_id, device.id, "too late")
    with pytest.raises(NotFoundError):
        store.create_flag(post_id, device.id, "spam")
    with pytest.raises(NotFoundError):
        store.upsert_reaction(post_id, device.id, "agree")
    assert _count(store, Reply) == 0
    assert _count(store, Flag) == 0
    assert _count(store, Reaction) == 0


def test_sweep_spares_post_until_expiry(store: LifecycleStore, space, device, clock) -> None:
    store.create_post(space.id, device.id, "right on the edge", 1)
    clock.advance(hours=1)
    assert store.delete_expired().deleted_posts == 0


def test_one_hour_ttl_scenario(
    store: LifecycleStore, spaces: SpaceRepository, device, clock
) -> None:
    hourly = spaces.create("hourly", "Hourly Wall", ttl_hours=1)
    post = store.create_post(hourly.id, device.id, "here for an hour", hourly.ttl_hours)
    post_id = post.id

    clock.advance(minutes=59)
    assert [p.id for p in store.list_feed(hourly.id)] == [post_id]

    clock.advance(minutes=2)
    assert store.delete_expired().deleted_posts == 1
    assert store.list_feed(hourly.id) == []
    with pytest.raises(NotFoundError):
        store.get_visible_post(post_id, space_id=hourly.id)


def test_preview_and_space_stats(store: LifecycleStore, space, device, clock) -> None:
    store.create_post(space.id, device.id, "expires in one", 1)
    store.create_post(space.id, device.id, "expires in five", 5)
    store.create_post(space.id, device.id, "expires in twelve", 12)
    clock.advance(hours=2)

    preview = store.preview_expired()
    assert preview.total_expired == 1
    assert preview.by_space[0]["space"] == space.slug
    assert preview.by_space[0]["expired_posts"] == 1

    stats = store.space_expiration_stats(space.id)
    assert stats == {
        "expired": 1,
        "expiring_1h": 0,
        "expiring_6h": 1,
        "expiring_24h": 2,
        "total": 3,
    }


def test_store_errors_become_unavailable(store: LifecycleStore, space, mocker) -> None:
    space_id = space.id
    mocker.patch.object(
        store.session,
        "execute",
        side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")),
    )
    with pytest.raises(StoreUnavailable):
        store.list_feed(space_id)
