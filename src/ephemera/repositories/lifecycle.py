"""Data access for ephemeral content: posts, replies, reactions, flags and the expiry sweep."""
from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ParamSpec, TypeVar

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ephemera.core.errors import ConflictError, NotFoundError, StoreUnavailable, ValidationError
from ephemera.core.settings import Settings
from ephemera.db.time import as_utc, utcnow
from ephemera.models import Flag, Post, Reaction, Reply, Space
from ephemera.models.interaction import FLAG_REASONS, REACTION_TYPES
from ephemera.models.post import MOD_ACTION_COMMUNITY_FLAGGED, MOD_ACTION_HIDDEN

__all__ = [
    "ExpirationPreview",
    "LifecycleStore",
    "ReactionOutcome",
    "SweepResult",
]

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

REACTION_CREATED = "created"
REACTION_UPDATED = "updated"
REACTION_REMOVED = "removed"


@dataclass(frozen=True)
class SweepResult:
    """Counts removed by one expiration sweep."""

    deleted_posts: int
    deleted_replies: int = 0
    duration_ms: float = 0.0


@dataclass(frozen=True)
class ReactionOutcome:
    """Result of a reaction upsert.

    ``needs_review`` is filled in by the escalation layer when the
    objectionable-reaction signal crosses its threshold.
    """

    action: str
    reaction_type: str | None
    needs_review: bool = False


@dataclass(frozen=True)
class ExpirationPreview:
    """What the next sweep would delete."""

    total_expired: int
    by_space: list[dict[str, object]]


def _translate_store_errors(method: Callable[P, R]) -> Callable[P, R]:
    """Surface connectivity failures as ``StoreUnavailable``."""

    @functools.wraps(method)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        store = args[0]
        try:
            return method(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            store.session.rollback()  # type: ignore[attr-defined]
            raise StoreUnavailable("Backing store unavailable") from exc

    return wrapper


class LifecycleStore:
    """Owns post lifetimes, visibility transitions and dependent rows.

    Invariants that must hold across concurrent requests (one reaction and
    one flag per device per post, set-once visibility transitions, counter
    increments) are delegated to unique constraints and single-statement
    conditional UPDATEs rather than in-process locks.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the store with a SQLAlchemy session and settings."""
        self.session = session
        self.settings = settings
        self.clock = clock

    # -- validation -----------------------------------------------------------------

    @staticmethod
    def _clean_content(content: str | None, max_length: int, label: str) -> str:
        trimmed = (content or "").strip()
        if not trimmed:
            raise ValidationError(f"{label} cannot be empty")
        if len(trimmed) > max_length:
            raise ValidationError(f"{label} exceeds {max_length} characters")
        return trimmed

    def _check_ttl(self, ttl_hours: int) -> None:
        if not self.settings.ttl_min_hours <= ttl_hours <= self.settings.ttl_max_hours:
            raise ValidationError(
                f"TTL must be between {self.settings.ttl_min_hours} "
                f"and {self.settings.ttl_max_hours} hours"
            )

    def _flush_dependent(
        self,
        row: Reply | Reaction | Flag,
        post_id: int,
        conflict: str | None = None,
    ) -> None:
        """Insert a row that hangs off a post.

        A post swept after the caller's visibility check fails the foreign
        key; that surfaces as ``NotFoundError``, like any other missing post.
        ``conflict`` is the duplicate-row message used while the post exists.
        """
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            if self.get_post(post_id) is None:
                raise NotFoundError() from exc
            if conflict is None:
                raise
            raise ConflictError(conflict) from exc

    # -- posts ----------------------------------------------------------------------

    @_translate_store_errors
    def create_post(
        self,
        space_id: int,
        device_id: int,
        content: str,
        ttl_hours: int,
        session_token: str | None = None,
        now: datetime | None = None,
    ) -> Post:
        """Insert a post whose expiry is fixed at ``now + ttl_hours``.

        Raises:
            ValidationError: Empty or oversized content, or TTL out of bounds.
        """
        body = self._clean_content(content, self.settings.max_post_length, "Content")
        self._check_ttl(ttl_hours)

        now = now or self.clock()
        post = Post(
            space_id=space_id,
            device_id=device_id,
            content=body,
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
            is_visible=True,
            is_grayed=False,
            reaction_count=0,
            reply_count=0,
            flag_count=0,
            session_token=session_token,
        )
        self.session.add(post)
        self.session.commit()
        logger.debug("Created post %s in space %s expiring at %s", post.id, space_id, post.expires_at)
        return post

    def get_post(self, post_id: int) -> Post | None:
        """Return a post by identifier regardless of visibility."""
        return self.session.execute(select(Post).where(Post.id == post_id)).scalar_one_or_none()

    @_translate_store_errors
    def get_visible_post(
        self,
        post_id: int,
        space_id: int | None = None,
        now: datetime | None = None,
    ) -> Post:
        """Return a displayable post.

        Raises:
            NotFoundError: Missing, hidden, expired or in another space; the
                cases are indistinguishable to the caller.
        """
        now = now or self.clock()
        stmt = select(Post).where(
            Post.id == post_id,
            Post.is_visible.is_(True),
            Post.expires_at > now,
        )
        if space_id is not None:
            stmt = stmt.where(Post.space_id == space_id)
        post = self.session.execute(stmt).scalar_one_or_none()
        if post is None:
            raise NotFoundError()
        return post

    @_translate_store_errors
    def list_feed(
        self,
        space_id: int,
        limit: int = 50,
        before: datetime | None = None,
        include_grayed: bool = True,
        now: datetime | None = None,
    ) -> list[Post]:
        """Return visible, unexpired posts newest first.

        ``before`` is the ``created_at`` of the last item of the previous page;
        the comparison is strict so pages never overlap.
        """
        now = now or self.clock()
        limit = max(1, min(limit, self.settings.feed_max_limit))
        stmt = select(Post).where(
            Post.space_id == space_id,
            Post.is_visible.is_(True),
            Post.expires_at > now,
        )
        if not include_grayed:
            stmt = stmt.where(Post.is_grayed.is_(False))
        if before is not None:
            stmt = stmt.where(Post.created_at < before)
        stmt = stmt.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    @_translate_store_errors
    def expiring_soon(
        self,
        space_id: int,
        within_minutes: int = 60,
        now: datetime | None = None,
    ) -> list[Post]:
        """Return visible posts expiring within the window, soonest first."""
        now = now or self.clock()
        stmt = (
            select(Post)
            .where(
                Post.space_id == space_id,
                Post.is_visible.is_(True),
                Post.expires_at > now,
                Post.expires_at < now + timedelta(minutes=within_minutes),
            )
            .order_by(Post.expires_at.asc())
        )
        return list(self.session.execute(stmt).scalars())

    @_translate_store_errors
    def hide_post(self, post: Post, reason: str = MOD_ACTION_HIDDEN) -> bool:
        """Hide a post for moderation; returns True only on the transition."""
        result = self.session.execute(
            update(Post)
            .where(Post.id == post.id, Post.is_visible.is_(True))
            .values(is_visible=False, mod_action=reason)
        )
        self.session.commit()
        return result.rowcount == 1

    @_translate_store_errors
    def gray_out(self, post: Post, mod_action: str = MOD_ACTION_COMMUNITY_FLAGGED) -> bool:
        """Demote a visible post; returns True only on the transition."""
        result = self.session.execute(
            update(Post)
            .where(Post.id == post.id, Post.is_visible.is_(True), Post.is_grayed.is_(False))
            .values(is_grayed=True, mod_action=mod_action)
        )
        self.session.commit()
        return result.rowcount == 1

    # -- replies --------------------------------------------------------------------

    @_translate_store_errors
    def create_reply(
        self,
        post_id: int,
        device_id: int,
        content: str,
        session_token: str | None = None,
        now: datetime | None = None,
    ) -> Reply:
        """Insert a reply and bump the parent's reply count in the same transaction.

        Raises:
            ValidationError: Empty or oversized reply.
            NotFoundError: The parent post was swept before the insert.
        """
        body = self._clean_content(content, self.settings.max_reply_length, "Reply")
        now = now or self.clock()
        reply = Reply(
            post_id=post_id,
            device_id=device_id,
            content=body,
            created_at=now,
            is_visible=True,
            session_token=session_token,
        )
        self._flush_dependent(reply, post_id)
        self.session.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(reply_count=Post.reply_count + 1)
        )
        self.session.commit()
        return reply

    @_translate_store_errors
    def list_replies(
        self,
        post_id: int,
        limit: int = 50,
        include_hidden: bool = False,
    ) -> list[Reply]:
        """Return replies oldest first."""
        stmt = select(Reply).where(Reply.post_id == post_id)
        if not include_hidden:
            stmt = stmt.where(Reply.is_visible.is_(True))
        stmt = stmt.order_by(Reply.created_at.asc(), Reply.id.asc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def get_reply(self, reply_id: int) -> Reply | None:
        """Return a reply by identifier."""
        return self.session.execute(select(Reply).where(Reply.id == reply_id)).scalar_one_or_none()

    @_translate_store_errors
    def hide_reply(self, reply: Reply) -> bool:
        """Hide a reply without touching its parent post."""
        result = self.session.execute(
            update(Reply)
            .where(Reply.id == reply.id, Reply.is_visible.is_(True))
            .values(is_visible=False)
        )
        self.session.commit()
        return result.rowcount == 1

    # -- reactions ------------------------------------------------------------------

    def get_reaction(self, post_id: int, device_id: int) -> Reaction | None:
        """Return the device's reaction on a post, if any."""
        return self.session.execute(
            select(Reaction).where(Reaction.post_id == post_id, Reaction.device_id == device_id)
        ).scalar_one_or_none()

    @_translate_store_errors
    def upsert_reaction(self, post_id: int, device_id: int, reaction_type: str) -> ReactionOutcome:
        """Create, replace or toggle off the device's reaction.

        Submitting the type the device already holds removes it; a different
        type replaces it.

        Raises:
            ValidationError: Unknown reaction type.
            ConflictError: A concurrent request created the reaction first.
            NotFoundError: The post was swept before the insert.
        """
        if reaction_type not in REACTION_TYPES:
            raise ValidationError(f"Invalid reaction type: {reaction_type}")

        existing = self.get_reaction(post_id, device_id)
        if existing is not None:
            if existing.reaction_type == reaction_type:
                self.session.delete(existing)
                self.session.flush()
                self.session.execute(
                    update(Post)
                    .where(Post.id == post_id)
                    .values(reaction_count=Post.reaction_count - 1)
                )
                self.session.commit()
                return ReactionOutcome(REACTION_REMOVED, None)

            existing.reaction_type = reaction_type
            self.session.commit()
            return ReactionOutcome(REACTION_UPDATED, reaction_type)

        reaction = Reaction(
            post_id=post_id,
            device_id=device_id,
            reaction_type=reaction_type,
            created_at=self.clock(),
        )
        self._flush_dependent(reaction, post_id, "Reaction already recorded")
        self.session.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(reaction_count=Post.reaction_count + 1)
        )
        self.session.commit()
        return ReactionOutcome(REACTION_CREATED, reaction_type)

    def reaction_counts(self, post_id: int) -> dict[str, int]:
        """Return per-type reaction counts for internal scoring."""
        counts = dict.fromkeys(REACTION_TYPES, 0)
        rows = self.session.execute(
            select(Reaction.reaction_type, func.count())
            .where(Reaction.post_id == post_id)
            .group_by(Reaction.reaction_type)
        )
        for reaction_type, count in rows:
            counts[reaction_type] = int(count)
        return counts

    def count_reactions(self, post_id: int, reaction_type: str) -> int:
        """Return how many devices hold a given reaction on the post."""
        return int(
            self.session.scalar(
                select(func.count())
                .select_from(Reaction)
                .where(Reaction.post_id == post_id, Reaction.reaction_type == reaction_type)
            )
            or 0
        )

    def reactions_for_device(self, device_id: int, post_ids: Iterable[int]) -> dict[int, str]:
        """Map post id to the device's reaction type for a page of posts."""
        ids = list(post_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(Reaction.post_id, Reaction.reaction_type).where(
                Reaction.device_id == device_id,
                Reaction.post_id.in_(ids),
            )
        )
        return {post_id: reaction_type for post_id, reaction_type in rows}

    # -- flags ----------------------------------------------------------------------

    def has_flagged(self, post_id: int, device_id: int) -> bool:
        """Return True if the device already flagged the post."""
        return (
            self.session.scalar(
                select(Flag.id).where(Flag.post_id == post_id, Flag.device_id == device_id).limit(1)
            )
            is not None
        )

    @_translate_store_errors
    def create_flag(
        self,
        post_id: int,
        device_id: int,
        reason: str,
        details: str | None = None,
    ) -> int:
        """Record a flag and bump the post's tally atomically; returns the new tally.

        Raises:
            ValidationError: Unknown flag reason.
            ConflictError: The device already flagged this post. The tally is
                left unchanged.
            NotFoundError: The post was swept before the insert.
        """
        if reason not in FLAG_REASONS:
            raise ValidationError(f"Invalid flag reason: {reason}")
        if self.has_flagged(post_id, device_id):
            raise ConflictError("You have already flagged this post")

        flag = Flag(
            post_id=post_id,
            device_id=device_id,
            reason=reason,
            details=details,
            created_at=self.clock(),
        )
        self._flush_dependent(flag, post_id, "You have already flagged this post")

        self.session.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(flag_count=Post.flag_count + 1)
        )
        self.session.commit()
        return int(self.session.scalar(select(Post.flag_count).where(Post.id == post_id)) or 0)

    def flag_breakdown(self, post_id: int) -> dict[str, int]:
        """Return per-reason flag counts for a post."""
        breakdown = dict.fromkeys(FLAG_REASONS, 0)
        rows = self.session.execute(
            select(Flag.reason, func.count()).where(Flag.post_id == post_id).group_by(Flag.reason)
        )
        for reason, count in rows:
            breakdown[reason] = int(count)
        return breakdown

    def list_flags(self, post_id: int) -> list[Flag]:
        """Return every flag on a post, newest first."""
        return list(
            self.session.execute(
                select(Flag).where(Flag.post_id == post_id).order_by(Flag.created_at.desc())
            ).scalars()
        )

    @_translate_store_errors
    def heavily_flagged(
        self,
        space_id: int,
        min_flags: int = 3,
        now: datetime | None = None,
    ) -> list[Post]:
        """Return visible, unexpired posts with at least ``min_flags`` flags."""
        now = now or self.clock()
        stmt = (
            select(Post)
            .where(
                Post.space_id == space_id,
                Post.is_visible.is_(True),
                Post.expires_at > now,
                Post.flag_count >= min_flags,
            )
            .order_by(Post.flag_count.desc(), Post.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    # -- expiration -----------------------------------------------------------------

    @_translate_store_errors
    def delete_expired(self, now: datetime | None = None) -> SweepResult:
        """Delete every post past its expiry in one statement.

        Replies, reactions and flags go with their post through
        ``ON DELETE CASCADE``. Readers filter on ``expires_at > now`` so they
        never see a half-deleted post, and a repeated call deletes nothing.
        """
        now = now or self.clock()
        expired_ids = select(Post.id).where(Post.expires_at < now)
        deleted_replies = self.session.scalar(
            select(func.count()).select_from(Reply).where(Reply.post_id.in_(expired_ids))
        )
        result = self.session.execute(
            delete(Post)
            .where(Post.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.expire_all()
        return SweepResult(deleted_posts=result.rowcount or 0, deleted_replies=int(deleted_replies or 0))

    @_translate_store_errors
    def delete_expired_direct(self, now: datetime | None = None) -> SweepResult:
        """Fallback sweep that removes dependents explicitly before their posts.

        Used when the cascading sweep fails, for example on a store where the
        foreign keys were created without ``ON DELETE CASCADE``.
        """
        now = now or self.clock()
        post_ids = list(self.session.execute(select(Post.id).where(Post.expires_at < now)).scalars())
        if not post_ids:
            return SweepResult(deleted_posts=0)

        for model in (Reaction, Flag):
            self.session.execute(
                delete(model)
                .where(model.post_id.in_(post_ids))
                .execution_options(synchronize_session=False)
            )
        replies = self.session.execute(
            delete(Reply)
            .where(Reply.post_id.in_(post_ids))
            .execution_options(synchronize_session=False)
        )
        posts = self.session.execute(
            delete(Post)
            .where(Post.id.in_(post_ids))
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.expire_all()
        return SweepResult(deleted_posts=posts.rowcount or 0, deleted_replies=replies.rowcount or 0)

    @_translate_store_errors
    def preview_expired(self, now: datetime | None = None) -> ExpirationPreview:
        """Summarise what the next sweep would delete, grouped by space."""
        now = now or self.clock()
        rows = self.session.execute(
            select(
                Space.slug,
                func.count(Post.id),
                func.min(Post.expires_at),
                func.max(Post.expires_at),
            )
            .join(Space, Space.id == Post.space_id)
            .where(Post.expires_at < now)
            .group_by(Space.slug)
            .order_by(func.count(Post.id).desc())
        )
        by_space = [
            {
                "space": slug,
                "expired_posts": int(count),
                "oldest_expired": as_utc(oldest),
                "newest_expired": as_utc(newest),
            }
            for slug, count, oldest, newest in rows
        ]
        total = self.session.scalar(
            select(func.count()).select_from(Post).where(Post.expires_at < now)
        )
        return ExpirationPreview(total_expired=int(total or 0), by_space=by_space)

    @_translate_store_errors
    def space_expiration_stats(self, space_id: int, now: datetime | None = None) -> dict[str, int]:
        """Return how many visible posts in a space have expired or expire soon."""
        now = now or self.clock()

        def _within(hours: int):
            return func.coalesce(
                func.sum(
                    case(
                        (Post.expires_at.between(now, now + timedelta(hours=hours)), 1),
                        else_=0,
                    )
                ),
                0,
            )

        row = self.session.execute(
            select(
                func.coalesce(func.sum(case((Post.expires_at < now, 1), else_=0)), 0),
                _within(1),
                _within(6),
                _within(24),
                func.count(Post.id),
            ).where(Post.space_id == space_id, Post.is_visible.is_(True))
        ).one()
        expired, expiring_1h, expiring_6h, expiring_24h, total = (int(value) for value in row)
        return {
            "expired": expired,
            "expiring_1h": expiring_1h,
            "expiring_6h": expiring_6h,
            "expiring_24h": expiring_24h,
            "total": total,
        }
