# src/ephemera/services/escalation.py
"""Turns community signals into visibility transitions and reputation changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ephemera.core.settings import Settings
from ephemera.models import Device, Post
from ephemera.models.interaction import REACTION_CROSSING_LINE
from ephemera.models.post import MOD_ACTION_COMMUNITY_FLAGGED, MOD_ACTION_HIDDEN
from ephemera.repositories.lifecycle import LifecycleStore, ReactionOutcome
from ephemera.repositories.space_repo import SpaceRepository
from ephemera.services.identity import IdentityService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlagOutcome:
    """Tally after a flag and whether this flag grayed the post out."""

    flag_count: int
    grayed: bool


@dataclass(frozen=True)
class ReviewSignals:
    """Everything a moderator sees when reviewing a post."""

    flag_breakdown: dict[str, int]
    reaction_counts: dict[str, int]
    objectionable: bool


class EscalationCoordinator:
    """Applies flag thresholds and moderator actions to posts.

    The coordinator never hides content on its own; hiding is a moderator
    decision. Community flags only demote a post to grayed.
    """

    def __init__(
        self,
        store: LifecycleStore,
        identity: IdentityService,
        spaces: SpaceRepository,
        settings: Settings,
    ) -> None:
        self.store = store
        self.identity = identity
        self.spaces = spaces
        self.settings = settings

    def _flag_threshold(self, post: Post) -> int:
        space = self.spaces.get(post.space_id)
        if space is None:
            return self.settings.default_flag_threshold
        return space.flag_threshold

    def _penalize_author(self, post: Post, penalty: int) -> None:
        author = self.identity.get(post.device_id)
        if author is None:
            return
        self.identity.adjust_reputation(author, -penalty)

    def on_flag(
        self,
        post: Post,
        device: Device,
        reason: str,
        details: str | None = None,
    ) -> FlagOutcome:
        """Record a flag and gray the post out once the space threshold is met.

        Raises:
            ValidationError: Unknown reason.
            ConflictError: The device already flagged this post.
        """
        flag_count = self.store.create_flag(post.id, device.id, reason, details)
        self.identity.record_flag_given(device)
        self.identity.record_flag_received(post.device_id)

        grayed = False
        threshold = self._flag_threshold(post)
        if flag_count >= threshold:
            grayed = self.store.gray_out(post, MOD_ACTION_COMMUNITY_FLAGGED)
            if grayed:
                logger.info(
                    "Post %s grayed out after %d flags (threshold %d)",
                    post.id,
                    flag_count,
                    threshold,
                )
                self._penalize_author(post, self.settings.reputation_penalty_grayed)

        return FlagOutcome(flag_count=flag_count, grayed=grayed)

    def on_reaction(self, post: Post, device: Device, reaction_type: str) -> ReactionOutcome:
        """Upsert a reaction and report when the objectionable signal crosses its threshold."""
        outcome = self.store.upsert_reaction(post.id, device.id, reaction_type)

        objectionable = self.store.count_reactions(post.id, REACTION_CROSSING_LINE)
        if objectionable >= self.settings.objectionable_reaction_threshold:
            logger.warning(
                "Post %s has %d '%s' reactions; flagged for review",
                post.id,
                objectionable,
                REACTION_CROSSING_LINE,
            )
            return replace(outcome, needs_review=True)
        return outcome

    def on_moderator_hide(self, post: Post, reason: str = MOD_ACTION_HIDDEN) -> bool:
        """Hide a post and penalize its author on the first hide only."""
        hidden = self.store.hide_post(post, reason)
        if hidden:
            logger.info("Post %s hidden by moderator (%s)", post.id, reason)
            self._penalize_author(post, self.settings.reputation_penalty_hidden)
        return hidden

    def review_signals(self, post: Post) -> ReviewSignals:
        reaction_counts = self.store.reaction_counts(post.id)
        return ReviewSignals(
            flag_breakdown=self.store.flag_breakdown(post.id),
            reaction_counts=reaction_counts,
            objectionable=(
                reaction_counts[REACTION_CROSSING_LINE]
                >= self.settings.objectionable_reaction_threshold
            ),
        )
