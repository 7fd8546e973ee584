# src/ephemera/services/posting.py
"""Submission flow for posts and replies."""

from __future__ import annotations

import logging
from datetime import datetime

from ephemera.core.errors import ContentRejected, PostingNotAllowed
from ephemera.core.settings import Settings
from ephemera.models import Device, Post, Reply, Space
from ephemera.models.post import MOD_ACTION_AUTO_MODERATED
from ephemera.repositories.lifecycle import LifecycleStore
from ephemera.services.identity import IdentityService
from ephemera.services.moderation import ContentModerationService, PostModeration

logger = logging.getLogger(__name__)


class PostingService:
    """Gate, moderate, store and account for new content."""

    def __init__(
        self,
        store: LifecycleStore,
        identity: IdentityService,
        moderation: ContentModerationService,
        settings: Settings,
    ) -> None:
        self.store = store
        self.identity = identity
        self.moderation = moderation
        self.settings = settings

    def _gate(self, device: Device, content: str, now: datetime) -> PostModeration:
        permission = self.identity.can_post(device, now)
        if not permission.allowed:
            logger.info("Device %s may not post: %s", device.id, permission.reason)
            raise PostingNotAllowed(permission.reason or "not_allowed", permission.until)

        verdict = self.moderation.moderate_post(content)
        if not verdict.allowed:
            raise ContentRejected(verdict.reasons)
        return verdict

    def submit_post(
        self,
        space: Space,
        device: Device,
        content: str,
        session_token: str | None = None,
        now: datetime | None = None,
    ) -> Post:
        """Create a post in ``space`` on behalf of ``device``.

        Raises:
            PostingNotAllowed: Banned, rate limited or below the reputation floor.
            ContentRejected: Blocked by automatic moderation.
            ValidationError: Empty or oversized content.
        """
        now = now or self.store.clock()
        verdict = self._gate(device, content, now)

        post = self.store.create_post(
            space.id,
            device.id,
            content,
            space.ttl_hours,
            session_token=session_token,
            now=now,
        )
        if verdict.auto_gray and space.auto_mod_enabled and self.settings.auto_mod_enabled:
            self.store.gray_out(post, MOD_ACTION_AUTO_MODERATED)

        self.identity.record_post(device, now)
        return post

    def submit_reply(
        self,
        post: Post,
        device: Device,
        content: str,
        session_token: str | None = None,
        now: datetime | None = None,
    ) -> Reply:
        """Attach a reply to a visible post; replies are never grayed."""
        now = now or self.store.clock()
        self._gate(device, content, now)

        reply = self.store.create_reply(
            post.id,
            device.id,
            content,
            session_token=session_token,
            now=now,
        )
        self.identity.record_post(device, now)
        return reply
