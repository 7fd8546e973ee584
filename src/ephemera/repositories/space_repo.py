"""Data access helpers for community spaces."""
from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ephemera.core.errors import ConflictError, ValidationError
from ephemera.core.settings import Settings
from ephemera.db.time import utcnow
from ephemera.models import Post, Space
from ephemera.models.space import SPACE_TIER_FREE, SPACE_TIERS

_SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")
RESERVED_SLUGS = frozenset({"www", "api", "admin", "app", "mail", "ftp", "cdn", "static"})

_UNSET = object()


class SpaceRepository:
    """Encapsulates queries against the ``space`` table."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.settings = settings
        self.clock = clock

    @staticmethod
    def is_valid_slug(slug: str) -> bool:
        """Return True for 3-63 character lower-case handles that are not reserved."""
        return bool(_SLUG_PATTERN.match(slug)) and slug not in RESERVED_SLUGS

    def is_slug_available(self, slug: str) -> bool:
        """Return True when no space, active or not, uses the slug."""
        count = self.session.scalar(
            select(func.count()).select_from(Space).where(Space.slug == slug.lower())
        )
        return not count

    def _check_ttl(self, ttl_hours: int) -> None:
        if not self.settings.ttl_min_hours <= ttl_hours <= self.settings.ttl_max_hours:
            raise ValidationError(
                f"TTL must be between {self.settings.ttl_min_hours} "
                f"and {self.settings.ttl_max_hours} hours"
            )

    def create(
        self,
        slug: str,
        display_name: str,
        description: str | None = None,
        ttl_hours: int | None = None,
        flag_threshold: int | None = None,
        auto_mod_enabled: bool = True,
        is_private: bool = False,
        tier: str = SPACE_TIER_FREE,
    ) -> Space:
        """Create a space, defaulting its TTL and flag threshold from settings.

        Raises:
            ValidationError: Malformed or reserved slug, bad TTL or tier.
            ConflictError: Slug already taken.
        """
        slug = slug.lower()
        if not self.is_valid_slug(slug):
            raise ValidationError(f"Invalid space slug: {slug}")
        if tier not in SPACE_TIERS:
            raise ValidationError(f"Invalid tier: {tier}")

        ttl = self.settings.ttl_default_hours if ttl_hours is None else ttl_hours
        self._check_ttl(ttl)
        threshold = self.settings.default_flag_threshold if flag_threshold is None else flag_threshold
        if threshold < 1:
            raise ValidationError("Flag threshold must be at least 1")

        now = self.clock()
        space = Space(
            slug=slug,
            display_name=display_name,
            description=description,
            ttl_hours=ttl,
            flag_threshold=threshold,
            auto_mod_enabled=auto_mod_enabled,
            is_active=True,
            is_private=is_private,
            tier=tier,
            created_at=now,
            updated_at=now,
        )
        self.session.add(space)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(f"Space slug already taken: {slug}") from exc
        return space

    def get(self, space_id: int) -> Space | None:
        """Return a space by identifier, active or not."""
        return self.session.execute(select(Space).where(Space.id == space_id)).scalar_one_or_none()

    def get_by_slug(self, slug: str) -> Space | None:
        """Return the active space with this slug."""
        return self.session.execute(
            select(Space).where(Space.slug == slug.lower(), Space.is_active.is_(True))
        ).scalar_one_or_none()

    def update(
        self,
        space: Space,
        display_name: str | None = None,
        description: object = _UNSET,
        ttl_hours: int | None = None,
        flag_threshold: int | None = None,
        auto_mod_enabled: bool | None = None,
    ) -> Space:
        """Change space parameters.

        A new ``ttl_hours`` applies to posts created afterwards only; existing
        posts keep the expiry they were stamped with.
        """
        if ttl_hours is not None:
            self._check_ttl(ttl_hours)
        if flag_threshold is not None and flag_threshold < 1:
            raise ValidationError("Flag threshold must be at least 1")

        if ttl_hours is not None:
            space.ttl_hours = ttl_hours
        if flag_threshold is not None:
            space.flag_threshold = flag_threshold
        if display_name is not None:
            space.display_name = display_name
        if description is not _UNSET:
            space.description = description  # type: ignore[assignment]
        if auto_mod_enabled is not None:
            space.auto_mod_enabled = auto_mod_enabled
        space.updated_at = self.clock()
        self.session.commit()
        return space

    def deactivate(self, space: Space) -> None:
        """Hide a space from slug lookups without deleting its content."""
        space.is_active = False
        space.updated_at = self.clock()
        self.session.commit()

    def active_post_count(self, space: Space, now: datetime | None = None) -> int:
        """Return how many visible, unexpired posts the space holds."""
        now = now or self.clock()
        return int(
            self.session.scalar(
                select(func.count())
                .select_from(Post)
                .where(
                    Post.space_id == space.id,
                    Post.is_visible.is_(True),
                    Post.expires_at > now,
                )
            )
            or 0
        )
