# src/ephemera/models/post.py
"""SQLAlchemy models for ephemeral posts and their replies."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.db.session import Base
from ephemera.db.time import as_utc

MOD_ACTION_COMMUNITY_FLAGGED = "community_flagged"
MOD_ACTION_AUTO_MODERATED = "auto_moderated"
MOD_ACTION_HIDDEN = "mod_hidden"

_ID = BigInteger().with_variant(Integer, "sqlite")


class Post(Base):
    """Time-bounded content on a space wall.

    ``expires_at`` is computed once at creation from the space TTL and is
    never recomputed. The row is hard-deleted by the expiration sweep and
    the delete cascades to replies, reactions and flags.
    """

    __tablename__ = "post"
    __table_args__ = (
        Index("ix_post_space_expires_at", "space_id", "expires_at"),
        Index("ix_post_space_created_at", "space_id", "created_at"),
        Index("ix_post_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    space_id: Mapped[int] = mapped_column(
        _ID,
        ForeignKey("space.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Owner; used for reputation bookkeeping only, never rendered.
    device_id: Mapped[int] = mapped_column(_ID, ForeignKey("device.id"), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # False once a moderator hides the post; terminal short of expiry.
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Demoted but still rendered.
    is_grayed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mod_action: Mapped[str | None] = mapped_column(Text, nullable=True)

    reaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flag_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Per-browser marker for the "is this mine" indicator.
    session_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    def is_expired(self, now: datetime) -> bool:
        """Return True once the post has outlived its TTL."""
        return as_utc(self.expires_at) <= now

    def is_displayable(self, now: datetime) -> bool:
        """Return True when consumers may see the post."""
        return self.is_visible and not self.is_expired(now)


class Reply(Base):
    """Threaded response; lives exactly as long as its parent post."""

    __tablename__ = "reply"
    __table_args__ = (Index("ix_reply_post_created_at", "post_id", "created_at"),)

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        _ID,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[int] = mapped_column(_ID, ForeignKey("device.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Hidden independently of the parent post.
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    session_token: Mapped[str | None] = mapped_column(Text, nullable=True)
