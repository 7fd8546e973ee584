# src/ephemera/models/interaction.py
"""Models capturing reactions and community flags on posts."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.db.session import Base
from ephemera.db.time import utcnow

REACTION_AGREE = "agree"
REACTION_NOT_ALONE = "not_alone"
REACTION_EXAGGERATED = "exaggerated"
# Objectionable signal surfaced to moderators.
REACTION_CROSSING_LINE = "crossing_line"
REACTION_TYPES = (
    REACTION_AGREE,
    REACTION_NOT_ALONE,
    REACTION_EXAGGERATED,
    REACTION_CROSSING_LINE,
)

FLAG_REASONS = (
    "spam",
    "harassment",
    "hate_speech",
    "threat",
    "doxxing",
    "nsfw",
    "other",
)

_ID = BigInteger().with_variant(Integer, "sqlite")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Reaction(Base):
    """A device's single reaction on a post.

    The unique constraint holds the one-reaction-per-device-per-post rule.
    """

    __tablename__ = "reaction"
    __table_args__ = (
        UniqueConstraint("post_id", "device_id", name="uq_reaction_post_device"),
        CheckConstraint(_in_list("reaction_type", REACTION_TYPES), name="ck_reaction_type"),
        Index("ix_reaction_post_type", "post_id", "reaction_type"),
    )

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        _ID,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[int] = mapped_column(_ID, ForeignKey("device.id"), nullable=False)
    reaction_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Flag(Base):
    """Community report on a post; at most one per device per post."""

    __tablename__ = "flag"
    __table_args__ = (
        UniqueConstraint("post_id", "device_id", name="uq_flag_post_device"),
        CheckConstraint(_in_list("reason", FLAG_REASONS), name="ck_flag_reason"),
    )

    id: Mapped[int] = mapped_column(_ID, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        _ID,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
    )
    device_id: Mapped[int] = mapped_column(_ID, ForeignKey("device.id"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
