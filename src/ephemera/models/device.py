# src/ephemera/models/device.py
"""SQLAlchemy model for anonymous device identities."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.db.session import Base
from ephemera.db.time import utcnow


class Device(Base):
    """Soft identity keyed by a salted hash of client signals.

    Devices are never deleted: they outlive every post they author so that
    reputation and bans survive content churn.
    """

    __tablename__ = "device"
    __table_args__ = (
        CheckConstraint(
            "reputation_score >= 0 AND reputation_score <= 100",
            name="ck_device_reputation_range",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # HMAC-SHA256 hex digest; never reversible to the raw signals.
    fingerprint_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    reputation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    total_posts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_flags_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_flags_given: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    # NULL with is_banned = permanent ban.
    ban_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_post_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posts_in_current_window: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
