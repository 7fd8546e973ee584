"""SQLAlchemy model for community spaces."""
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.db.session import Base
from ephemera.db.time import utcnow

SPACE_TIER_FREE = "free"
SPACE_TIER_PREMIUM = "premium"
SPACE_TIER_ENTERPRISE = "enterprise"
SPACE_TIERS = (SPACE_TIER_FREE, SPACE_TIER_PREMIUM, SPACE_TIER_ENTERPRISE)


class Space(Base):
    """Community wall; the parameter source for post lifetimes and flag thresholds."""

    __tablename__ = "space"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # Lower-case handle; historically the subdomain.
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Changing it only affects posts created afterwards.
    ttl_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    flag_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    auto_mod_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tier: Mapped[str] = mapped_column(Text, nullable=False, default=SPACE_TIER_FREE)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
