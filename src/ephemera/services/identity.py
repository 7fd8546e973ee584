# src/ephemera/services/identity.py
"""Soft device identity: fingerprint resolution, posting gates, reputation and bans."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ephemera.core.settings import Settings
from ephemera.db.time import as_utc, utcnow
from ephemera.models import Device
from ephemera.utils.hash import fingerprint_hexdigest

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=1)

REASON_BANNED = "banned"
REASON_RATE_LIMITED = "rate_limited"
REASON_LOW_REPUTATION = "low_reputation"

REPUTATION_MIN = 0
REPUTATION_MAX = 100


@dataclass(frozen=True)
class FingerprintSignals:
    """Client signals a device is recognised by; any subset may be empty."""

    user_agent: str | None = None
    language: str | None = None
    platform: str | None = None
    client_token: str | None = None
    # Carried for logging and coarse abuse control, not hashed.
    ip: str | None = None

    def as_mapping(self) -> dict[str, str | None]:
        return asdict(self)


@dataclass(frozen=True)
class PostPermission:
    """Outcome of the can-post evaluation; only the first failing check is reported."""

    allowed: bool
    reason: str | None = None
    until: datetime | None = None


def clamp_reputation(score: int) -> int:
    """Clamp a reputation score into the valid range."""
    return max(REPUTATION_MIN, min(REPUTATION_MAX, score))


def rate_window_open(last_post_at: datetime | None, now: datetime) -> bool:
    """Return True while the hourly window started by ``last_post_at`` is running.

    The window closes at exactly one hour; ``record_post`` resets the
    counter on the same boundary.
    """
    return last_post_at is not None and last_post_at > now - RATE_WINDOW


class IdentityService:
    """Owns device rows: lookup-or-create, rate window, reputation and bans.

    Each public mutator commits its own unit of work.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.settings = settings
        self.clock = clock

    def fingerprint(self, signals: FingerprintSignals) -> str:
        """Return the salted fingerprint hash for a signal bundle."""
        return fingerprint_hexdigest(signals.as_mapping(), self.settings.fingerprint_salt)

    def get(self, device_id: int) -> Device | None:
        """Return a device by identifier."""
        return self.session.execute(
            select(Device).where(Device.id == device_id)
        ).scalar_one_or_none()

    def get_by_fingerprint(self, fingerprint_hash: str) -> Device | None:
        """Return the device registered under a fingerprint hash."""
        return self.session.execute(
            select(Device).where(Device.fingerprint_hash == fingerprint_hash)
        ).scalar_one_or_none()

    def resolve(self, signals: FingerprintSignals) -> Device:
        """Return the device for these signals, creating it on first sight.

        A hit touches ``last_seen_at``. Two requests racing to create the same
        device are reconciled by the unique constraint: the loser re-reads.
        """
        now = self.clock()
        fingerprint_hash = self.fingerprint(signals)

        device = self.get_by_fingerprint(fingerprint_hash)
        if device is not None:
            device.last_seen_at = now
            self.session.commit()
            return device

        device = Device(
            fingerprint_hash=fingerprint_hash,
            reputation_score=clamp_reputation(self.settings.initial_reputation),
            total_posts=0,
            total_flags_received=0,
            total_flags_given=0,
            is_banned=False,
            posts_in_current_window=0,
            first_seen_at=now,
            last_seen_at=now,
        )
        self.session.add(device)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            device = self.get_by_fingerprint(fingerprint_hash)
            if device is None:
                raise
            logger.debug("Device %s created concurrently; reusing existing row", device.id)
            return device

        logger.info("Registered new device %s", device.id)
        return device

    def can_post(self, device: Device, now: datetime | None = None) -> PostPermission:
        """Evaluate ban, hourly window and reputation floor, in that order.

        A ban whose expiry has passed is lifted here as a side effect before
        the remaining checks run.
        """
        now = now or self.clock()

        if device.is_banned:
            ban_expires_at = as_utc(device.ban_expires_at)
            if ban_expires_at is not None and ban_expires_at < now:
                logger.info("Ban on device %s expired at %s; lifting", device.id, ban_expires_at)
                self.unban(device)
            else:
                return PostPermission(False, REASON_BANNED, ban_expires_at)

        last_post_at = as_utc(device.last_post_at)
        if rate_window_open(last_post_at, now):
            if device.posts_in_current_window >= self.settings.max_posts_per_hour:
                return PostPermission(False, REASON_RATE_LIMITED, last_post_at + RATE_WINDOW)

        # Shadow restriction: the device is not told it is distrusted.
        if device.reputation_score < self.settings.min_reputation_to_post:
            return PostPermission(False, REASON_LOW_REPUTATION)

        return PostPermission(True)

    def record_post(self, device: Device, now: datetime | None = None) -> None:
        """Count a post against the lifetime total and the hourly window.

        The counters are computed in one UPDATE so concurrent posts from the
        same device both land. The window resets once ``rate_window_open``
        reports it closed.
        """
        now = now or self.clock()
        window_closed = or_(
            Device.last_post_at.is_(None),
            Device.last_post_at <= now - RATE_WINDOW,
        )
        self.session.execute(
            update(Device)
            .where(Device.id == device.id)
            .values(
                posts_in_current_window=case(
                    (window_closed, 1),
                    else_=Device.posts_in_current_window + 1,
                ),
                total_posts=Device.total_posts + 1,
                last_post_at=now,
                last_seen_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(device)

    def adjust_reputation(self, device: Device, delta: int) -> int:
        """Apply a reputation delta, clamped into [0, 100], and return the new score.

        The delta is applied to the stored score in SQL, so concurrent
        penalties compose.
        """
        previous = device.reputation_score
        shifted = Device.reputation_score + delta
        self.session.execute(
            update(Device)
            .where(Device.id == device.id)
            .values(
                reputation_score=case(
                    (shifted < REPUTATION_MIN, REPUTATION_MIN),
                    (shifted > REPUTATION_MAX, REPUTATION_MAX),
                    else_=shifted,
                )
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(device)
        new_score = device.reputation_score
        if new_score != previous:
            logger.info(
                "Device %s reputation %s -> %s (delta %+d)",
                device.id,
                previous,
                new_score,
                delta,
            )
        return new_score

    def ban(self, device: Device, reason: str, duration_hours: float | None = None) -> None:
        """Ban a device; ``duration_hours=None`` makes the ban permanent."""
        expires_at = None
        if duration_hours is not None:
            expires_at = self.clock() + timedelta(hours=duration_hours)
        device.is_banned = True
        device.ban_reason = reason
        device.ban_expires_at = expires_at
        self.session.commit()
        logger.warning("Device %s banned (%s) until %s", device.id, reason, expires_at or "forever")

    def unban(self, device: Device) -> None:
        """Lift a ban and clear its reason and expiry."""
        device.is_banned = False
        device.ban_reason = None
        device.ban_expires_at = None
        self.session.commit()

    def record_flag_given(self, device: Device) -> None:
        """Count a flag submitted by this device."""
        self.session.execute(
            update(Device)
            .where(Device.id == device.id)
            .values(total_flags_given=Device.total_flags_given + 1)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(device)

    def record_flag_received(self, device_id: int) -> None:
        """Count a flag received on one of this device's posts."""
        self.session.execute(
            update(Device)
            .where(Device.id == device_id)
            .values(total_flags_received=Device.total_flags_received + 1)
        )
        self.session.commit()

    def admin_view(self, device: Device) -> dict[str, object]:
        """Return the moderator projection with a truncated fingerprint."""
        return {
            "id": device.id,
            "fingerprint_hash": f"{device.fingerprint_hash[:8]}...",
            "reputation_score": device.reputation_score,
            "total_posts": device.total_posts,
            "total_flags_received": device.total_flags_received,
            "total_flags_given": device.total_flags_given,
            "is_banned": device.is_banned,
            "ban_reason": device.ban_reason,
            "ban_expires_at": as_utc(device.ban_expires_at),
            "first_seen_at": as_utc(device.first_seen_at),
            "last_seen_at": as_utc(device.last_seen_at),
        }
