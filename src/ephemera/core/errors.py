"""Error taxonomy shared by the lifecycle, identity and escalation layers.

Each error carries the HTTP status the API layer responds with, so route
handlers can let them propagate to the registered exception handler.
"""

from __future__ import annotations

from datetime import datetime


class EphemeraError(Exception):
    """Base class for every domain error raised by Ephemera services."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, object]:
        """Return the JSON body rendered for this error."""
        return {"detail": self.detail}


class ValidationError(EphemeraError):
    """Rejected input: empty or oversized content, unknown enum value, bad TTL."""

    status_code = 400


class ConflictError(EphemeraError):
    """The device already acted on this post (duplicate flag)."""

    status_code = 409


class NotFoundError(EphemeraError):
    """Missing, hidden, expired or foreign-space content.

    The message is deliberately identical for all of those cases so probing
    clients cannot learn when a post expired.
    """

    status_code = 404

    def __init__(self, detail: str = "Post not found") -> None:
        super().__init__(detail)


class PostingNotAllowed(EphemeraError):
    """The device failed the can-post evaluation."""

    def __init__(self, reason: str, until: datetime | None = None) -> None:
        super().__init__(f"Posting not allowed: {reason}")
        self.reason = reason
        self.until = until
        self.status_code = 403 if reason == "banned" else 429

    def to_dict(self) -> dict[str, object]:
        body = super().to_dict()
        body["reason"] = self.reason
        body["until"] = self.until.isoformat() if self.until else None
        return body


class StoreUnavailable(EphemeraError):
    """The backing store could not be reached; the caller may retry."""

    status_code = 503


class ContentRejected(ValidationError):
    """Automatic moderation blocked the submitted text."""

    def __init__(self, reasons: list[str]) -> None:
        super().__init__("Content violates the community rules")
        self.reasons = list(reasons)

    def to_dict(self) -> dict[str, object]:
        body = super().to_dict()
        body["reasons"] = self.reasons
        return body
