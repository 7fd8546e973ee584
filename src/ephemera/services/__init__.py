# src/ephemera/services/__init__.py
"""Business logic services for the Ephemera engine."""

from .cleanup import ExpirationScheduler, build_scheduler
from .escalation import EscalationCoordinator
from .identity import IdentityService
from .moderation import ContentModerationService
from .posting import PostingService

__all__ = [
    "ContentModerationService",
    "EscalationCoordinator",
    "ExpirationScheduler",
    "IdentityService",
    "PostingService",
    "build_scheduler",
]
