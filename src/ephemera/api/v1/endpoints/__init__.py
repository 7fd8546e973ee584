# src/ephemera/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .moderation import router as moderation_router
from .posts import router as posts_router
from .spaces import router as spaces_router
from .system import router as system_router

__all__ = [
    "moderation_router",
    "posts_router",
    "spaces_router",
    "system_router",
]
