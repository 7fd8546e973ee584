# src/ephemera/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import moderation_router, posts_router, spaces_router, system_router

__all__ = [
    "moderation_router",
    "posts_router",
    "spaces_router",
    "system_router",
]
