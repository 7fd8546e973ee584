"""Repository layer for database access."""

from .lifecycle import LifecycleStore
from .space_repo import SpaceRepository

__all__ = ["LifecycleStore", "SpaceRepository"]
