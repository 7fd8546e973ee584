# src/ephemera/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .interaction import FlagCreate, ReactionCreate
from .post import PostCreate, PostPublic, ReplyCreate, ReplyPublic
from .space import SpacePublic

__all__ = [
    "FlagCreate", "ReactionCreate",
    "PostCreate", "PostPublic",
    "ReplyCreate", "ReplyPublic",
    "SpacePublic",
]
