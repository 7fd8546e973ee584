# src/ephemera/models/__init__.py
"""SQLAlchemy models for the Ephemera application."""

from .device import Device
from .interaction import Flag, Reaction
from .post import Post, Reply
from .space import Space

__all__ = [
    "Device",
    "Flag", "Reaction",
    "Post", "Reply",
    "Space",
]
