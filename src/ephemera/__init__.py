"""Ephemera: ephemeral community walls with soft identity and crowd moderation."""

__version__ = "0.1.0"
