# src/ephemera/schemas/interaction.py
"""Reaction, flag and moderation schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ephemera.models.interaction import FLAG_REASONS, REACTION_TYPES

REACTION_LABELS = {
    "agree": "I agree",
    "not_alone": "You are not alone",
    "exaggerated": "Exaggerated",
    "crossing_line": "Crossing the line",
}

FLAG_LABELS = {
    "spam": "Spam",
    "harassment": "Harassment or bullying",
    "hate_speech": "Hate speech",
    "threat": "Threat",
    "doxxing": "Personal information",
    "nsfw": "Inappropriate content",
    "other": "Other",
}


class ReactionCreate(BaseModel):
    """Schema for reacting to a post; repeating the held type removes it."""

    type: str = Field(..., description="One of the reaction options")


class ReactionResponse(BaseModel):
    action: str
    reaction: str | None = None


class FlagCreate(BaseModel):
    """Schema for reporting a post."""

    reason: str = Field(..., description="One of the flag options")
    details: str | None = Field(None, max_length=500)


class FlagResponse(BaseModel):
    message: str = "Post reported"


class ReactionOption(BaseModel):
    type: str
    label: str


class FlagOption(BaseModel):
    reason: str
    label: str


class HideRequest(BaseModel):
    reason: str = Field("mod_hidden", min_length=1, max_length=64)


class HideResponse(BaseModel):
    post_id: int
    hidden: bool


class BanRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)
    duration_hours: float | None = Field(
        None, gt=0, description="Omit for a permanent ban"
    )


class ReviewSignalsResponse(BaseModel):
    """Moderator view of the community signals on a post."""

    post_id: int
    flag_count: int
    flag_breakdown: dict[str, int]
    reaction_counts: dict[str, int]
    objectionable: bool


class FlaggedPostSummary(BaseModel):
    id: int
    content: str
    flag_count: int
    is_grayed: bool
    mod_action: str | None = None


def reaction_options() -> list[ReactionOption]:
    return [ReactionOption(type=value, label=REACTION_LABELS[value]) for value in REACTION_TYPES]


def flag_options() -> list[FlagOption]:
    return [FlagOption(reason=value, label=FLAG_LABELS[value]) for value in FLAG_REASONS]
