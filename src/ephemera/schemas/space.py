# src/ephemera/schemas/space.py
"""Space-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SpacePublic(BaseModel):
    """Space fields safe to show anonymous visitors."""

    slug: str
    display_name: str
    description: str | None = None
    ttl_hours: int
    tier: str

    model_config = ConfigDict(from_attributes=True)


class SpaceExpirationStats(BaseModel):
    expired: int
    expiring_1h: int
    expiring_6h: int
    expiring_24h: int
    total: int


class SpaceResponse(BaseModel):
    """Space view with live counts."""

    space: SpacePublic
    active_posts: int
    expiration: SpaceExpirationStats


class SpaceCreate(BaseModel):
    """Schema for creating a space; unset limits fall back to settings."""

    slug: str = Field(..., min_length=3, max_length=63)
    display_name: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(None, max_length=1000)
    ttl_hours: int | None = None
    flag_threshold: int | None = None
    auto_mod_enabled: bool = True
    is_private: bool = False
    tier: str = "free"


class SpaceUpdate(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=120)
    description: str | None = Field(None, max_length=1000)
    ttl_hours: int | None = None
    flag_threshold: int | None = None
    auto_mod_enabled: bool | None = None


class SpaceAdmin(SpacePublic):
    """Moderator view including parameters hidden from visitors."""

    id: int
    is_active: bool
    is_private: bool
    flag_threshold: int
    auto_mod_enabled: bool
    created_at: datetime
    updated_at: datetime
