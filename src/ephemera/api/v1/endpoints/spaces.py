# src/ephemera/api/v1/endpoints/spaces.py
"""Space lookup endpoints."""

from fastapi import APIRouter

from ephemera.api.v1.dependencies import ClockDep, SpaceDep, SpacesDep, StoreDep
from ephemera.schemas.space import SpaceExpirationStats, SpacePublic, SpaceResponse

router = APIRouter(prefix="/spaces", tags=["spaces"])


@router.get("/check/{slug}")
def check_slug(slug: str, spaces: SpacesDep) -> dict[str, object]:
    """Report whether a slug is well formed and still free."""
    slug = slug.lower()
    valid = spaces.is_valid_slug(slug)
    return {
        "slug": slug,
        "valid": valid,
        "available": valid and spaces.is_slug_available(slug),
    }


@router.get("/{slug}", response_model=SpaceResponse)
def get_space(space: SpaceDep, spaces: SpacesDep, store: StoreDep, clock: ClockDep) -> SpaceResponse:
    """Return the public view of a space with live post counts."""
    now = clock()
    return SpaceResponse(
        space=SpacePublic.model_validate(space),
        active_posts=spaces.active_post_count(space, now),
        expiration=SpaceExpirationStats(**store.space_expiration_stats(space.id, now)),
    )
