"""System endpoints: health, public configuration, option catalogs and the cron trigger."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ephemera.api.v1.dependencies import (
    ClockDep,
    ModerationDep,
    SchedulerDep,
    SessionDep,
    SettingsDep,
    require_cron_secret,
)
from ephemera.schemas.interaction import (
    FlagOption,
    ReactionOption,
    flag_options,
    reaction_options,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
def health(
    db: SessionDep,
    scheduler: SchedulerDep,
    moderation: ModerationDep,
    settings: SettingsDep,
    clock: ClockDep,
) -> JSONResponse:
    """Report database reachability and sweep statistics.

    Responds 503 when the database cannot be reached.
    """
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as exc:
        logger.warning("Health check database probe failed: %s", exc)
        database = "unhealthy"

    body = {
        "status": database,
        "timestamp": clock().isoformat(),
        "services": {
            "cleanup": asdict(scheduler.stats()),
            "moderation": moderation.stats(),
        },
        "config": {
            "ttl_default_hours": settings.ttl_default_hours,
            "cleanup_interval_minutes": settings.cleanup_interval_minutes,
        },
    }
    return JSONResponse(
        status_code=200 if database == "healthy" else 503,
        content=jsonable_encoder(body),
    )


@router.get("/config")
def get_public_config(settings: SettingsDep) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    return {
        "app": {"name": settings.app_name, "version": settings.app_version},
        "ttl": {
            "default": settings.ttl_default_hours,
            "min": settings.ttl_min_hours,
            "max": settings.ttl_max_hours,
        },
        "content": {
            "max_post_length": settings.max_post_length,
            "max_reply_length": settings.max_reply_length,
        },
        "rate_limit": {"max_posts_per_hour": settings.max_posts_per_hour},
        "cleanup": {
            "strategy": settings.cleanup_strategy,
            "interval_minutes": settings.cleanup_interval_minutes,
        },
    }


@router.get("/reactions/options")
def get_reaction_options() -> dict[str, list[ReactionOption]]:
    return {"options": reaction_options()}


@router.get("/flags/options")
def get_flag_options() -> dict[str, list[FlagOption]]:
    return {"options": flag_options()}


@router.post("/cron/cleanup", dependencies=[Depends(require_cron_secret)])
def run_cleanup(scheduler: SchedulerDep, clock: ClockDep) -> dict[str, object]:
    """Run an expiration sweep now; for external schedulers in serverless deployments."""
    result = scheduler.run_now()
    timestamp = clock().isoformat()
    if result is None:
        return {"success": True, "skipped": True, "timestamp": timestamp}

    logger.info("Cron cleanup deleted %d posts", result.deleted_posts)
    return {
        "success": True,
        "skipped": False,
        "deleted": result.deleted_posts,
        "deleted_replies": result.deleted_replies,
        "duration_ms": result.duration_ms,
        "timestamp": timestamp,
    }
