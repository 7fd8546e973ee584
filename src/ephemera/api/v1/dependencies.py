"""Shared API dependencies: sessions, soft identity and per-request services."""

import hmac
import secrets
from collections.abc import Callable, Generator
from datetime import datetime
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ephemera.core.errors import NotFoundError
from ephemera.core.settings import Settings
from ephemera.models import Device, Space
from ephemera.repositories.lifecycle import LifecycleStore
from ephemera.repositories.space_repo import SpaceRepository
from ephemera.services.cleanup import ExpirationScheduler
from ephemera.services.escalation import EscalationCoordinator
from ephemera.services.identity import FingerprintSignals, IdentityService
from ephemera.services.moderation import ContentModerationService
from ephemera.services.posting import PostingService


def get_settings(request: Request) -> Settings:
    """Return the settings the application was built with."""
    return request.app.state.settings


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


SettingsDep = Annotated[Settings, Depends(get_settings)]
ClockDep = Annotated[Callable[[], datetime], Depends(get_clock)]
SessionDep = Annotated[Session, Depends(get_db)]


def get_store(db: SessionDep, settings: SettingsDep, clock: ClockDep) -> LifecycleStore:
    return LifecycleStore(db, settings, clock)


def get_identity(db: SessionDep, settings: SettingsDep, clock: ClockDep) -> IdentityService:
    return IdentityService(db, settings, clock)


def get_spaces(db: SessionDep, settings: SettingsDep, clock: ClockDep) -> SpaceRepository:
    return SpaceRepository(db, settings, clock)


def get_moderation(request: Request) -> ContentModerationService:
    return request.app.state.moderation


def get_scheduler(request: Request) -> ExpirationScheduler:
    return request.app.state.scheduler


StoreDep = Annotated[LifecycleStore, Depends(get_store)]
IdentityDep = Annotated[IdentityService, Depends(get_identity)]
SpacesDep = Annotated[SpaceRepository, Depends(get_spaces)]
ModerationDep = Annotated[ContentModerationService, Depends(get_moderation)]
SchedulerDep = Annotated[ExpirationScheduler, Depends(get_scheduler)]


def get_posting(
    store: StoreDep,
    identity: IdentityDep,
    moderation: ModerationDep,
    settings: SettingsDep,
) -> PostingService:
    return PostingService(store, identity, moderation, settings)


def get_coordinator(
    store: StoreDep,
    identity: IdentityDep,
    spaces: SpacesDep,
    settings: SettingsDep,
) -> EscalationCoordinator:
    return EscalationCoordinator(store, identity, spaces, settings)


PostingDep = Annotated[PostingService, Depends(get_posting)]
CoordinatorDep = Annotated[EscalationCoordinator, Depends(get_coordinator)]


def extract_signals(request: Request) -> FingerprintSignals:
    """Collect fingerprint signals from request headers.

    Any header may be absent; the identity layer treats missing signals as
    empty strings.
    """
    headers = request.headers
    language = headers.get("accept-language", "").split(",")[0].split(";")[0].strip()
    platform = headers.get("sec-ch-ua-platform", "").replace('"', "").strip()
    return FingerprintSignals(
        user_agent=headers.get("user-agent"),
        language=language or None,
        platform=platform or None,
        client_token=headers.get("x-device-fingerprint"),
        ip=request.client.host if request.client else None,
    )


SignalsDep = Annotated[FingerprintSignals, Depends(extract_signals)]


def get_current_device(identity: IdentityDep, signals: SignalsDep) -> Device:
    """Resolve (and register on first sight) the calling device."""
    return identity.resolve(signals)


def get_session_token(request: Request, response: Response, settings: SettingsDep) -> str:
    """Return the per-browser session token, issuing a cookie when missing."""
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        token = secrets.token_hex(32)
        response.set_cookie(
            settings.session_cookie_name,
            token,
            max_age=settings.session_max_age_seconds,
            httponly=True,
            secure=settings.session_cookie_secure,
            samesite="lax",
        )
    return token


def get_space(slug: str, spaces: SpacesDep) -> Space:
    """Return the active space addressed by the ``slug`` path parameter."""
    space = spaces.get_by_slug(slug)
    if space is None:
        raise NotFoundError("Space not found")
    return space


CurrentDeviceDep = Annotated[Device, Depends(get_current_device)]
SessionTokenDep = Annotated[str, Depends(get_session_token)]
SpaceDep = Annotated[Space, Depends(get_space)]


def require_admin(
    settings: SettingsDep,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests without the configured moderator token."""
    expected = settings.admin_token
    if (
        not expected
        or not x_admin_token
        or not hmac.compare_digest(x_admin_token.encode(), expected.encode())
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Moderator credentials required",
        )


def require_cron_secret(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Check the Bearer secret on the cron trigger when one is configured."""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
