"""Expiration sweep scheduling.

One ``ExpirationScheduler`` drives a ``CleanupRunner`` through a pluggable
``TriggerPolicy``:

- ``TimerTrigger`` runs the sweep on a fixed interval for the lifetime of a
  long-running process, once immediately on start.
- ``LazyTrigger`` piggybacks on inbound requests and only runs when the
  interval has elapsed since the last claimed run.

The two policies are alternative deployment modes; a process uses one.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ephemera.core.errors import StoreUnavailable
from ephemera.core.settings import Settings
from ephemera.db.time import utcnow
from ephemera.repositories.lifecycle import ExpirationPreview, LifecycleStore, SweepResult

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class SchedulerStats:
    """Snapshot of sweep activity for the health endpoint."""

    runs: int
    total_deleted: int
    last_run_at: datetime | None
    is_currently_running: bool
    errors: int
    strategy: str
    interval_minutes: float


class CleanupRunner:
    """Executes expiration sweeps, one at a time per process.

    Each sweep opens its own session so it can run on a worker thread.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.clock = clock
        self._lock = threading.Lock()
        self.runs = 0
        self.total_deleted = 0
        self.errors = 0
        self.last_run_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run(self, direct: bool = False) -> SweepResult | None:
        """Sweep expired posts; returns None when another sweep is in progress.

        The primary sweep falls back to explicit dependent deletion on a
        database error. If the fallback fails as well the error propagates
        to the trigger, which logs it; the next trigger retries.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Expiration sweep already running; skipping trigger")
            return None

        try:
            self.runs += 1
            started = time.perf_counter()
            result = self._sweep(direct)
            result = replace(result, duration_ms=round((time.perf_counter() - started) * 1000, 2))

            self.total_deleted += result.deleted_posts
            self.last_run_at = self.clock()
            if result.deleted_posts:
                logger.info(
                    "Expiration sweep deleted %d posts and %d replies in %.1fms",
                    result.deleted_posts,
                    result.deleted_replies,
                    result.duration_ms,
                )
            return result
        finally:
            self._lock.release()

    def _sweep(self, direct: bool) -> SweepResult:
        with self.session_factory() as session:
            store = LifecycleStore(session, self.settings, self.clock)
            if not direct:
                try:
                    return store.delete_expired()
                except (SQLAlchemyError, StoreUnavailable) as exc:
                    self.errors += 1
                    session.rollback()
                    logger.warning("Expiration sweep failed, falling back to direct deletion: %s", exc)

            try:
                return store.delete_expired_direct()
            except (SQLAlchemyError, StoreUnavailable):
                self.errors += 1
                logger.error("Direct expiration sweep failed", exc_info=True)
                raise

    def preview(self) -> ExpirationPreview:
        """Return what the next sweep would delete."""
        with self.session_factory() as session:
            return LifecycleStore(session, self.settings, self.clock).preview_expired()


class TriggerPolicy(ABC):
    """Decides when the runner sweeps."""

    name: str = "abstract"

    def __init__(self, runner: CleanupRunner, interval_seconds: float) -> None:
        self.runner = runner
        self.interval_seconds = interval_seconds

    @abstractmethod
    async def start(self) -> None:
        """Begin triggering sweeps."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop triggering and wait for in-flight sweeps."""

    @abstractmethod
    def on_request(self) -> None:
        """Hook invoked for every inbound request; must not block."""

    async def _run_in_thread(self) -> SweepResult | None:
        try:
            return await asyncio.to_thread(self.runner.run)
        except Exception:
            logger.exception("%s expiration sweep failed", self.name)
            return None


class TimerTrigger(TriggerPolicy):
    """Runs the sweep immediately and then on a fixed interval."""

    name = "timer"

    def __init__(self, runner: CleanupRunner, interval_seconds: float) -> None:
        super().__init__(runner, interval_seconds)
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._loop())
            logger.info("Expiration sweep scheduled every %.1f minutes", self.interval_seconds / 60)

    async def stop(self) -> None:
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Expiration sweep timer stopped")

    def on_request(self) -> None:
        return None

    async def _loop(self) -> None:
        interval = max(0.01, float(self.interval_seconds))

        while not self._stopping.is_set():
            await self._run_in_thread()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue


class LazyTrigger(TriggerPolicy):
    """Runs the sweep on the first request after the interval has elapsed.

    The marker is claimed before any work starts, so a second request that
    arrives while the sweep is still running sees the interval as not yet
    elapsed and skips. A failed sweep is not re-claimed early; it waits for
    the next interval.
    """

    name = "lazy"

    def __init__(
        self,
        runner: CleanupRunner,
        interval_seconds: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(runner, interval_seconds)
        self.clock = clock
        self.last_claimed_at: datetime | None = None
        self._tasks: set[asyncio.Task[SweepResult | None]] = set()

    def claim(self, now: datetime | None = None) -> bool:
        """Take the right to run if the interval elapsed; True when claimed."""
        now = now or self.clock()
        last = self.last_claimed_at
        if last is not None and (now - last).total_seconds() < self.interval_seconds:
            return False
        self.last_claimed_at = now
        return True

    async def start(self) -> None:
        logger.info(
            "Expiration sweep runs lazily, at most every %.1f minutes", self.interval_seconds / 60
        )

    async def stop(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def on_request(self) -> None:
        """Claim and schedule a sweep without awaiting it; requires a running loop."""
        if not self.claim():
            return
        task = asyncio.get_running_loop().create_task(self._run_in_thread())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def run_if_due(self, now: datetime | None = None) -> SweepResult | None:
        """Synchronous variant for callers outside the event loop."""
        if not self.claim(now):
            return None
        return self.runner.run()


class ExpirationScheduler:
    """Single entry point the application talks to, whatever the policy."""

    def __init__(self, runner: CleanupRunner, policy: TriggerPolicy) -> None:
        self.runner = runner
        self.policy = policy

    async def start(self) -> None:
        await self.policy.start()

    async def stop(self) -> None:
        await self.policy.stop()

    def on_request(self) -> None:
        self.policy.on_request()

    def run_now(self) -> SweepResult | None:
        """Run a sweep immediately, bypassing the policy's cadence."""
        return self.runner.run()

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            runs=self.runner.runs,
            total_deleted=self.runner.total_deleted,
            last_run_at=self.runner.last_run_at,
            is_currently_running=self.runner.is_running,
            errors=self.runner.errors,
            strategy=self.policy.name,
            interval_minutes=self.policy.interval_seconds / 60,
        )


def build_scheduler(
    settings: Settings,
    session_factory: SessionFactory,
    clock: Callable[[], datetime] = utcnow,
) -> ExpirationScheduler:
    """Create the scheduler for ``settings.cleanup_strategy``."""
    runner = CleanupRunner(session_factory, settings, clock)
    interval = settings.cleanup_interval_seconds
    policy: TriggerPolicy
    if settings.cleanup_strategy == "lazy":
        policy = LazyTrigger(runner, interval, clock)
    else:
        policy = TimerTrigger(runner, interval)
    return ExpirationScheduler(runner, policy)
