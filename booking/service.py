"""One booking invocation end to end, plus the watchdog runner used by the app."""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
import time
import uuid
from typing import Iterator, Optional

from engine.config import RunConfig, ensure_run_directories
from engine.errors import AutomationError, SessionLaunchFailure
from engine.session import Launcher, SessionLifecycle
from engine.telemetry import TelemetryLog

from .models import BookingOutcome, BookingRequest
from .selectors import SelectorTable
from .snapshots import SnapshotStore
from .workflow import WorkflowOrchestrator

log = logging.getLogger(__name__)

_DEBUG_LOGGERS = ("engine", "booking")


class BookingInProgress(AutomationError):
    """A booking is already running in this process."""

    code = "BookingInProgress"


def new_run_id() -> str:
    return f"{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


@contextlib.contextmanager
def _debug_logging(enabled: bool) -> Iterator[None]:
    if not enabled:
        yield
        return
    loggers = [logging.getLogger(name) for name in _DEBUG_LOGGERS]
    previous = [logger.level for logger in loggers]
    for logger in loggers:
        logger.setLevel(logging.DEBUG)
    try:
        yield
    finally:
        for logger, level in zip(loggers, previous):
            logger.setLevel(level)


class BookingService:
    """Own the session, telemetry and orchestrator for each request."""

    def __init__(
        self,
        config: RunConfig,
        *,
        launcher: Optional[Launcher] = None,
        snapshots: Optional[SnapshotStore] = None,
        selectors: Optional[SelectorTable] = None,
    ) -> None:
        self.config = config
        self.launcher = launcher
        self.snapshots = snapshots or SnapshotStore(config.snapshot_dir)
        self.selectors = selectors or SelectorTable().with_overrides(config.selectors)

    async def book(self, request: BookingRequest, *, run_id: Optional[str] = None) -> BookingOutcome:
        run_id = run_id or new_run_id()
        paths = ensure_run_directories(run_id, self.config)
        telemetry = TelemetryLog(
            run_id,
            window=self.config.telemetry_window,
            events_path=paths["base"] / "events.jsonl",
            snapshot_sink=self.snapshots.save,
        )
        log.info(
            "Booking run %s: %s on %s at %s",
            run_id,
            request.resource_name,
            request.target_date.isoformat(),
            request.target_time,
        )
        try:
            with _debug_logging(request.debug):
                outcome = await self._run(request, telemetry)
        finally:
            telemetry.close()
        outcome.run_id = run_id
        log.info("Booking run %s finished: %s", run_id, outcome.status.value)
        return outcome

    async def _run(self, request: BookingRequest, telemetry: TelemetryLog) -> BookingOutcome:
        lifecycle = SessionLifecycle(self.config.launch_config(), self.launcher)
        try:
            async with lifecycle as page:
                orchestrator = WorkflowOrchestrator(
                    page,
                    request,
                    self.config,
                    telemetry,
                    selectors=self.selectors,
                )
                return await orchestrator.run()
        except SessionLaunchFailure as exc:
            log.error("Session launch failed: %s", exc.message)
            return BookingOutcome.failed(exc, telemetry)


class BookingRunner:
    """Run bookings on a background event loop with a wall-clock watchdog.

    When the watchdog elapses first the caller gets an interim outcome while
    the booking keeps running; only one booking may be active at a time.
    """

    def __init__(self, service: BookingService, *, watchdog_seconds: Optional[float] = None) -> None:
        self.service = service
        self.watchdog_seconds = (
            service.config.watchdog_seconds if watchdog_seconds is None else watchdog_seconds
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._lock = threading.Lock()
        self._active: Optional[concurrent.futures.Future] = None
        self._active_run_id: Optional[str] = None
        self.last_outcome: Optional[BookingOutcome] = None

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._active is not None and not self._active.done()

    def submit(self, request: BookingRequest) -> BookingOutcome:
        run_id = new_run_id()
        with self._lock:
            if self._active is not None and not self._active.done():
                raise BookingInProgress(
                    "A booking is already in progress",
                    details={"run_id": self._active_run_id},
                )
            future = asyncio.run_coroutine_threadsafe(self.service.book(request, run_id=run_id), self._loop)
            self._active = future
            self._active_run_id = run_id
        future.add_done_callback(self._remember)
        try:
            return future.result(timeout=self.watchdog_seconds)
        except concurrent.futures.TimeoutError:
            log.warning("Booking %s still running after %.0fs; returning interim result", run_id, self.watchdog_seconds)
            return BookingOutcome.interim(run_id)

    def _remember(self, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            log.error("Background booking failed: %s", error)
            return
        self.last_outcome = future.result()

    def shutdown(self) -> None:
        with self._lock:
            active = self._active
        if active is not None and not active.done():
            active.cancel()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
