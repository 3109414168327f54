"""Strictly sequential execution of named workflow steps."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .errors import ElementNotFound
from .telemetry import TelemetryLog

log = logging.getLogger(__name__)


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(slots=True)
class StepOutcome:
    name: str
    started_at: float
    duration_ms: int
    status: StepStatus
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(slots=True)
class WorkflowStep:
    """A named unit of work.

    ``tolerate_absence`` marks an optional UI step: if its element never
    appears (``ElementNotFound``) the step is recorded as skipped instead of
    failing the run.  Any other error still propagates.
    """

    name: str
    run: Callable[[], Awaitable[Any]]
    tolerate_absence: bool = False


class StepOverlapError(RuntimeError):
    """A step was started while another one was still running."""


class StepRunner:
    def __init__(self, telemetry: TelemetryLog) -> None:
        self.telemetry = telemetry
        self.outcomes: List[StepOutcome] = []
        self._lock = asyncio.Lock()

    async def run(self, step: WorkflowStep) -> Any:
        if self._lock.locked():
            raise StepOverlapError(f"Step {step.name!r} started while another step is running")
        async with self._lock:
            started_at = time.time()
            started = time.monotonic()
            log.info("➡ %s", step.name)
            try:
                result = await step.run()
            except ElementNotFound as exc:
                elapsed = _elapsed_ms(started)
                if step.tolerate_absence:
                    log.info("⤼ %s skipped after %dms: %s", step.name, elapsed, exc.message)
                    self._record(step.name, started_at, elapsed, StepStatus.SKIPPED, exc.message)
                    return None
                log.error("✖ %s failed after %dms: %s", step.name, elapsed, exc)
                self._record(step.name, started_at, elapsed, StepStatus.FAILURE, str(exc))
                raise
            except Exception as exc:
                elapsed = _elapsed_ms(started)
                log.error("✖ %s failed after %dms: %s", step.name, elapsed, exc)
                self._record(step.name, started_at, elapsed, StepStatus.FAILURE, str(exc))
                raise
            elapsed = _elapsed_ms(started)
            log.info("✔ %s (%dms)", step.name, elapsed)
            self._record(step.name, started_at, elapsed, StepStatus.SUCCESS)
            return result

    async def run_all(self, steps: Iterable[WorkflowStep]) -> List[Any]:
        results = []
        for step in steps:
            results.append(await self.run(step))
        return results

    def skip(self, name: str, reason: str) -> StepOutcome:
        """Record a step the orchestrator decided not to run."""

        log.info("⤼ %s skipped: %s", name, reason)
        return self._record(name, time.time(), 0, StepStatus.SKIPPED, reason)

    def _record(
        self,
        name: str,
        started_at: float,
        duration_ms: int,
        status: StepStatus,
        reason: Optional[str] = None,
    ) -> StepOutcome:
        outcome = StepOutcome(name, started_at, duration_ms, status, reason)
        self.outcomes.append(outcome)
        self.telemetry.record_event("step", **outcome.as_dict())
        return outcome


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
