"""Per-run telemetry: action log, step outcomes, warnings and checkpoints."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .locators import summarize

log = logging.getLogger(__name__)

DEFAULT_WINDOW = 20

SnapshotSink = Callable[[str, bytes], Optional[str]]


@dataclass(slots=True)
class TelemetryEntry:
    index: int
    timestamp: float
    location: str
    locator: str
    method: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Checkpoint:
    name: str
    captured_at: float
    url: str = ""
    filename: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload = {"name": self.name, "captured_at": self.captured_at, "url": self.url}
        if self.filename:
            payload["filename"] = self.filename
        if self.error:
            payload["error"] = self.error
        return payload


class StructuredLogger:
    """Writes JSONL events for each recorded telemetry item."""

    def __init__(self, run_id: str, events_path: Path) -> None:
        self.run_id = run_id
        self.events_path = events_path
        events_path.parent.mkdir(parents=True, exist_ok=True)
        self._events_file = events_path.open("a", encoding="utf-8")

    def log_event(self, kind: str, payload: Dict[str, Any]) -> None:
        record = {"ts": time.time(), "run_id": self.run_id, "kind": kind, **payload}
        self._events_file.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self._events_file.flush()

    def close(self) -> None:
        try:
            self._events_file.close()
        except OSError as exc:
            log.debug("Closing %s failed: %s", self.events_path, exc)


class TelemetryLog:
    """Append-only log owned by exactly one booking run.

    Instances are passed explicitly to the components that record into them;
    nothing here is process-global, so two runs never share counters.
    """

    def __init__(
        self,
        run_id: str = "run",
        *,
        window: int = DEFAULT_WINDOW,
        events_path: Optional[Path] = None,
        snapshot_sink: Optional[SnapshotSink] = None,
    ) -> None:
        self.run_id = run_id
        self.window = window
        self.snapshot_sink = snapshot_sink
        self._structured = StructuredLogger(run_id, events_path) if events_path else None
        self._entries: List[TelemetryEntry] = []
        self._events: List[Dict[str, Any]] = []
        self._checkpoints: List[Checkpoint] = []
        self._warnings: List[str] = []
        self._sequence = 0

    # actions -----------------------------------------------------------
    def record_action(self, location: str, locator: str, method: str) -> TelemetryEntry:
        self._sequence += 1
        entry = TelemetryEntry(
            index=self._sequence,
            timestamp=time.time(),
            location=location or "unknown",
            locator=summarize(locator),
            method=method,
        )
        self._entries.append(entry)
        log.info(
            "[ACTION #%d] %s - Method: %s, Locator: %s",
            entry.index,
            entry.location,
            entry.method,
            entry.locator[:50],
        )
        self._mirror("action", entry.as_dict())
        return entry

    @property
    def entries(self) -> Tuple[TelemetryEntry, ...]:
        return tuple(self._entries)

    @property
    def action_count(self) -> int:
        return self._sequence

    def tail(self, count: Optional[int] = None) -> List[Dict[str, Any]]:
        count = self.window if count is None else count
        if count <= 0:
            return []
        return [entry.as_dict() for entry in self._entries[-count:]]

    # events ------------------------------------------------------------
    def record_event(self, kind: str, **fields: Any) -> None:
        event = {"kind": kind, "timestamp": time.time(), **fields}
        self._events.append(event)
        self._mirror(kind, fields)

    def events(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        if kind is None:
            return list(self._events)
        return [event for event in self._events if event["kind"] == kind]

    def warn(self, message: str) -> None:
        log.warning(message)
        self._warnings.append(message)
        self._mirror("warning", {"message": message})

    @property
    def warnings(self) -> List[str]:
        return list(self._warnings)

    # checkpoints -------------------------------------------------------
    async def checkpoint(self, page: Any, name: str) -> Checkpoint:
        """Capture a full-page screenshot under ``name``; never raises."""

        checkpoint = Checkpoint(name=name, captured_at=time.time())
        try:
            checkpoint.url = page.url
            data = await page.screenshot(full_page=True)
            if self.snapshot_sink is not None:
                checkpoint.filename = self.snapshot_sink(name, data)
        except Exception as exc:
            checkpoint.error = str(exc)
            log.debug("Could not capture checkpoint %s: %s", name, exc)
        self._checkpoints.append(checkpoint)
        self._mirror("checkpoint", checkpoint.as_dict())
        return checkpoint

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    def checkpoint_names(self) -> List[str]:
        return [cp.name for cp in self._checkpoints]

    # lifecycle ---------------------------------------------------------
    def summary(self) -> Dict[str, Any]:
        return {
            "action_count": self._sequence,
            "telemetry": self.tail(),
            "checkpoints": self.checkpoint_names(),
            "warnings": self.warnings,
        }

    def close(self) -> None:
        if self._structured is not None:
            self._structured.close()
            self._structured = None

    def _mirror(self, kind: str, payload: Dict[str, Any]) -> None:
        if self._structured is not None:
            self._structured.log_event(kind, payload)
