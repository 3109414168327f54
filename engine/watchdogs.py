"""Page event watcher: auto-handles native dialogs and records page errors."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Tuple

from playwright.async_api import Error as PlaywrightError

from .telemetry import TelemetryLog

log = logging.getLogger(__name__)


class PageWatchdog:
    """Attach listeners for ``dialog``, ``pageerror`` and ``crash`` events.

    Native ``alert``/``confirm`` dialogs would otherwise block every later
    locator wait, so they are answered immediately.  Everything observed is
    forwarded to the run's :class:`TelemetryLog` as a warning.
    """

    def __init__(
        self,
        page: Any,
        telemetry: TelemetryLog,
        *,
        default_dialog_action: str = "accept",
    ) -> None:
        self.page = page
        self.telemetry = telemetry
        self.default_dialog_action = default_dialog_action
        self.dialog_events: List[Dict[str, Any]] = []
        self.page_errors: List[Dict[str, Any]] = []
        self._listeners: List[Tuple[str, Callable[..., Any]]] = []
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._register("dialog", self._handle_dialog)
        self._register("pageerror", self._handle_page_error)
        self._register("crash", self._handle_crash)

    def stop(self) -> None:
        if not self._started:
            return
        for event, handler in self._listeners:
            try:
                self.page.remove_listener(event, handler)
            except (PlaywrightError, KeyError, ValueError) as exc:
                log.debug("Removing %s listener failed: %s", event, exc)
        self._listeners.clear()
        self._started = False

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.dialog_events:
            data["dialogs"] = list(self.dialog_events)
        if self.page_errors:
            data["page_errors"] = list(self.page_errors)
        return data

    def _register(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.on(event, handler)
        self._listeners.append((event, handler))

    async def _handle_dialog(self, dialog: Any) -> None:
        action = "accept" if dialog.type == "beforeunload" else self.default_dialog_action
        event: Dict[str, Any] = {
            "timestamp": time.time(),
            "type": dialog.type,
            "message": dialog.message,
            "action": action,
        }
        try:
            if action == "accept":
                await dialog.accept()
                event["status"] = "accepted"
            else:
                await dialog.dismiss()
                event["status"] = "dismissed"
            summary = f"{dialog.type} dialog automatically {event['status']}: {dialog.message}"
        except PlaywrightError as exc:
            event["status"] = "error"
            event["error"] = str(exc)
            summary = f"Failed to {action} {dialog.type} dialog: {exc}"
        self.dialog_events.append(event)
        self.telemetry.warn(summary)

    def _handle_page_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or str(error)
        self.page_errors.append({"timestamp": time.time(), "message": message, "level": "WARNING"})
        self.telemetry.warn(f"Page error captured: {message}")

    def _handle_crash(self, *_: Any) -> None:
        self.page_errors.append({"timestamp": time.time(), "message": "Page crashed", "level": "ERROR"})
        self.telemetry.warn("Page crashed unexpectedly")
