"""Apply single click/value actions to resolved elements, idempotently."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ActionNotVerified, AutomationError, ElementNotFound
from .locator_resolver import ResolvedElement, LocatorResolver
from .locators import LocatorSpec, spec_from
from .telemetry import TelemetryLog

log = logging.getLogger(__name__)

DEFAULT_TYPE_DELAY_MS = 50

# Writes through the prototype setter so framework-patched instance setters
# are bypassed, then lets React's tracker see the old value.
NATIVE_SETTER_SCRIPT = """
(el, value) => {
  el.focus();
  const proto = el instanceof HTMLTextAreaElement
    ? HTMLTextAreaElement.prototype
    : HTMLInputElement.prototype;
  const descriptor = Object.getOwnPropertyDescriptor(proto, 'value');
  const previous = el.value;
  if (descriptor && descriptor.set) {
    descriptor.set.call(el, value);
  } else {
    el.value = value;
  }
  const tracker = el._valueTracker;
  if (tracker) {
    tracker.setValue(previous);
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  el.dispatchEvent(new FocusEvent('focus'));
  el.dispatchEvent(new FocusEvent('blur'));
  return el.value;
}
"""


class ActionKind(str, Enum):
    CLICK = "click"
    SET_VALUE = "set_value"
    TYPE_TEXT = "type_text"


class ActionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    locator: LocatorSpec
    kind: ActionKind
    value: Optional[str] = None
    timeout_ms: int = Field(default=10_000, gt=0)
    per_strategy_timeout_ms: int = Field(default=5_000, gt=0)
    location: str = "unknown"
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @model_validator(mode="after")
    def _value_required(self) -> "ActionRequest":
        if self.kind is not ActionKind.CLICK and self.value is None:
            raise ValueError(f"{self.kind.value} requires a value")
        return self


@dataclass(slots=True)
class ActionResult:
    request_id: str
    kind: ActionKind
    success: bool
    matched_strategy: Optional[str] = None
    attempts: int = 0
    elapsed_ms: int = 0
    method: Optional[str] = None
    error: Optional[AutomationError] = None
    replayed: bool = False

    @classmethod
    def succeeded(cls, request: ActionRequest, resolved: ResolvedElement, method: str) -> "ActionResult":
        return cls(
            request_id=request.request_id,
            kind=request.kind,
            success=True,
            matched_strategy=resolved.strategy,
            attempts=resolved.attempts,
            elapsed_ms=resolved.elapsed_ms,
            method=method,
        )

    @classmethod
    def failed(
        cls,
        request: ActionRequest,
        error: AutomationError,
        resolved: Optional[ResolvedElement] = None,
    ) -> "ActionResult":
        return cls(
            request_id=request.request_id,
            kind=request.kind,
            success=False,
            matched_strategy=resolved.strategy if resolved else None,
            attempts=resolved.attempts if resolved else len(getattr(error, "attempts", ())),
            elapsed_ms=resolved.elapsed_ms if resolved else 0,
            error=error,
        )

    @property
    def attempted_strategies(self) -> List[str]:
        if isinstance(self.error, ElementNotFound):
            return [a["strategy"] for a in self.error.attempts]
        return [self.matched_strategy] if self.matched_strategy else []

    @property
    def last_errors(self) -> List[str]:
        if isinstance(self.error, ElementNotFound):
            return [a["error"] for a in self.error.attempts]
        return [self.error.message] if self.error else []

    def unwrap(self) -> "ActionResult":
        if not self.success and self.error is not None:
            raise self.error
        return self

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "request_id": self.request_id,
            "kind": self.kind.value,
            "success": self.success,
        }
        if self.success:
            payload.update(
                matched_strategy=self.matched_strategy,
                attempts=self.attempts,
                elapsed_ms=self.elapsed_ms,
                method=self.method,
            )
        else:
            payload.update(
                attempted_strategies=self.attempted_strategies,
                last_errors=self.last_errors,
            )
        return payload


class ActionExecutor:
    """Resolve then act; every success lands in the run's telemetry.

    Clicks are one-shot per ``request_id``: once a click has been dispatched
    (or its dispatch raised) the request is consumed and re-executing it
    returns the recorded result without touching the page.
    """

    def __init__(
        self,
        page: Any,
        resolver: LocatorResolver,
        telemetry: TelemetryLog,
        *,
        action_timeout_ms: int = 10_000,
        per_strategy_timeout_ms: int = 5_000,
        type_delay_ms: int = DEFAULT_TYPE_DELAY_MS,
    ) -> None:
        self.page = page
        self.resolver = resolver
        self.telemetry = telemetry
        self.action_timeout_ms = action_timeout_ms
        self.per_strategy_timeout_ms = per_strategy_timeout_ms
        self.type_delay_ms = type_delay_ms
        self._consumed: Dict[str, ActionResult] = {}

    # convenience builders ---------------------------------------------
    def request(
        self,
        locator: Union[LocatorSpec, Sequence[str], str],
        kind: ActionKind,
        *,
        value: Optional[str] = None,
        location: str = "unknown",
        timeout_ms: Optional[int] = None,
    ) -> ActionRequest:
        return ActionRequest(
            locator=spec_from(locator),
            kind=kind,
            value=value,
            timeout_ms=timeout_ms or self.action_timeout_ms,
            per_strategy_timeout_ms=self.per_strategy_timeout_ms,
            location=location,
        )

    async def click(self, locator: Any, *, location: str, timeout_ms: Optional[int] = None) -> ActionResult:
        return await self.perform(self.request(locator, ActionKind.CLICK, location=location, timeout_ms=timeout_ms))

    async def set_value(self, locator: Any, value: str, *, location: str) -> ActionResult:
        return await self.perform(self.request(locator, ActionKind.SET_VALUE, value=value, location=location))

    async def type_text(self, locator: Any, value: str, *, location: str) -> ActionResult:
        return await self.perform(self.request(locator, ActionKind.TYPE_TEXT, value=value, location=location))

    # core -------------------------------------------------------------
    async def perform(self, request: ActionRequest) -> ActionResult:
        """Like :meth:`execute` but raises the failure's error."""

        return (await self.execute(request)).unwrap()

    async def execute(self, request: ActionRequest) -> ActionResult:
        if request.kind is ActionKind.CLICK and request.request_id in self._consumed:
            log.debug("Click %s already consumed; returning recorded result", request.request_id)
            recorded = self._consumed[request.request_id]
            recorded.replayed = True
            return recorded

        try:
            resolved = await self.resolver.resolve(
                request.locator,
                timeout_ms=request.timeout_ms,
                per_strategy_timeout_ms=request.per_strategy_timeout_ms,
            )
        except ElementNotFound as exc:
            log.warning("%s: %s", request.location, exc.message)
            return ActionResult.failed(request, exc)

        if request.kind is ActionKind.CLICK:
            return await self._click(request, resolved)
        if request.kind is ActionKind.SET_VALUE:
            return await self._set_value(request, resolved)
        return await self._type_text(request, resolved)

    async def _click(self, request: ActionRequest, resolved: ResolvedElement) -> ActionResult:
        method = "locator.click()" if resolved.native else "element.click()"
        target = resolved.target
        try:
            await target.scroll_into_view_if_needed(timeout=request.timeout_ms)
        except PlaywrightError as exc:
            log.debug("Scroll into view failed for %s: %s", request.location, exc)
        try:
            await target.click(timeout=request.timeout_ms)
        except PlaywrightError as exc:
            error = ActionNotVerified(
                f"Click on {request.locator.describe()} raised during dispatch: {exc}",
                details={"location": request.location, "strategy": resolved.strategy},
            )
            result = ActionResult.failed(request, error, resolved)
            self._consumed[request.request_id] = result
            return result
        result = ActionResult.succeeded(request, resolved, method)
        self._consumed[request.request_id] = result
        self.telemetry.record_action(request.location, request.locator.describe(), method)
        return result

    async def _set_value(self, request: ActionRequest, resolved: ResolvedElement) -> ActionResult:
        target = resolved.target
        value = request.value or ""
        try:
            await target.evaluate(NATIVE_SETTER_SCRIPT, value)
            current = await target.input_value()
        except PlaywrightError as exc:
            error = ActionNotVerified(
                f"Could not assign value at {request.location}: {exc}",
                details={"location": request.location, "strategy": resolved.strategy},
            )
            return ActionResult.failed(request, error, resolved)
        if current != value:
            error = ActionNotVerified(
                f"Value at {request.location} did not read back as written",
                details={
                    "location": request.location,
                    "expected_length": len(value),
                    "actual_length": len(current or ""),
                },
            )
            return ActionResult.failed(request, error, resolved)
        method = "nativeSetter+events"
        self.telemetry.record_action(request.location, request.locator.describe(), method)
        return ActionResult.succeeded(request, resolved, method)

    async def _type_text(self, request: ActionRequest, resolved: ResolvedElement) -> ActionResult:
        target = resolved.target
        try:
            await target.click(timeout=request.timeout_ms)
            await target.fill("", timeout=request.timeout_ms)
            await target.type(request.value or "", delay=self.type_delay_ms)
        except PlaywrightError as exc:
            error = ActionNotVerified(
                f"Typing at {request.location} failed: {exc}",
                details={"location": request.location, "strategy": resolved.strategy},
            )
            return ActionResult.failed(request, error, resolved)
        method = "keyboard.type()"
        self.telemetry.record_action(request.location, request.locator.describe(), method)
        return ActionResult.succeeded(request, resolved, method)
