"""The booking state machine driven over one browser page."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from engine.actions import ActionExecutor
from engine.config import RunConfig
from engine.errors import (
    ActionNotVerified,
    AutomationError,
    ElementNotFound,
    NavigationTimeout,
    SettlementNotCompleted,
)
from engine.locator_resolver import LocatorResolver
from engine.page_stability import settle, stabilize_page
from engine.steps import StepRunner, WorkflowStep
from engine.telemetry import TelemetryLog
from engine.watchdogs import PageWatchdog

from .candidates import SequentialTrial, Suggestion, SuggestionBounds, match_suggestion, resolve_candidates
from .models import BookingOutcome, BookingRequest, BookingState, VerificationReport
from .screens import ScreenReading, ScreenState, read_screen
from .selectors import SelectorTable, indexed, picker_day, resource_suggestion
from .slots import SlotLabel, date_variants, match_slots, months_between, parse_picker_heading

log = logging.getLogger(__name__)

MAX_MONTH_STEPS = 12
PROBE_TIMEOUT_MS = 1_500
STABILIZE_TIMEOUT_MS = 2_000

VISIBLE_TEXTS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector))
  .filter(el => el.offsetParent !== null)
  .map(el => (el.textContent || '').trim())
"""

COLLECT_LABELS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el, index) => {
  const rect = el.getBoundingClientRect();
  return {
    index,
    text: (el.textContent || '').trim().slice(0, 300),
    visible: el.offsetParent !== null && rect.width > 0 && rect.height > 0,
    className: typeof el.className === 'string' ? el.className : '',
    width: rect.width,
    height: rect.height,
  };
})
"""

LISTING_SEARCH_SCRIPT = """
({rows, resource, dates, times}) => {
  const body = (document.body && document.body.textContent) || '';
  const lower = body.toLowerCase();
  const path = window.location.pathname.toLowerCase();
  const listing = ['reservation', 'booking', 'appointment', 'schedule']
    .some(word => lower.includes(word) || path.includes(word));
  const needle = resource.toLowerCase();
  const hasDate = (text) => dates.some(d => text.includes(d));
  const hasTime = (text) => times.some(t => text.toLowerCase().includes(t));
  for (const row of document.querySelectorAll(rows)) {
    const text = row.textContent || '';
    if (text.toLowerCase().includes(needle) && (hasDate(text) || hasTime(text))) {
      return {listing, match: text.trim().slice(0, 200)};
    }
  }
  if (lower.includes(needle) && hasDate(body) && hasTime(body)) {
    return {listing, match: body.trim().slice(0, 300)};
  }
  return {listing, match: null};
}
"""


class PrincipalSearch:
    """Drives the customer search inside the booking dialog for one candidate."""

    def __init__(self, flow: "WorkflowOrchestrator") -> None:
        self.flow = flow

    async def probe(self, candidate: str) -> Optional[Suggestion]:
        flow = self.flow
        if not await flow.resolver.is_visible(flow.selectors.principal_search, timeout_ms=flow.probe_timeout_ms):
            log.info("Customer search closed; reopening the booking dialog for %s", candidate)
            await flow._open_dialog()
        await flow.actions.set_value(
            flow.selectors.principal_search, candidate.lower(), location=f"Search customer {candidate}"
        )
        for _ in range(flow.poll_attempts):
            await settle(flow.config.settle_delay_ms)
            raw = await flow.page.evaluate(COLLECT_LABELS_SCRIPT, flow.selectors.suggestion_selector)
            suggestions = [Suggestion.from_dict(item) for item in raw or []]
            found = match_suggestion(candidate, [s for s in suggestions if s.visible])
            if found is not None:
                return found
        return None

    async def select(self, candidate: str, suggestion: Suggestion) -> None:
        flow = self.flow
        await flow.actions.click(
            indexed(flow.selectors.suggestion_selector, suggestion.index, name=f"suggestion {candidate}"),
            location="Select customer",
        )
        await settle(flow.config.settle_delay_ms)

    async def validate(self, candidate: str) -> bool:
        flow = self.flow
        if await flow.resolver.is_visible(flow.selectors.confirm_reservation, timeout_ms=flow.probe_timeout_ms):
            return True
        try:
            resolved = await flow.resolver.resolve(
                flow.selectors.principal_search,
                timeout_ms=flow.probe_timeout_ms,
                per_strategy_timeout_ms=flow.probe_timeout_ms,
            )
            current = await resolved.target.input_value()
        except (ElementNotFound, PlaywrightError) as exc:
            log.debug("Customer input unreadable while validating %s: %s", candidate, exc)
            return False
        return " ".join(current.split()).lower() == " ".join(candidate.split()).lower()

    async def restore(self) -> None:
        flow = self.flow
        try:
            await flow.actions.set_value(flow.selectors.principal_search, "", location="Clear customer search")
        except AutomationError as exc:
            log.warning("Could not clear customer search: %s", exc.message)
        await settle(flow.config.settle_delay_ms)


class WorkflowOrchestrator:
    """Runs the fixed booking sequence and returns a terminal outcome.

    Any fatal step failure aborts the run immediately; nothing already done is
    retried.  Settlement is mandatory: a reservation that was confirmed but
    never settled is a failed run.
    """

    def __init__(
        self,
        page: Any,
        request: BookingRequest,
        config: RunConfig,
        telemetry: TelemetryLog,
        *,
        selectors: Optional[SelectorTable] = None,
        candidates: Optional[Sequence[str]] = None,
        bounds: Optional[SuggestionBounds] = None,
    ) -> None:
        self.page = page
        self.request = request
        self.config = config
        self.telemetry = telemetry
        self.selectors = selectors or SelectorTable()
        self.resolver = LocatorResolver(
            page,
            timeout_ms=config.action_timeout_ms,
            per_strategy_timeout_ms=config.per_strategy_timeout_ms,
        )
        self.actions = ActionExecutor(
            page,
            self.resolver,
            telemetry,
            action_timeout_ms=config.action_timeout_ms,
            per_strategy_timeout_ms=config.per_strategy_timeout_ms,
        )
        self.steps = StepRunner(telemetry)
        self.state = BookingState()
        self.candidates = (
            list(candidates) if candidates is not None
            else resolve_candidates(request.principals, config.principals)
        )
        self.bounds = bounds
        self.trial: Optional[SequentialTrial] = None
        self.principal: Optional[str] = None
        self.watchdog = PageWatchdog(page, telemetry)
        self.poll_attempts = max(1, config.settlement_poll_attempts)
        self.probe_timeout_ms = min(PROBE_TIMEOUT_MS, config.action_timeout_ms)

    # entry point --------------------------------------------------------
    async def run(self) -> BookingOutcome:
        self.watchdog.start()
        try:
            message = await self._execute()
            verification = await self._verify()
        except AutomationError as exc:
            return await self._aborted(exc)
        except Exception as exc:
            log.exception("Unexpected error during booking")
            return await self._aborted(exc)
        finally:
            self.watchdog.stop()
        log.info("Booking completed: %s", message)
        return BookingOutcome.succeeded(
            message,
            self.telemetry,
            principal=self.principal,
            verification=verification,
            **self._progress(),
        )

    async def _execute(self) -> str:
        run = self.steps.run
        date_text = self.request.target_date.isoformat()
        slot_time = self.request.slot_time

        await run(WorkflowStep("Open login page", self._open_login))
        await run(WorkflowStep("Enter credentials", self._enter_credentials))
        await run(WorkflowStep("Submit login", self._submit_login))
        await run(WorkflowStep("Re-enter password", self._reenter_password, tolerate_absence=True))
        await run(WorkflowStep("Confirm login", self._confirm_login))
        self.state.advance("authenticated")
        await self.telemetry.checkpoint(self.page, "after-login")

        await run(WorkflowStep(f"Select business {self.request.resource_name}", self._select_resource))
        self.state.advance("resource_selected")
        await self.telemetry.checkpoint(self.page, "after-resource-selection")

        await run(WorkflowStep("Switch to day view", self._switch_to_day_view, tolerate_absence=True))
        await run(WorkflowStep(f"Navigate to {date_text}", self._navigate_date))
        await self.telemetry.checkpoint(self.page, "before-slot-selection")
        await run(WorkflowStep(f"Select slot {slot_time.twelve_hour()}", self._select_slot))
        self.state.advance("slot_located")
        await self.telemetry.checkpoint(self.page, "after-slot-selection")

        await run(WorkflowStep("Open booking dialog", self._open_dialog))
        self.state.advance("dialog_open")
        await self.telemetry.checkpoint(self.page, "before-principal-selection")

        await run(WorkflowStep("Select customer", self._select_principal))
        self.state.advance("principal_selected")
        await self.telemetry.checkpoint(self.page, "after-principal-selection")

        await run(WorkflowStep("Book using credits", self._confirm_reservation))
        self.state.advance("reservation_confirmed")
        await self.telemetry.checkpoint(self.page, "after-reservation-confirmation")

        message = await run(WorkflowStep("Charge", self._settle_payment))
        self.state.advance("payment_settled")
        await self.telemetry.checkpoint(self.page, "after-settlement")
        return message

    # authentication -----------------------------------------------------
    async def _open_login(self) -> None:
        url = self.config.url(self.config.login_path)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout_ms)
        except PlaywrightError as exc:
            raise NavigationTimeout(f"Could not open {url}: {exc}", details={"url": url}) from exc
        await self._settle_page()

    async def _enter_credentials(self) -> None:
        await self.actions.set_value(self.selectors.login_identity, self.request.email, location="Enter email")
        await self.actions.set_value(self.selectors.login_secret, self.request.password, location="Enter password")

    async def _submit_login(self) -> None:
        await self.actions.click(self.selectors.login_submit, location="Submit login")
        await self._settle_page()

    async def _reenter_password(self) -> None:
        resolved = await self.resolver.resolve(
            self.selectors.login_secret,
            timeout_ms=self.probe_timeout_ms,
            per_strategy_timeout_ms=self.probe_timeout_ms,
        )
        log.info("Password re-entry prompt detected (%s)", resolved.strategy)
        await self.actions.set_value(self.selectors.login_secret, self.request.password, location="Re-enter password")
        await self.page.keyboard.press("Enter")
        await self._settle_page()

    async def _confirm_login(self) -> None:
        reading = await self._await_screen(
            lambda r: r.state is not ScreenState.LOGIN and any(r.signals.values())
        )
        if reading is None:
            raise ActionNotVerified("Still on the login screen after submitting credentials")

    # resource and slot --------------------------------------------------
    async def _select_resource(self) -> None:
        name = self.request.resource_name
        await self.actions.type_text(self.selectors.resource_search, name, location="Business search")
        await settle(self.config.settle_delay_ms)
        await self.actions.click(resource_suggestion(name), location="Business suggestion")
        await self._settle_page()
        reading = await self._await_screen(lambda r: r.state is not ScreenState.RESOURCE_PICKER)
        if reading is None:
            raise ActionNotVerified(
                f"Still on the business picker after choosing {name!r}",
                details={"resource": name},
            )

    async def _switch_to_day_view(self) -> None:
        await self.actions.click(self.selectors.view_dropdown, location="Calendar view dropdown")
        await settle(self.config.settle_delay_ms)
        await self.actions.click(self.selectors.day_option, location="Day view option")
        await self._settle_page()

    async def _navigate_date(self) -> None:
        target = self.request.target_date
        await self.actions.click(self.selectors.date_button, location="Date picker toggle")
        await settle(self.config.settle_delay_ms)
        for _ in range(MAX_MONTH_STEPS + 1):
            texts = await self.page.evaluate(VISIBLE_TEXTS_SCRIPT, self.selectors.date_picker_heading)
            heading = parse_picker_heading(texts or [])
            if heading is None:
                raise ElementNotFound(
                    "Date picker heading is not readable",
                    details={"heading": list(texts or [])},
                )
            delta = months_between(heading, (target.year, target.month))
            if delta == 0:
                break
            spec = self.selectors.picker_next if delta > 0 else self.selectors.picker_previous
            await self.actions.click(spec, location="Date picker month")
            await settle(self.config.settle_delay_ms)
        else:
            raise ElementNotFound(
                f"Date picker did not reach {target:%B %Y} within {MAX_MONTH_STEPS} steps",
                details={"target_date": target.isoformat()},
            )
        await self.actions.click(picker_day(target.day), location="Date picker day")
        await self._settle_page()

    async def _select_slot(self) -> None:
        target = self.request.slot_time
        selector = self.selectors.slot_selector
        matches: List[SlotLabel] = []
        available: List[str] = []
        for _ in range(self.poll_attempts):
            raw = await self.page.evaluate(COLLECT_LABELS_SCRIPT, selector)
            labels = [SlotLabel.from_dict(item) for item in raw or []]
            matches, available = match_slots(labels, target)
            if matches:
                break
            await settle(self.config.settle_delay_ms)
        if not matches:
            raise ElementNotFound(
                f"No slot at {target.twelve_hour()} on {self.request.target_date.isoformat()}; "
                f"available: {', '.join(available) or 'none'}",
                details={"target_time": str(target), "available_times": available},
            )
        slot = matches[0]
        log.info("Slot %s matched label %r", target, slot.text[:100])
        await self.actions.click(indexed(selector, slot.index, name=f"slot {target}"), location="Select slot")
        await self._settle_page()

    # dialog -------------------------------------------------------------
    async def _open_dialog(self) -> None:
        await self.actions.click(self.selectors.book_customer, location="Book customer")
        await settle(self.config.settle_delay_ms)
        if not await self.resolver.is_visible(self.selectors.principal_search, timeout_ms=self.config.action_timeout_ms):
            raise ActionNotVerified("Customer search did not appear after opening the booking dialog")

    async def _select_principal(self) -> None:
        self.trial = SequentialTrial(self.candidates, PrincipalSearch(self), self.telemetry, bounds=self.bounds)
        self.principal = await self.trial.run()

    async def _confirm_reservation(self) -> None:
        await self.actions.click(self.selectors.confirm_reservation, location="Book using credits")
        await self._settle_page()
        reading = await self._await_screen(
            lambda r: bool(r.signals)
            and (r.state in (ScreenState.SETTLEMENT, ScreenState.CONFIRMATION) or not r.signals.get("booking_dialog"))
        )
        if reading is None:
            raise ActionNotVerified("Booking dialog showed no settlement, success or close after confirming")

    async def _settle_payment(self) -> str:
        try:
            await self.actions.click(self.selectors.settlement, location="Charge")
        except (ElementNotFound, ActionNotVerified) as exc:
            raise SettlementNotCompleted(
                f"Settlement could not be invoked: {exc.message}",
                details={"cause": exc.code, **exc.details},
            ) from exc
        for _ in range(self.poll_attempts):
            await settle(self.config.settle_delay_ms)
            reading = await read_screen(self.page, self.selectors.screen_probes)
            if reading.state is ScreenState.CONFIRMATION or (reading.signals and not reading.dialog_open):
                if reading.success_text:
                    log.info("Settlement confirmed: %s", reading.success_text)
                return (
                    f"Successfully booked class for {self.principal} on "
                    f"{self.request.target_date.isoformat()} at {self.request.target_time}"
                )
        raise SettlementNotCompleted(
            "Settlement was invoked but no completion signal appeared",
            details={"poll_attempts": self.poll_attempts},
        )

    # verification -------------------------------------------------------
    async def _verify(self) -> VerificationReport:
        """Cross-check the reservation in a listing view; never fails the run."""

        report = VerificationReport()
        slot = self.request.slot_time
        times = sorted({
            self.request.target_time.lower(),
            slot.twelve_hour(),
            slot.twelve_hour().replace(" ", ""),
            str(slot),
        })
        try:
            for path in self.config.listing_paths:
                url = self.config.url(path)
                try:
                    await self.page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout_ms)
                except PlaywrightError as exc:
                    log.info("Listing %s unavailable: %s", url, exc)
                    continue
                await self._settle_page()
                found = await self.page.evaluate(
                    LISTING_SEARCH_SCRIPT,
                    {
                        "rows": self.selectors.reservation_rows,
                        "resource": self.request.resource_name,
                        "dates": date_variants(self.request.target_date),
                        "times": times,
                    },
                )
                if not found or not found.get("listing"):
                    continue
                report.listing_url = url
                if found.get("match"):
                    report.found_in_listing = True
                    report.matched_text = found["match"]
                break
            report.verified = True
        except Exception as exc:
            log.warning("Reservation cross-check failed: %s", exc)
            report.error = str(exc)
        self.telemetry.record_event("verification", **asdict(report))
        return report

    # helpers ------------------------------------------------------------
    async def _settle_page(self) -> None:
        await stabilize_page(self.page, timeout=min(STABILIZE_TIMEOUT_MS, self.config.navigation_timeout_ms))
        await settle(self.config.settle_delay_ms)

    async def _await_screen(self, accept: Callable[[ScreenReading], bool]) -> Optional[ScreenReading]:
        for attempt in range(self.poll_attempts):
            reading = await read_screen(self.page, self.selectors.screen_probes)
            if accept(reading):
                return reading
            if attempt < self.poll_attempts - 1:
                await settle(self.config.settle_delay_ms)
        return None

    async def _aborted(self, error: BaseException) -> BookingOutcome:
        reason = getattr(error, "code", None) or error.__class__.__name__
        self.state.abort(reason)
        await self.telemetry.checkpoint(self.page, "abort")
        return BookingOutcome.failed(error, self.telemetry, principal=self.principal, **self._progress())

    def _progress(self) -> Dict[str, Any]:
        return {
            "steps": [outcome.as_dict() for outcome in self.steps.outcomes],
            "candidate_attempts": [a.as_dict() for a in self.trial.attempts] if self.trial else [],
            "state": self.state.as_dict(),
        }
