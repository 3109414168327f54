import asyncio

from playwright.async_api import Error as PlaywrightError

from booking.models import BookingRequest
from booking.screens import CLASSIFY_SCRIPT
from booking.selectors import SUGGESTION_SELECTOR
from booking.workflow import LISTING_SEARCH_SCRIPT, WorkflowOrchestrator
from engine.telemetry import TelemetryLog

from booking_site import FakeBookingSite

REQUEST = {
    "email": "owner@example.com",
    "password": "s3cret",
    "gymName": "Gym-X",
    "targetDate": "2025-11-05",
    "targetTime": "8:00 am",
}


def _run(site, config, **request_overrides):
    request = BookingRequest.model_validate({**REQUEST, **request_overrides})
    telemetry = TelemetryLog("test-run")
    flow = WorkflowOrchestrator(site, request, config, telemetry)
    return asyncio.run(flow.run()), flow


def test_books_the_eight_am_slot_end_to_end(run_config):
    site = FakeBookingSite()

    outcome, flow = _run(site, run_config)

    assert outcome.success is True
    assert outcome.confirmation_message == "Successfully booked class for Fitpass Two on 2025-11-05 at 8:00 am"
    assert outcome.principal == "Fitpass Two"
    assert site.screen == "done"
    assert site.charge.clicks == 1
    assert site.month == (2025, 11)
    assert site.picked_day == 5
    assert site.picked_slot == 0
    assert all(outcome.state[flag] for flag in flow.state.order())
    assert [a["status"] for a in outcome.candidate_attempts] == ["absent", "accepted"]
    assert outcome.verification.verified is True
    assert outcome.verification.found_in_listing is True
    assert outcome.verification.listing_url == "https://partners.example.test/reservations"
    assert {"after-login", "after-slot-selection", "after-settlement"} <= set(outcome.checkpoints)
    assert outcome.action_count > 0
    steps = {step["name"]: step["status"] for step in outcome.steps}
    assert steps["Re-enter password"] == "skipped"
    assert steps["Charge"] == "success"
    assert site.listeners["dialog"] == []


def test_missing_settlement_control_fails_the_run(run_config):
    site = FakeBookingSite(settlement=False)

    outcome, _ = _run(site, run_config)

    assert outcome.success is False
    assert outcome.error_kind == "SettlementNotCompleted"
    assert outcome.error_details["cause"] == "ElementNotFound"
    assert outcome.state["reservation_confirmed"] is True
    assert outcome.state["payment_settled"] is False
    assert outcome.state["aborted"] == "SettlementNotCompleted"
    assert "abort" in outcome.checkpoints
    payload = outcome.as_dict()
    assert payload["ok"] is False
    assert payload["error_kind"] == "SettlementNotCompleted"


def test_charge_without_a_completion_signal_fails_the_run(run_config):
    site = FakeBookingSite(charge_completes=False)

    outcome, _ = _run(site, run_config)

    assert site.charge.clicks == 1
    assert site.screen == "settlement"
    assert outcome.success is False
    assert outcome.error_kind == "SettlementNotCompleted"
    assert outcome.error_details["poll_attempts"] == run_config.settlement_poll_attempts
    assert outcome.state["reservation_confirmed"] is True
    assert outcome.state["payment_settled"] is False


def test_closed_customer_search_is_reopened_for_the_next_candidate(run_config):
    class ClosingSearchSite(FakeBookingSite):
        closed_once = False

        def _collect(self, selector):
            if selector == SUGGESTION_SELECTOR and not self.closed_once and self.screen == "dialog":
                self.closed_once = True
                self.screen = "calendar"
                return []
            return super()._collect(selector)

    site = ClosingSearchSite()

    outcome, _ = _run(site, run_config)

    assert outcome.success is True
    assert outcome.principal == "Fitpass Two"
    assert [a["status"] for a in outcome.candidate_attempts] == ["absent", "accepted"]


def test_absent_slot_reports_the_times_on_offer(run_config):
    site = FakeBookingSite(slots=("9:00 AM - 10:00 AM Yoga", "6:15 PM Boxing"))

    outcome, _ = _run(site, run_config)

    assert outcome.error_kind == "ElementNotFound"
    assert outcome.error_details["available_times"] == ["09:00", "18:15"]
    assert "8:00 am" in outcome.error_message
    assert outcome.state["resource_selected"] is True
    assert outcome.state["slot_located"] is False
    assert site.picked_slot is None


def test_no_selectable_principal_exhausts_the_candidates(run_config):
    site = FakeBookingSite(directory=())

    outcome, _ = _run(site, run_config)

    assert outcome.error_kind == "CandidateExhausted"
    assert [a["candidate"] for a in outcome.candidate_attempts] == ["Fitpass One", "Fitpass Two"]
    assert outcome.state["dialog_open"] is True
    assert outcome.state["principal_selected"] is False


def test_request_principals_override_the_configured_set(run_config):
    site = FakeBookingSite(directory=("Member Seven",))

    outcome, _ = _run(site, run_config, principals=["Member Seven"])

    assert outcome.success is True
    assert outcome.principal == "Member Seven"
    assert len(outcome.candidate_attempts) == 1


def test_unreachable_login_page_aborts_before_any_action(run_config):
    site = FakeBookingSite()
    site.failing_urls.add("https://partners.example.test/login")

    outcome, _ = _run(site, run_config)

    assert outcome.error_kind == "NavigationTimeout"
    assert outcome.action_count == 0
    assert not any(value is True for value in outcome.state.values())
    assert [s["status"] for s in outcome.steps] == ["failure"]


def test_unreadable_screen_after_login_is_not_taken_as_success(run_config):
    site = FakeBookingSite()
    classify = site.scripts[CLASSIFY_SCRIPT]

    def mid_navigation(arg):
        if site.screen != "login":
            raise PlaywrightError("Execution context was destroyed, most likely because of a navigation")
        return classify(arg)

    site.scripts[CLASSIFY_SCRIPT] = mid_navigation

    outcome, _ = _run(site, run_config)

    assert outcome.error_kind == "ActionNotVerified"
    assert outcome.state["authenticated"] is False
    steps = {step["name"]: step["status"] for step in outcome.steps}
    assert steps["Confirm login"] == "failure"


def test_verification_errors_do_not_fail_a_settled_booking(run_config):
    site = FakeBookingSite()

    def broken(arg):
        raise PlaywrightError("Execution context was destroyed")

    site.scripts[LISTING_SEARCH_SCRIPT] = broken

    outcome, _ = _run(site, run_config)

    assert outcome.success is True
    assert outcome.verification.verified is False
    assert "Execution context was destroyed" in outcome.verification.error
    assert outcome.as_dict()["verification_error"]
