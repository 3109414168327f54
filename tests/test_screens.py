import asyncio

from playwright.async_api import Error as PlaywrightError

from booking.screens import CLASSIFY_SCRIPT, ScreenState, classify, read_screen

from fakes import FakePage


def test_classification_prefers_the_most_specific_signal():
    assert classify({"calendar": True}) is ScreenState.CALENDAR
    assert classify({"calendar": True, "booking_dialog": True}) is ScreenState.BOOKING_DIALOG
    assert classify({"booking_dialog": True, "settlement": True}) is ScreenState.SETTLEMENT
    assert classify({"settlement": True, "success": True}) is ScreenState.CONFIRMATION
    assert classify({"login_form": True, "resource_search": True}) is ScreenState.LOGIN
    assert classify({}) is ScreenState.UNKNOWN


def test_read_screen_evaluates_once_and_keeps_the_success_text():
    page = FakePage()
    seen = []

    def handler(arg):
        seen.append(arg)
        return {"signals": {"success": True, "calendar": True}, "successText": "Booking confirmed", "path": "/calendar"}

    page.scripts[CLASSIFY_SCRIPT] = handler

    reading = asyncio.run(read_screen(page))

    assert len(seen) == 1
    assert "settlement" in seen[0]["probes"]
    assert reading.state is ScreenState.CONFIRMATION
    assert reading.success_text == "Booking confirmed"
    assert reading.path == "/calendar"
    assert reading.dialog_open is False


def test_read_screen_falls_back_to_unknown_on_page_errors():
    page = FakePage()

    def handler(arg):
        raise PlaywrightError("Execution context was destroyed")

    page.scripts[CLASSIFY_SCRIPT] = handler

    reading = asyncio.run(read_screen(page))

    assert reading.state is ScreenState.UNKNOWN
    assert reading.signals == {}
