"""A simulated partner booking site driven through :class:`FakePage`."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from booking.screens import CLASSIFY_SCRIPT
from booking.selectors import (
    SCREEN_PROBES,
    SLOT_SELECTOR,
    SUGGESTION_SELECTOR,
    SelectorTable,
    picker_day,
    resource_suggestion,
)
from booking.slots import MONTHS
from booking.workflow import COLLECT_LABELS_SCRIPT, LISTING_SEARCH_SCRIPT, VISIBLE_TEXTS_SCRIPT
from engine.locators import LocatorSpec

from fakes import FakePage

_SIGNALS = {
    "login": ("login_form",),
    "resource": ("resource_search",),
    "calendar": ("calendar",),
    "dialog": ("calendar", "booking_dialog"),
    "settlement": ("calendar", "settlement"),
    "done": ("calendar", "success"),
}

DEFAULT_SLOTS = (
    "8:00 AM - 9:00 AM Morning Flow",
    "8:30 AM - 9:30 AM Spin",
    "8:00 PM - 9:00 PM Evening Stretch",
)


def first_selector(spec: LocatorSpec) -> str:
    return spec.ladder()[0].playwright_selector()


class FakeBookingSite(FakePage):
    """Screens advance as the expected controls are clicked.

    ``settlement=False`` closes the dialog on confirmation without ever
    rendering the charge control. ``charge_completes=False`` renders it, but
    clicking it leaves the settlement screen in place.
    """

    def __init__(
        self,
        *,
        resource: str = "Gym-X",
        slots: Sequence[str] = DEFAULT_SLOTS,
        directory: Sequence[str] = ("Fitpass Two",),
        month: Tuple[int, int] = (2025, 10),
        day: int = 5,
        settlement: bool = True,
        charge_completes: bool = True,
    ) -> None:
        super().__init__("https://partners.example.test/login")
        self.table = SelectorTable()
        self.resource = resource
        self.slots = list(slots)
        self.directory = list(directory)
        self.month = month
        self.settlement = settlement
        self.screen = "login"
        self.picked_day: Optional[int] = None
        self.picked_slot: Optional[int] = None
        self.principal: Optional[str] = None
        self.listing_match: Optional[str] = f"{resource} 2025-11-05 8:00 am"

        table = self.table
        self.add(first_selector(table.login_identity), visible=self._on("login"))
        self.add(first_selector(table.login_secret), visible=self._on("login"))
        self.add(first_selector(table.login_submit), visible=self._on("login"), on_click=self._go("resource"))
        self.add(first_selector(table.resource_search), visible=self._on("resource"))
        self.add(
            first_selector(resource_suggestion(resource)),
            visible=self._on("resource"),
            on_click=self._go("calendar"),
        )
        self.add(first_selector(table.view_dropdown), visible=self._on("calendar"))
        self.add(first_selector(table.day_option), visible=self._on("calendar"))
        self.add(first_selector(table.date_button), visible=self._on("calendar"))
        self.add(first_selector(table.picker_next), visible=self._on("calendar"), on_click=self._step_month(1))
        self.add(first_selector(table.picker_previous), visible=self._on("calendar"), on_click=self._step_month(-1))
        self.add(first_selector(picker_day(day)), visible=self._on("calendar"), on_click=self._pick_day(day))
        for index in range(len(self.slots)):
            self.add(
                f"{SLOT_SELECTOR} >> nth={index}",
                visible=self._on("calendar"),
                on_click=self._pick_slot(index),
            )
        self.add(
            first_selector(table.book_customer),
            visible=lambda: self.screen == "calendar" and self.picked_slot is not None,
            on_click=self._go("dialog"),
        )
        self.search = self.add(first_selector(table.principal_search), visible=self._on("dialog"))
        for index in range(len(self.directory)):
            self.add(
                f"{SUGGESTION_SELECTOR} >> nth={index}",
                visible=self._suggestion_visible(index),
                on_click=self._pick_principal(index),
            )
        self.add(
            first_selector(table.confirm_reservation),
            visible=lambda: self.screen == "dialog" and self.principal is not None,
            on_click=self._go("settlement" if settlement else "calendar"),
        )
        self.charge = self.add(
            first_selector(table.settlement),
            visible=self._on("settlement"),
            on_click=self._go("done" if charge_completes else "settlement"),
        )

        self.scripts[CLASSIFY_SCRIPT] = self._classify
        self.scripts[VISIBLE_TEXTS_SCRIPT] = self._heading
        self.scripts[COLLECT_LABELS_SCRIPT] = self._collect
        self.scripts[LISTING_SEARCH_SCRIPT] = self._listing

    # behaviour ------------------------------------------------------------
    def _on(self, *screens: str):
        return lambda: self.screen in screens

    def _go(self, screen: str):
        def advance() -> None:
            self.screen = screen
        return advance

    def _step_month(self, delta: int):
        def step() -> None:
            year, month = self.month
            total = year * 12 + (month - 1) + delta
            self.month = (total // 12, total % 12 + 1)
        return step

    def _pick_day(self, day: int):
        def pick() -> None:
            self.picked_day = day
        return pick

    def _pick_slot(self, index: int):
        def pick() -> None:
            self.picked_slot = index
        return pick

    def _matching(self) -> List[str]:
        query = (self.search.value or "").strip().lower()
        if self.screen != "dialog" or not query:
            return []
        return [name for name in self.directory if query in name.lower()]

    def _suggestion_visible(self, index: int):
        return lambda: index < len(self._matching())

    def _pick_principal(self, index: int):
        def pick() -> None:
            self.principal = self._matching()[index]
            self.search.value = self.principal
        return pick

    # script handlers ------------------------------------------------------
    def _classify(self, arg: Dict[str, Any]) -> Dict[str, Any]:
        active = _SIGNALS.get(self.screen, ())
        signals = {name: name in active for name in SCREEN_PROBES}
        return {
            "signals": signals,
            "successText": "Booking confirmed" if self.screen == "done" else None,
            "path": "/",
        }

    def _heading(self, selector: str) -> List[str]:
        year, month = self.month
        return [f"{MONTHS[month - 1].capitalize()} {year}"]

    def _collect(self, selector: str) -> List[Dict[str, Any]]:
        if selector == SUGGESTION_SELECTOR:
            return [
                {"index": i, "text": name, "width": 320, "height": 40, "visible": True}
                for i, name in enumerate(self._matching())
            ]
        if self.screen != "calendar":
            return []
        return [
            {"index": i, "text": text, "visible": True, "className": "cal-event", "width": 200, "height": 60}
            for i, text in enumerate(self.slots)
        ]

    def _listing(self, arg: Dict[str, Any]) -> Dict[str, Any]:
        return {"listing": True, "match": self.listing_match}
