"""Locator tables for the partner booking application.

Every entry lists native strategies first; the resolver already orders the
ladder, so the declared order only matters within each tier.  Entries can be
overridden per deployment through ``[booking.selectors]`` in ``config.toml``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Mapping, Sequence

from engine.locators import LocatorSpec

_APP_ROOT = "/html/body/web-app/ng-component/div/div/div[2]/div/div/ng-component"

SLOT_SELECTOR = ", ".join(
    [
        "mwl-calendar-week-view-event",
        "div.checker-details",
        'div[class*="calendar-event"]',
        'div[class*="event"]',
        '[class*="cal-event"]',
        ".cal-day-event",
        "[data-event-index]",
        "div.cal-event-item",
    ]
)

SUGGESTION_SELECTOR = "div.search-container > div > div"

SUCCESS_SELECTOR = ", ".join(
    [
        'div[class*="success"]',
        'div[class*="confirmation"]',
        'div[class*="completed"]',
        '[class*="alert-success"]',
        '[class*="message-success"]',
    ]
)

RESERVATION_ROW_SELECTOR = ", ".join(
    [
        'div[class*="reservation"]',
        'div[class*="booking"]',
        'div[class*="appointment"]',
        'tr[class*="reservation"]',
        'tr[class*="booking"]',
        'li[class*="reservation"]',
        'li[class*="booking"]',
    ]
)

DATE_PICKER_SELECTOR = 'bs-datepicker-container, bs-days-calendar-view, [class*="datepicker"]'
DATE_PICKER_HEADING_SELECTOR = (
    "bs-datepicker-container .bs-datepicker-head button, "
    '[class*="datepicker"] thead button, [class*="datepicker"] .current'
)

# Probes for the screen classifier: one visible match each.
SCREEN_PROBES: Dict[str, str] = {
    "login_form": 'form input[type="password"]',
    "resource_search": 'input[placeholder*="Search for your business" i]',
    "calendar": (
        "mwl-calendar-week-view, mwl-calendar-day-view, "
        '[class*="cal-week-view"], [class*="cal-day-view"], p-dropdown'
    ),
    "booking_dialog": "div.customer-overlay",
    "settlement": "div.final-price-calculation-section",
    "success": SUCCESS_SELECTOR,
    "listing": RESERVATION_ROW_SELECTOR,
}


def _spec(name: str, *raw: str) -> LocatorSpec:
    return LocatorSpec.of(*raw, name=name)


@dataclass(frozen=True)
class SelectorTable:
    login_identity: LocatorSpec = field(default_factory=lambda: _spec(
        "login identity",
        "form > div:nth-of-type(1) input",
        "pierce/form > div:nth-of-type(1) input",
        "aria/name@example.com",
        "xpath//html/body/div/div/div/div[2]/div/form/div[1]/div[2]/input",
    ))
    login_secret: LocatorSpec = field(default_factory=lambda: _spec(
        "login secret",
        "form > div:nth-of-type(2) input",
        "pierce/form > div:nth-of-type(2) input",
        "aria/Password",
        "xpath//html/body/div/div/div/div[2]/div/form/div[2]/div[2]/input",
    ))
    login_submit: LocatorSpec = field(default_factory=lambda: _spec(
        "login submit",
        "form button",
        "pierce/form button",
        "aria/Sign in",
        "xpath//html/body/div/div/div/div[2]/div/form/div[3]/button",
    ))
    resource_search: LocatorSpec = field(default_factory=lambda: _spec(
        "business search",
        'input[placeholder*="Search for your business" i]',
        'input[placeholder*="Search" i]',
        'input[role="combobox"]',
        'input[role="searchbox"]',
    ))
    view_dropdown: LocatorSpec = field(default_factory=lambda: _spec(
        "calendar view dropdown",
        "p-dropdown div.p-dropdown-trigger",
        "p-dropdown",
        '[class*="p-dropdown"]',
    ))
    day_option: LocatorSpec = field(default_factory=lambda: _spec(
        "day view option",
        'li[aria-label="Day"]',
        "p-dropdownitem:nth-of-type(1) span",
        "aria/Day",
    ))
    date_button: LocatorSpec = field(default_factory=lambda: _spec(
        "date picker toggle",
        "div.date-range",
        '[class*="date-range"]',
        '[class*="date-picker"]',
        f"xpath/{_APP_ROOT}/div/div[1]/div[2]/div[3]",
    ))
    picker_next: LocatorSpec = field(default_factory=lambda: _spec(
        "date picker next month",
        "bs-datepicker-container button.next",
        'bs-datepicker-container button[aria-label*="next"]',
        '[class*="datepicker"] button[aria-label*="next"]',
        '''xpath///bs-datepicker-container//button[contains(@aria-label, "next")]''',
    ))
    picker_previous: LocatorSpec = field(default_factory=lambda: _spec(
        "date picker previous month",
        "bs-datepicker-container button.previous",
        'bs-datepicker-container button[aria-label*="previous"]',
        '[class*="datepicker"] button[aria-label*="previous"]',
    ))
    book_customer: LocatorSpec = field(default_factory=lambda: _spec(
        "book customer",
        "div.booking-btn > button",
        "pierce/div.booking-btn > button",
        "aria/Book Customer",
        f"xpath/{_APP_ROOT}/div[2]/div/div[3]/div[2]/div[1]/div[2]/button",
        "text/Book Customer",
    ))
    principal_search: LocatorSpec = field(default_factory=lambda: _spec(
        "customer search",
        "div.customer-overlay input",
        "pierce/div.customer-overlay input",
        "aria/Search customer",
        f"xpath/{_APP_ROOT}/div[3]/div/div[3]/input",
    ))
    confirm_reservation: LocatorSpec = field(default_factory=lambda: _spec(
        "book using credits",
        'div.customer-overlay button:has-text("BOOK USING CREDITS")',
        "aria/Calendar Button BOOK USING CREDITS",
        f"xpath/{_APP_ROOT}/div[3]/div/div[3]/div/div[6]/div/button",
        "text/BOOK USING CREDITS",
    ))
    settlement: LocatorSpec = field(default_factory=lambda: _spec(
        "charge",
        "div.final-price-calculation-section > button",
        "pierce/div.final-price-calculation-section > button",
        "aria/Charge",
        f"xpath/{_APP_ROOT}/div[3]/app-floating-pos/div/div[2]/div[2]/div[2]/button",
        "text/Charge",
    ))
    slot_selector: str = SLOT_SELECTOR
    suggestion_selector: str = SUGGESTION_SELECTOR
    date_picker: str = DATE_PICKER_SELECTOR
    date_picker_heading: str = DATE_PICKER_HEADING_SELECTOR
    reservation_rows: str = RESERVATION_ROW_SELECTOR
    screen_probes: Mapping[str, str] = field(default_factory=lambda: dict(SCREEN_PROBES))

    def with_overrides(self, overrides: Mapping[str, Sequence[str]]) -> "SelectorTable":
        """Replace entries by name; unknown names raise ``KeyError``."""

        known = {f.name: f for f in fields(self)}
        changes = {}
        for name, raw in overrides.items():
            if name not in known:
                raise KeyError(f"unknown selector entry {name!r}")
            current = getattr(self, name)
            if isinstance(current, LocatorSpec):
                changes[name] = LocatorSpec.of(*raw, name=current.name)
            elif isinstance(current, str):
                changes[name] = ", ".join(raw)
            else:
                raise KeyError(f"selector entry {name!r} cannot be overridden")
        return replace(self, **changes)


def resource_suggestion(resource_name: str) -> LocatorSpec:
    quoted = json.dumps(resource_name)
    return _spec(
        f"suggestion {resource_name}",
        f'[role="option"]:has-text({quoted})',
        f"li:has-text({quoted})",
        f'[class*="suggestion"]:has-text({quoted})',
        f"text/{resource_name}",
    )


def indexed(selector: str, index: int, name: str) -> LocatorSpec:
    """Structural spec for the ``index``-th match of ``selector`` in document order."""

    return LocatorSpec.of(f"{selector} >> nth={index}", name=name)


def picker_day(day: int) -> LocatorSpec:
    return _spec(
        f"date picker day {day}",
        f'bs-days-calendar-view td span:not(.is-other-month):text-is("{day}")',
        f'[class*="datepicker"] table td span:not(.is-other-month):text-is("{day}")',
        f'xpath///bs-days-calendar-view//td/span[not(contains(@class, "is-other-month")) and normalize-space()="{day}"]',
    )
