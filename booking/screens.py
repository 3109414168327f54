"""One-pass classification of which screen the target application shows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from playwright.async_api import Error as PlaywrightError

from .selectors import SCREEN_PROBES

log = logging.getLogger(__name__)

SUCCESS_PHRASES = ("successfully booked", "booking confirmed", "booked successfully")

CLASSIFY_SCRIPT = """
({probes, phrases}) => {
  const visible = (el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return rect.width > 0 && rect.height > 0 &&
      style.visibility !== 'hidden' && style.display !== 'none';
  };
  const signals = {};
  let successText = null;
  for (const [name, selector] of Object.entries(probes)) {
    const hits = Array.from(document.querySelectorAll(selector)).filter(visible);
    signals[name] = hits.length > 0;
    if (name === 'success' && hits.length) {
      successText = (hits[0].textContent || '').trim().slice(0, 200);
    }
  }
  const body = ((document.body && document.body.innerText) || '').toLowerCase();
  const phrase = phrases.find(p => body.includes(p));
  if (phrase) {
    signals.success = true;
    successText = successText || phrase;
  }
  return {signals, successText, path: window.location.pathname};
}
"""


class ScreenState(str, Enum):
    LOGIN = "login"
    RESOURCE_PICKER = "resource_picker"
    CALENDAR = "calendar"
    BOOKING_DIALOG = "booking_dialog"
    SETTLEMENT = "settlement"
    CONFIRMATION = "confirmation"
    LISTING = "listing"
    UNKNOWN = "unknown"


# Most specific first: a settlement panel renders on top of the calendar, a
# confirmation toast on top of everything.
_PRIORITY = (
    ("success", ScreenState.CONFIRMATION),
    ("settlement", ScreenState.SETTLEMENT),
    ("booking_dialog", ScreenState.BOOKING_DIALOG),
    ("login_form", ScreenState.LOGIN),
    ("resource_search", ScreenState.RESOURCE_PICKER),
    ("calendar", ScreenState.CALENDAR),
    ("listing", ScreenState.LISTING),
)


@dataclass(slots=True)
class ScreenReading:
    state: ScreenState
    signals: Dict[str, bool] = field(default_factory=dict)
    success_text: Optional[str] = None
    path: str = ""

    @property
    def dialog_open(self) -> bool:
        return bool(self.signals.get("booking_dialog") or self.signals.get("settlement"))


def classify(signals: Mapping[str, Any]) -> ScreenState:
    for name, state in _PRIORITY:
        if signals.get(name):
            return state
    return ScreenState.UNKNOWN


async def read_screen(page: Any, probes: Optional[Mapping[str, str]] = None) -> ScreenReading:
    """Evaluate every probe in a single pass and classify the result."""

    try:
        raw = await page.evaluate(
            CLASSIFY_SCRIPT,
            {"probes": dict(probes or SCREEN_PROBES), "phrases": list(SUCCESS_PHRASES)},
        )
    except PlaywrightError as exc:
        log.debug("Screen classification failed: %s", exc)
        return ScreenReading(ScreenState.UNKNOWN)
    signals = {str(k): bool(v) for k, v in (raw.get("signals") or {}).items()}
    reading = ScreenReading(
        state=classify(signals),
        signals=signals,
        success_text=raw.get("successText"),
        path=str(raw.get("path") or ""),
    )
    log.debug("Screen classified as %s (%s)", reading.state.value, signals)
    return reading
