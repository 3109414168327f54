"""Target date/time parsing and exact slot-label matching."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

# A time mention further into the label than this belongs to something else
# (end time, description), not to the slot itself.
SLOT_TIME_PREFIX = 40

DENIED_TEXT = ("Week", "All instructors", "TODAY", "Filters", "Add event")
DENIED_CLASSES = ("header", "navigation", "title")

_LABEL_TIME = re.compile(r"\b(\d{1,2}):(\d{1,2})\s*(am|pm)?\b", re.IGNORECASE)
_TARGET_TIME = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m?\.?\s*$", re.IGNORECASE)
_TARGET_TIME_24 = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")
_TARGET_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)


class SlotTime(NamedTuple):
    hour: int
    minute: int

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def twelve_hour(self) -> str:
        period = "pm" if self.hour >= 12 else "am"
        return f"{self.hour % 12 or 12}:{self.minute:02d} {period}"


@dataclass(slots=True)
class SlotLabel:
    index: int
    text: str
    visible: bool = True
    class_name: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SlotLabel":
        return cls(
            index=int(raw.get("index", 0)),
            text=" ".join(str(raw.get("text") or "").split()),
            visible=bool(raw.get("visible", True)),
            class_name=str(raw.get("className") or raw.get("class_name") or ""),
        )


def to_24_hour(hour: int, minute: int, period: Optional[str]) -> SlotTime:
    period = (period or "").lower()
    if period == "pm" and hour < 12:
        hour += 12
    elif period == "am" and hour == 12:
        hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time out of range: {hour}:{minute:02d}")
    return SlotTime(hour, minute)


def parse_target_time(raw: str) -> SlotTime:
    """Parse ``"8:00 am"``, ``"8:00pm"``, ``"8 am"``, ``"8:00"`` or ``"20:00"``."""

    text = (raw or "").strip()
    match = _TARGET_TIME.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12:
            raise ValueError(f"12-hour time needs an hour between 1 and 12: {raw!r}")
        return to_24_hour(hour, minute, match.group(3).lower() + "m")
    match = _TARGET_TIME_24.match(text)
    if match:
        return to_24_hour(int(match.group(1)), int(match.group(2)), None)
    raise ValueError(f"unrecognised time of day: {raw!r}")


def parse_target_date(raw: Any) -> date:
    if isinstance(raw, date):
        return raw
    match = _TARGET_DATE.match(str(raw or "").strip())
    if not match:
        raise ValueError(f"date must be YYYY-MM-DD: {raw!r}")
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def extract_slot_time(text: str, prefix: int = SLOT_TIME_PREFIX) -> Optional[SlotTime]:
    """Return the label's own time: the first mention starting inside ``prefix``."""

    match = _LABEL_TIME.search(text or "")
    if match is None or match.start() >= prefix:
        return None
    try:
        return to_24_hour(int(match.group(1)), int(match.group(2)), match.group(3))
    except ValueError:
        return None


def is_denied(label: SlotLabel) -> bool:
    if any(token in label.text for token in DENIED_TEXT):
        return True
    return any(token in label.class_name for token in DENIED_CLASSES)


def slot_times(labels: Iterable[SlotLabel]) -> List[Tuple[SlotLabel, SlotTime]]:
    timed = []
    for label in labels:
        if not label.visible or is_denied(label):
            continue
        found = extract_slot_time(label.text)
        if found is not None:
            timed.append((label, found))
    return timed


def match_slots(labels: Sequence[SlotLabel], target: SlotTime) -> Tuple[List[SlotLabel], List[str]]:
    """Labels whose own time equals ``target`` exactly, plus every time seen."""

    timed = slot_times(labels)
    matches = [label for label, found in timed if found == target]
    available = sorted({str(found) for _, found in timed})
    return matches, available


def date_variants(day: date) -> List[str]:
    """Textual forms a listing view may use for ``day``."""

    short_month = MONTHS[day.month - 1][:3].capitalize()
    return [
        day.isoformat(),
        f"{short_month} {day.day}, {day.year}",
        day.isoformat().replace("-", "/"),
        f"{day.day:02d}/{day.month:02d}/{day.year}",
    ]


def parse_picker_heading(texts: Iterable[str]) -> Optional[Tuple[int, int]]:
    """Read ``(year, month)`` from the date picker's heading buttons."""

    year: Optional[int] = None
    month: Optional[int] = None
    for raw in texts:
        for token in re.split(r"[\s,]+", (raw or "").strip().lower()):
            if not token:
                continue
            if token.isdigit() and len(token) == 4:
                year = int(token)
                continue
            for number, name in enumerate(MONTHS, start=1):
                if token == name or (len(token) >= 3 and name.startswith(token)):
                    month = number
                    break
    if year is None or month is None:
        return None
    return year, month


def months_between(current: Tuple[int, int], target: Tuple[int, int]) -> int:
    return (target[0] * 12 + target[1]) - (current[0] * 12 + current[1])
