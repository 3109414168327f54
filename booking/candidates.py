"""Bounded sequential trial over an ordered set of principals."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from engine.errors import ActionNotVerified, CandidateExhausted, ElementNotFound
from engine.telemetry import TelemetryLog

from .models import CandidateAttempt, CandidateStatus

log = logging.getLogger(__name__)

_NUMBERS = (
    "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen",
    "Eighteen", "Nineteen", "Twenty",
)

DEFAULT_CANDIDATES: List[str] = [f"Fitpass {number}" for number in _NUMBERS]


@dataclass(slots=True)
class Suggestion:
    index: int
    text: str
    width: float = 0.0
    height: float = 0.0
    visible: bool = True

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Suggestion":
        return cls(
            index=int(raw.get("index", 0)),
            text=" ".join(str(raw.get("text") or "").split()),
            width=float(raw.get("width") or 0),
            height=float(raw.get("height") or 0),
            visible=bool(raw.get("visible", True)),
        )


@dataclass(slots=True)
class SuggestionBounds:
    """Upper limits for something that can plausibly be one suggestion row."""

    max_width: float = 800.0
    max_height: float = 200.0
    max_text: int = 200

    def admits(self, suggestion: Suggestion) -> bool:
        return (
            suggestion.visible
            and 0 < suggestion.width <= self.max_width
            and 0 < suggestion.height <= self.max_height
            and len(suggestion.text) <= self.max_text
        )


def mentions_full_label(candidate: str, text: str) -> bool:
    """Whole-token, case-insensitive containment of the full candidate label."""

    label = " ".join(candidate.split())
    if not label:
        return False
    pattern = r"(?<!\w)" + r"\s+".join(re.escape(part) for part in label.split()) + r"(?!\w)"
    return re.search(pattern, text, re.IGNORECASE) is not None


def match_suggestion(candidate: str, suggestions: Sequence[Suggestion]) -> Optional[Suggestion]:
    """Exact label first, then the smallest row mentioning the full label."""

    wanted = " ".join(candidate.split()).lower()
    for suggestion in suggestions:
        if suggestion.text.lower() == wanted:
            return suggestion
    mentioning = [s for s in suggestions if mentions_full_label(candidate, s.text)]
    if not mentioning:
        return None
    return min(mentioning, key=lambda s: len(s.text))


def resolve_candidates(
    requested: Optional[Sequence[str]] = None,
    configured: Optional[Sequence[str]] = None,
) -> List[str]:
    for source in (requested, configured):
        cleaned = [c.strip() for c in (source or []) if c and c.strip()]
        if cleaned:
            return list(dict.fromkeys(cleaned))
    return list(DEFAULT_CANDIDATES)


class CandidateDriver(Protocol):
    async def probe(self, candidate: str) -> Optional[Suggestion]: ...

    async def select(self, candidate: str, suggestion: Suggestion) -> None: ...

    async def validate(self, candidate: str) -> bool: ...

    async def restore(self) -> None: ...


class SequentialTrial:
    """Try candidates in order until one is selected and validated.

    At most one candidate is accepted.  Every attempt is logged, whatever its
    outcome, and kept in :attr:`attempts`.
    """

    def __init__(
        self,
        candidates: Sequence[str],
        driver: CandidateDriver,
        telemetry: TelemetryLog,
        *,
        bounds: Optional[SuggestionBounds] = None,
    ) -> None:
        if not candidates:
            raise ValueError("candidate set must not be empty")
        self.candidates = list(candidates)
        self.driver = driver
        self.telemetry = telemetry
        self.bounds = bounds or SuggestionBounds()
        self.attempts: List[CandidateAttempt] = []

    async def run(self) -> str:
        for index, candidate in enumerate(self.candidates):
            attempt = await self._try(index, candidate)
            self._log(attempt)
            if attempt.status is CandidateStatus.ACCEPTED:
                return candidate
        raise CandidateExhausted(
            f"None of {len(self.candidates)} candidates could be selected",
            details={"attempts": [a.as_dict() for a in self.attempts]},
        )

    async def _try(self, index: int, candidate: str) -> CandidateAttempt:
        try:
            suggestion = await self.driver.probe(candidate)
        except (ElementNotFound, ActionNotVerified) as exc:
            return CandidateAttempt(index, candidate, CandidateStatus.UNSELECTABLE, exc.message)
        if suggestion is None:
            return CandidateAttempt(index, candidate, CandidateStatus.ABSENT, "no suggestion with the full label")
        if not self.bounds.admits(suggestion):
            await self.driver.restore()
            return CandidateAttempt(
                index,
                candidate,
                CandidateStatus.UNSELECTABLE,
                f"suggestion {suggestion.width:.0f}x{suggestion.height:.0f}px, {len(suggestion.text)} chars",
            )
        try:
            await self.driver.select(candidate, suggestion)
        except ElementNotFound as exc:
            await self.driver.restore()
            return CandidateAttempt(index, candidate, CandidateStatus.UNSELECTABLE, exc.message)
        except ActionNotVerified as exc:
            # The click may still have landed; validation decides.
            log.warning("Selecting %s raised: %s", candidate, exc.message)
        if not await self.driver.validate(candidate):
            await self.driver.restore()
            return CandidateAttempt(index, candidate, CandidateStatus.REJECTED, "selection did not take effect")
        return CandidateAttempt(index, candidate, CandidateStatus.ACCEPTED, suggestion.text)

    def _log(self, attempt: CandidateAttempt) -> None:
        self.attempts.append(attempt)
        log.info(
            "[CANDIDATE %d/%d] %s: %s %s",
            attempt.index + 1,
            len(self.candidates),
            attempt.candidate,
            attempt.status.value,
            attempt.detail,
        )
        self.telemetry.record_event("candidate", **attempt.as_dict())
