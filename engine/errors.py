"""Error taxonomy shared by the engine and the booking workflow.

Every error carries a ``code`` naming its kind and a ``details`` mapping with
whatever context is needed to reconstruct the failure afterwards.  The code is
what callers see as ``error_kind`` in a failed outcome.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class AutomationError(Exception):
    code = "AutomationError"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ElementNotFound(AutomationError):
    """Every locator strategy was exhausted without a visible match."""

    code = "ElementNotFound"

    def __init__(
        self,
        message: str,
        *,
        attempts: Sequence[Dict[str, Any]] = (),
        skipped: Sequence[str] = (),
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = dict(details or {})
        if attempts:
            merged["attempts"] = list(attempts)
        if skipped:
            merged["skipped"] = list(skipped)
        super().__init__(message, details=merged)
        self.attempts: List[Dict[str, Any]] = list(attempts)
        self.skipped: List[str] = list(skipped)

    @classmethod
    def aggregate(
        cls,
        description: str,
        attempts: Sequence[Dict[str, Any]],
        skipped: Sequence[str] = (),
    ) -> "ElementNotFound":
        parts = [f"{a['strategy']}: {a['error']}" for a in attempts]
        if skipped:
            parts.append(f"skipped (budget exhausted): {', '.join(skipped)}")
        message = f"Could not resolve {description}. Tried " + "; ".join(parts or ["nothing"])
        return cls(message, attempts=attempts, skipped=skipped)


class ActionNotVerified(AutomationError):
    """The action was applied but its expected post-condition never appeared."""

    code = "ActionNotVerified"


class CandidateExhausted(AutomationError):
    code = "CandidateExhausted"


class SettlementNotCompleted(AutomationError):
    code = "SettlementNotCompleted"


class NavigationTimeout(AutomationError):
    code = "NavigationTimeout"


class SessionLaunchFailure(AutomationError):
    code = "SessionLaunchFailure"


class StateTransitionError(RuntimeError):
    """Raised when booking state flags are set out of order."""


FATAL_ERRORS = (
    ElementNotFound,
    ActionNotVerified,
    CandidateExhausted,
    SettlementNotCompleted,
    NavigationTimeout,
    SessionLaunchFailure,
)
