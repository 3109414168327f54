"""Resilient DOM-interaction and step-execution engine."""

from .actions import ActionExecutor, ActionKind, ActionRequest, ActionResult
from .errors import (
    ActionNotVerified,
    AutomationError,
    CandidateExhausted,
    ElementNotFound,
    NavigationTimeout,
    SessionLaunchFailure,
    SettlementNotCompleted,
)
from .locator_resolver import LocatorResolver, ResolvedElement
from .locators import LocatorSpec, LocatorStrategy
from .session import SessionLifecycle
from .steps import StepOutcome, StepRunner, WorkflowStep
from .telemetry import TelemetryLog

__all__ = [
    "ActionExecutor",
    "ActionKind",
    "ActionNotVerified",
    "ActionRequest",
    "ActionResult",
    "AutomationError",
    "CandidateExhausted",
    "ElementNotFound",
    "LocatorResolver",
    "LocatorSpec",
    "LocatorStrategy",
    "NavigationTimeout",
    "ResolvedElement",
    "SessionLaunchFailure",
    "SessionLifecycle",
    "SettlementNotCompleted",
    "StepOutcome",
    "StepRunner",
    "TelemetryLog",
    "WorkflowStep",
]
