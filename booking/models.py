"""Booking request, run state and outcome models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from engine.errors import AutomationError, StateTransitionError
from engine.telemetry import TelemetryLog

from .slots import SlotTime, parse_target_date, parse_target_time


class BookingRequest(BaseModel):
    """Validated input for one booking run.

    Accepts the camel-case keys posted by the HTTP client as well as
    snake-case names.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, str_strip_whitespace=True)

    email: str = Field(min_length=1, validation_alias=AliasChoices("email", "identity"))
    password: str = Field(min_length=1, repr=False, validation_alias=AliasChoices("password", "secret"))
    resource_name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("gymName", "gym_name", "resourceName", "resource_name"),
    )
    target_date: date = Field(validation_alias=AliasChoices("targetDate", "target_date"))
    target_time: str = Field(min_length=1, validation_alias=AliasChoices("targetTime", "target_time"))
    debug: bool = Field(default=False, validation_alias=AliasChoices("debug", "diagnosticMode", "diagnostic_mode"))
    principals: Optional[List[str]] = None

    @field_validator("target_date", mode="before")
    @classmethod
    def _strict_date(cls, value: Any) -> date:
        return parse_target_date(value)

    @field_validator("target_time")
    @classmethod
    def _known_time(cls, value: str) -> str:
        parse_target_time(value)
        return value

    @field_validator("principals")
    @classmethod
    def _non_empty_principals(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        cleaned = [item.strip() for item in value if item and item.strip()]
        return cleaned or None

    @property
    def slot_time(self) -> SlotTime:
        return parse_target_time(self.target_time)


class CandidateStatus(str, Enum):
    ABSENT = "absent"
    UNSELECTABLE = "unselectable"
    REJECTED = "rejected"
    ACCEPTED = "accepted"


@dataclass(slots=True)
class CandidateAttempt:
    index: int
    candidate: str
    status: CandidateStatus
    detail: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "candidate": self.candidate,
            "status": self.status.value,
            "detail": self.detail,
        }


@dataclass(slots=True)
class BookingState:
    """Progress flags; each may only be set after every flag before it."""

    authenticated: bool = False
    resource_selected: bool = False
    slot_located: bool = False
    dialog_open: bool = False
    principal_selected: bool = False
    reservation_confirmed: bool = False
    payment_settled: bool = False
    aborted: Optional[str] = None

    @classmethod
    def order(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != "aborted"]

    def advance(self, flag: str) -> None:
        order = self.order()
        if flag not in order:
            raise StateTransitionError(f"unknown booking state flag {flag!r}")
        if self.aborted is not None:
            raise StateTransitionError(f"cannot set {flag!r} after abort ({self.aborted})")
        if getattr(self, flag):
            raise StateTransitionError(f"{flag!r} is already set")
        expected = self.current_index()
        if order.index(flag) != expected:
            raise StateTransitionError(
                f"cannot set {flag!r} before {order[expected]!r}"
            )
        setattr(self, flag, True)

    def current_index(self) -> int:
        return sum(1 for name in self.order() if getattr(self, name))

    def abort(self, reason: str) -> None:
        self.aborted = reason

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {name: getattr(self, name) for name in self.order()}
        if self.aborted is not None:
            payload["aborted"] = self.aborted
        return payload


@dataclass(slots=True)
class VerificationReport:
    verified: bool = False
    found_in_listing: bool = False
    listing_url: Optional[str] = None
    matched_text: Optional[str] = None
    error: Optional[str] = None


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    INTERIM = "interim"


@dataclass(slots=True)
class BookingOutcome:
    status: OutcomeStatus
    run_id: Optional[str] = None
    confirmation_message: Optional[str] = None
    principal: Optional[str] = None
    verification: Optional[VerificationReport] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)
    telemetry: List[Dict[str, Any]] = field(default_factory=list)
    action_count: int = 0
    checkpoints: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    steps: List[Dict[str, Any]] = field(default_factory=list)
    candidate_attempts: List[Dict[str, Any]] = field(default_factory=list)
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def succeeded(cls, message: str, telemetry: TelemetryLog, **extra: Any) -> "BookingOutcome":
        return cls(status=OutcomeStatus.SUCCESS, confirmation_message=message, **_telemetry_fields(telemetry), **extra)

    @classmethod
    def failed(cls, error: BaseException, telemetry: TelemetryLog, **extra: Any) -> "BookingOutcome":
        if isinstance(error, AutomationError):
            kind, message, details = error.code, error.message, dict(error.details)
        else:
            kind, message, details = "UnexpectedError", str(error) or error.__class__.__name__, {}
        return cls(
            status=OutcomeStatus.FAILURE,
            error_kind=kind,
            error_message=message,
            error_details=details,
            **_telemetry_fields(telemetry),
            **extra,
        )

    @classmethod
    def interim(cls, run_id: Optional[str] = None) -> "BookingOutcome":
        return cls(status=OutcomeStatus.INTERIM, run_id=run_id)

    def as_dict(self) -> Dict[str, Any]:
        if self.status is OutcomeStatus.INTERIM:
            payload: Dict[str, Any] = {
                "ok": False,
                "status": self.status.value,
                "still_running": True,
                "message": "Booking still running; check logs for progress.",
            }
            if self.run_id:
                payload["run_id"] = self.run_id
            return payload

        payload = {
            "ok": self.success,
            "status": self.status.value,
            "run_id": self.run_id,
            "telemetry": self.telemetry,
            "action_count": self.action_count,
            "checkpoints": self.checkpoints,
            "steps": self.steps,
            "candidate_attempts": self.candidate_attempts,
        }
        if self.warnings:
            payload["warnings"] = self.warnings
        if self.success:
            verification = self.verification or VerificationReport()
            payload.update(
                message=self.confirmation_message,
                principal=self.principal,
                verified=verification.verified,
                found_in_listing=verification.found_in_listing,
            )
            if verification.error:
                payload["verification_error"] = verification.error
            if verification.matched_text:
                payload["reservation_details"] = verification.matched_text
        else:
            payload.update(
                error_kind=self.error_kind,
                error=self.error_message,
                state=self.state,
            )
            if self.error_details:
                payload["error_details"] = self.error_details
        return payload


def _telemetry_fields(telemetry: TelemetryLog) -> Dict[str, Any]:
    summary = telemetry.summary()
    return {
        "telemetry": summary["telemetry"],
        "action_count": summary["action_count"],
        "checkpoints": summary["checkpoints"],
        "warnings": summary["warnings"],
    }
