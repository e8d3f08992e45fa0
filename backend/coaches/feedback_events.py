"""
Structured feedback events routed to the voice channel.

A FeedbackEvent is a tagged union: `type` selects which payload dataclass
travels in `payload`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Union


class EventPriority(IntEnum):
    LOW = 1  # rep/phase context for the assistant
    MEDIUM = 2  # first form corrections
    HIGH = 3  # repeated or safety-relevant errors, spoken immediately
    CRITICAL = 4  # pain / stop


class FeedbackEventType(str, Enum):
    FORM_ERROR = "FORM_ERROR"
    REP_COMPLETE = "REP_COMPLETE"
    PHASE_CHANGE = "PHASE_CHANGE"
    SESSION_START = "SESSION_START"
    SESSION_END = "SESSION_END"
    REST_PERIOD = "REST_PERIOD"
    PAIN_INDICATION = "PAIN_INDICATION"


# Engine severity -> spoken severity
SEVERITY_TO_EVENT = {"info": "mild", "warning": "moderate", "error": "severe"}


@dataclass(frozen=True)
class FormErrorDetails:
    error_type: str
    severity: str = "moderate"  # mild | moderate | severe
    body_part: Optional[str] = None
    correction: Optional[str] = None


@dataclass(frozen=True)
class RepCompleteDetails:
    rep_number: int
    target_reps: int
    form_score: int


@dataclass(frozen=True)
class PhaseChangeDetails:
    previous_phase: str
    new_phase: str


@dataclass(frozen=True)
class SessionDetails:
    exercise_id: str
    exercise_name: str
    total_reps: Optional[int] = None
    average_form_score: Optional[int] = None
    duration_seconds: Optional[float] = None


@dataclass(frozen=True)
class RestDetails:
    duration_seconds: float


@dataclass(frozen=True)
class PainDetails:
    pain_level: int
    location: str = "unspecified"


EventPayload = Union[
    FormErrorDetails, RepCompleteDetails, PhaseChangeDetails, SessionDetails, RestDetails, PainDetails
]


@dataclass(frozen=True)
class FeedbackEvent:
    type: FeedbackEventType
    exercise_id: str
    payload: EventPayload
    timestamp: float = field(default=0.0)

    @classmethod
    def form_error(cls, exercise_id: str, error_type: str, severity: str = "moderate",
                   body_part: Optional[str] = None, correction: Optional[str] = None,
                   timestamp: float = 0.0) -> "FeedbackEvent":
        return cls(FeedbackEventType.FORM_ERROR, exercise_id,
                   FormErrorDetails(error_type, severity, body_part, correction), timestamp)

    @classmethod
    def rep_complete(cls, exercise_id: str, rep_number: int, target_reps: int, form_score: int,
                     timestamp: float = 0.0) -> "FeedbackEvent":
        return cls(FeedbackEventType.REP_COMPLETE, exercise_id,
                   RepCompleteDetails(rep_number, target_reps, form_score), timestamp)

    @classmethod
    def phase_change(cls, exercise_id: str, previous_phase: str, new_phase: str,
                     timestamp: float = 0.0) -> "FeedbackEvent":
        return cls(FeedbackEventType.PHASE_CHANGE, exercise_id,
                   PhaseChangeDetails(previous_phase, new_phase), timestamp)

    @classmethod
    def pain(cls, exercise_id: str, pain_level: int, location: str = "unspecified",
             timestamp: float = 0.0) -> "FeedbackEvent":
        return cls(FeedbackEventType.PAIN_INDICATION, exercise_id, PainDetails(pain_level, location), timestamp)
