"""
Workout Session Management

An ExerciseSession owns the per-set pipeline (landmark filter + form engine)
and turns engine results into feedback events. A WorkoutSession strings sets
together and hands those events to the voice bridge.

Example session: 3x10 squats, then 2x8 romanian deadlifts.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import time
import uuid

from coaches.feedback_events import (
    SEVERITY_TO_EVENT,
    FeedbackEvent,
    FeedbackEventType,
    RestDetails,
    SessionDetails,
)
from coaches.voice_bridge import FeedbackEventBridge, VoiceAction
from filters import LandmarkFilter, OneEuroParams
from form_engine import ExerciseConfig, FormAnalysisResult, FormEngine, build_exercise_config
from kinematics import Landmark

logger = logging.getLogger(__name__)


@dataclass
class RepRecord:
    """What the engine reported on the frame a rep was counted."""
    rep_number: int
    timestamp: float
    form_score: int
    errors: List[str] = field(default_factory=list)
    similarity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rep_number": self.rep_number,
            "timestamp": self.timestamp,
            "form_score": self.form_score,
            "errors": self.errors,
            "similarity": self.similarity,
        }


@dataclass
class ExerciseSet:
    """A single set of an exercise within a workout session."""

    exercise: str           # catalog id, e.g. "squat"
    target_reps: int        # Goal reps for this set
    completed_reps: int = 0
    mistakes: Dict[str, int] = field(default_factory=dict)
    rep_records: List[RepRecord] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        """Check if target reps have been reached."""
        return self.completed_reps >= self.target_reps

    @property
    def remaining_reps(self) -> int:
        """Reps left to complete this set."""
        return max(0, self.target_reps - self.completed_reps)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Duration of this set in seconds."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        elif self.start_time:
            return time.time() - self.start_time
        return None

    @property
    def average_form_score(self) -> Optional[int]:
        if not self.rep_records:
            return None
        return round(sum(r.form_score for r in self.rep_records) / len(self.rep_records))

    def add_rep(self) -> bool:
        """
        Record a completed rep.
        Returns True if this rep completed the set.
        """
        self.completed_reps += 1
        return self.is_complete

    def add_mistake(self, mistake_type: str):
        """Record a form mistake."""
        self.mistakes[mistake_type] = self.mistakes.get(mistake_type, 0) + 1

    def add_rep_record(self, record: RepRecord):
        self.rep_records.append(record)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise": self.exercise,
            "target_reps": self.target_reps,
            "completed_reps": self.completed_reps,
            "remaining_reps": self.remaining_reps,
            "is_complete": self.is_complete,
            "mistakes": self.mistakes,
            "average_form_score": self.average_form_score,
            "rep_records": [r.to_dict() for r in self.rep_records],
            "duration_seconds": self.duration_seconds,
        }


class ExerciseSession:
    """
    Filter + form engine for one exercise, plus event derivation.

    Built fresh for every set; nothing carries over from the previous
    exercise. Form errors are reported on onset only: an error that stays
    active across frames produces one FORM_ERROR event.
    """

    def __init__(
        self,
        exercise_id: str,
        target_reps: int,
        config: Optional[ExerciseConfig] = None,
        filter_params: Optional[OneEuroParams] = None,
    ):
        self.config = config or build_exercise_config(exercise_id)
        self.exercise_id = exercise_id
        self.target_reps = target_reps
        self.filter = LandmarkFilter(filter_params)
        self.engine = FormEngine(self.config)
        self._active_errors: set = set()
        self.last_result: Optional[FormAnalysisResult] = None

    def reset(self):
        """Drop all motion history and rep state."""
        self.filter.reset()
        self.engine = FormEngine(self.config)
        self._active_errors = set()
        self.last_result = None

    def process(
        self, landmarks: Sequence[Optional[Landmark]], timestamp: float
    ) -> Tuple[FormAnalysisResult, List[FeedbackEvent]]:
        filtered = self.filter.filter(landmarks, timestamp)
        previous_phase = self.engine.phase
        result = self.engine.process(filtered, timestamp)
        self.last_result = result

        events: List[FeedbackEvent] = []
        if result.phase != previous_phase:
            events.append(FeedbackEvent.phase_change(self.exercise_id, previous_phase, result.phase, timestamp))
        if result.rep_incremented:
            events.append(
                FeedbackEvent.rep_complete(
                    self.exercise_id, result.rep_count, self.target_reps, result.form_score, timestamp
                )
            )
        if result.is_valid:
            current = set()
            for error in result.errors:
                current.add(error.type)
                if error.type not in self._active_errors:
                    events.append(
                        FeedbackEvent.form_error(
                            self.exercise_id,
                            error.type,
                            severity=SEVERITY_TO_EVENT.get(error.severity, "moderate"),
                            body_part=error.body_part,
                            timestamp=timestamp,
                        )
                    )
            self._active_errors = current
        return result, events


@dataclass
class FrameOutcome:
    result: FormAnalysisResult
    events: List[FeedbackEvent]
    actions: List[VoiceAction]
    set_complete: bool = False


@dataclass
class WorkoutSession:
    """
    A complete workout session containing multiple exercise sets.

    Usage:
        session = WorkoutSession.from_config([
            {"exercise": "squat", "reps": 10},
            {"exercise": "romanian_deadlift", "reps": 8},
        ], bridge=bridge)

        # Start first set
        session.start()

        # Feed frames
        outcome = session.process_frame(landmarks, timestamp)

        # Move to next set
        session.advance_to_next_set()
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str = "Workout"
    sets: List[ExerciseSet] = field(default_factory=list)
    current_set_index: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    bridge: Optional[FeedbackEventBridge] = field(default=None, repr=False)
    clock: Callable[[], float] = field(default=time.time, repr=False)
    exercise_session: Optional[ExerciseSession] = field(default=None, repr=False)
    _configs: Dict[str, ExerciseConfig] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(
        cls,
        sets_config: List[Dict[str, Any]],
        name: str = "Workout",
        bridge: Optional[FeedbackEventBridge] = None,
        clock: Callable[[], float] = time.time,
    ) -> "WorkoutSession":
        """
        Create a session from a configuration list.

        Every exercise is looked up and validated here, so a bad catalog entry
        rejects the session before it starts (ExerciseConfigError).

        Example:
            WorkoutSession.from_config([
                {"exercise": "squat", "reps": 10},
                {"exercise": "cat_camel", "reps": 8},
            ])
        """
        if not sets_config:
            raise ValueError("No sets provided. Include 'sets' with exercise and reps.")
        configs: Dict[str, ExerciseConfig] = {}
        sets = []
        for s in sets_config:
            exercise = s.get("exercise", "squat")
            reps = int(s.get("reps", 10))
            if reps <= 0:
                raise ValueError(f"Set for '{exercise}' needs a positive rep target, got {reps}")
            if exercise not in configs:
                configs[exercise] = build_exercise_config(exercise)
            sets.append(ExerciseSet(exercise=exercise, target_reps=reps))
        return cls(sets=sets, name=name, bridge=bridge, clock=clock, _configs=configs)

    @property
    def current_set(self) -> Optional[ExerciseSet]:
        """Get the currently active set."""
        if 0 <= self.current_set_index < len(self.sets):
            return self.sets[self.current_set_index]
        return None

    @property
    def current_exercise(self) -> Optional[str]:
        """Get the exercise type for the current set."""
        if self.current_set:
            return self.current_set.exercise
        return None

    @property
    def is_complete(self) -> bool:
        """Check if all sets have been completed."""
        return self.current_set_index >= len(self.sets)

    @property
    def is_active(self) -> bool:
        """Check if session is in progress."""
        return self.started_at is not None and self.finished_at is None

    @property
    def total_sets(self) -> int:
        return len(self.sets)

    @property
    def completed_sets(self) -> int:
        """Number of fully completed sets."""
        return sum(1 for s in self.sets if s.is_complete)

    @property
    def total_reps_completed(self) -> int:
        """Total reps across all sets."""
        return sum(s.completed_reps for s in self.sets)

    @property
    def total_reps_target(self) -> int:
        """Total target reps across all sets."""
        return sum(s.target_reps for s in self.sets)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Total session duration."""
        if self.started_at:
            end = self.finished_at or self.clock()
            return end - self.started_at
        return None

    @property
    def all_mistakes(self) -> Dict[str, int]:
        """Aggregate mistakes from all sets."""
        combined = {}
        for s in self.sets:
            for k, v in s.mistakes.items():
                combined[k] = combined.get(k, 0) + v
        return combined

    def _emit(self, event: FeedbackEvent) -> Optional[VoiceAction]:
        if self.bridge is None:
            return None
        return self.bridge.handle_event(event)

    def _config_for(self, exercise: str) -> ExerciseConfig:
        if exercise not in self._configs:
            self._configs[exercise] = build_exercise_config(exercise)
        return self._configs[exercise]

    def _begin_current_set(self) -> Optional[VoiceAction]:
        current = self.current_set
        current.start_time = self.clock()
        config = self._config_for(current.exercise)
        self.exercise_session = ExerciseSession(current.exercise, current.target_reps, config=config)
        if self.bridge is not None:
            self.bridge.reset_debouncer()
        logger.info(
            "Set %d/%d started: %s x%d", self.current_set_index + 1, self.total_sets,
            current.exercise, current.target_reps,
        )
        return self._emit(
            FeedbackEvent(
                FeedbackEventType.SESSION_START,
                current.exercise,
                SessionDetails(exercise_id=current.exercise, exercise_name=config.name),
                self.clock(),
            )
        )

    def _end_current_set(self) -> Optional[VoiceAction]:
        current = self.current_set
        if current is None:
            return None
        if not current.end_time:
            current.end_time = self.clock()
        self.exercise_session = None
        return self._emit(
            FeedbackEvent(
                FeedbackEventType.SESSION_END,
                current.exercise,
                SessionDetails(
                    exercise_id=current.exercise,
                    exercise_name=self._config_for(current.exercise).name,
                    total_reps=current.completed_reps,
                    average_form_score=current.average_form_score,
                    duration_seconds=current.end_time - current.start_time if current.start_time else None,
                ),
                self.clock(),
            )
        )

    def start(self) -> Optional[VoiceAction]:
        """Start the session and the first set."""
        self.started_at = self.clock()
        if self.bridge is not None:
            self.bridge.start()
        logger.info("Workout session %s started (%d sets)", self.id, self.total_sets)
        if self.current_set:
            return self._begin_current_set()
        return None

    def process_frame(self, landmarks: Sequence[Optional[Landmark]], timestamp: float) -> FrameOutcome:
        """Run one frame through the current set and route the resulting events."""
        if not self.is_active or self.exercise_session is None:
            raise RuntimeError("No active set. Start a session first.")

        result, events = self.exercise_session.process(landmarks, timestamp)
        set_complete = False
        if result.rep_incremented:
            set_complete = self.current_set.add_rep()
            self.current_set.add_rep_record(
                RepRecord(
                    rep_number=self.current_set.completed_reps,
                    timestamp=timestamp,
                    form_score=result.form_score,
                    errors=[e.type for e in result.errors],
                    similarity=result.rep_similarity,
                )
            )
        for event in events:
            if event.type == FeedbackEventType.FORM_ERROR:
                self.record_mistake(event.payload.error_type)

        actions = [a for a in (self._emit(e) for e in events) if a is not None]
        return FrameOutcome(result=result, events=events, actions=actions, set_complete=set_complete)

    def record_mistake(self, mistake_type: str):
        """Record a mistake for the current set."""
        if self.current_set:
            self.current_set.add_mistake(mistake_type)

    def advance_to_next_set(self) -> Optional[ExerciseSet]:
        """
        Move to the next set in the session.

        Returns:
            The next ExerciseSet, or None if session is complete
        """
        self._end_current_set()
        self.current_set_index += 1

        if self.current_set:
            self._begin_current_set()
            return self.current_set
        else:
            # Session complete
            self.finished_at = self.clock()
            if self.bridge is not None:
                self.bridge.stop()
            logger.info("Workout session %s complete", self.id)
            return None

    def skip_current_set(self) -> Optional[ExerciseSet]:
        """Skip the current set and move to next."""
        return self.advance_to_next_set()

    def rest(self, duration_seconds: float) -> Optional[VoiceAction]:
        exercise = self.current_exercise or "rest"
        return self._emit(
            FeedbackEvent(FeedbackEventType.REST_PERIOD, exercise, RestDetails(duration_seconds), self.clock())
        )

    def report_pain(self, pain_level: int, location: str = "unspecified") -> Optional[VoiceAction]:
        exercise = self.current_exercise or "unknown"
        logger.info("Pain reported: %s/10 (%s)", pain_level, location)
        return self._emit(FeedbackEvent.pain(exercise, pain_level, location, self.clock()))

    def finish(self):
        """End the session early."""
        if self.current_set and self.exercise_session is not None:
            self._end_current_set()
        self.finished_at = self.clock()
        if self.bridge is not None:
            self.bridge.stop()
        logger.info("Workout session %s finished", self.id)

    def get_progress(self) -> Dict[str, Any]:
        """Get current session progress for UI display."""
        return {
            "session_id": self.id,
            "session_name": self.name,
            "is_active": self.is_active,
            "is_complete": self.is_complete,
            "current_set_index": self.current_set_index,
            "total_sets": self.total_sets,
            "completed_sets": self.completed_sets,
            "current_exercise": self.current_exercise,
            "current_set": self.current_set.to_dict() if self.current_set else None,
            "total_reps_completed": self.total_reps_completed,
            "total_reps_target": self.total_reps_target,
            "duration_seconds": self.duration_seconds,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full session data for the summary."""
        return {
            "id": self.id,
            "name": self.name,
            "sets": [s.to_dict() for s in self.sets],
            "current_set_index": self.current_set_index,
            "is_complete": self.is_complete,
            "total_sets": self.total_sets,
            "completed_sets": self.completed_sets,
            "total_reps_completed": self.total_reps_completed,
            "total_reps_target": self.total_reps_target,
            "all_mistakes": self.all_mistakes,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_seconds": self.duration_seconds,
        }


# Convenience function for quick session creation
def create_simple_session(exercise: str, sets: int, reps: int, **kwargs) -> WorkoutSession:
    """
    Create a simple session with repeated sets of the same exercise.

    Example:
        session = create_simple_session("squat", sets=3, reps=10)
        # Creates: 3 sets of 10 squats
    """
    config = [{"exercise": exercise, "reps": reps} for _ in range(sets)]
    return WorkoutSession.from_config(config, name=f"{sets}x{reps} {exercise}", **kwargs)
