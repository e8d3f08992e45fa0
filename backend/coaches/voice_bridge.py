"""
Feedback Event Bridge

Routes structured feedback events to the voice channel:
- HIGH/CRITICAL priority -> channel.say() (immediate, interrupts)
- MEDIUM/LOW priority -> channel.inject_context() (note for the next turn)

Form errors go through the debouncer first; repeated errors escalate to HIGH.
While the assistant is speaking, one context note is held back (newest wins)
and flushed once speech ends. Rep milestones are always spoken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .event_debouncer import FormEventDebouncer
from .feedback_events import (
    EventPriority,
    FeedbackEvent,
    FeedbackEventType,
    FormErrorDetails,
    PainDetails,
    PhaseChangeDetails,
    RepCompleteDetails,
    RestDetails,
    SessionDetails,
)
from .feedback_phrases import (
    GENERIC_CONTEXT,
    PAIN_MODIFY_LEVEL,
    PAIN_MODIFY_PHRASE,
    PAIN_STOP_LEVEL,
    PAIN_STOP_PHRASE,
)
from .realtime_coach import RealtimeCoach
from .voice_channel import VoiceChannel

logger = logging.getLogger(__name__)

ESCALATION_COUNT = 2


@dataclass(frozen=True)
class VoiceAction:
    kind: str  # "say" | "inject_context"
    text: str
    priority: EventPriority
    deferred: bool = False

    def to_dict(self):
        return {"type": self.kind, "text": self.text, "priority": self.priority.name, "deferred": self.deferred}


def _expect(payload, cls):
    if not isinstance(payload, cls):
        raise TypeError(f"expected {cls.__name__}, got {type(payload).__name__}")
    return payload


class FeedbackEventBridge:
    """
    Usage:
        bridge = FeedbackEventBridge(QueuedVoiceChannel())
        bridge.start()
        bridge.handle_event(FeedbackEvent.form_error("squat", "forward_lean"))
        bridge.on_speech_update(False)  # flushes a held context note
    """

    def __init__(
        self,
        channel: VoiceChannel,
        debouncer: Optional[FormEventDebouncer] = None,
        coach: Optional[RealtimeCoach] = None,
    ):
        self.channel = channel
        self.debouncer = debouncer or FormEventDebouncer()
        self.coach = coach or RealtimeCoach()
        self.is_active = False
        self._pending_context: Optional[str] = None
        self._handlers: Dict[FeedbackEventType, Callable[[FeedbackEvent], Optional[VoiceAction]]] = {
            FeedbackEventType.FORM_ERROR: self._handle_form_error,
            FeedbackEventType.REP_COMPLETE: self._handle_rep_complete,
            FeedbackEventType.PHASE_CHANGE: self._handle_phase_change,
            FeedbackEventType.SESSION_START: self._handle_session_start,
            FeedbackEventType.SESSION_END: self._handle_session_end,
            FeedbackEventType.REST_PERIOD: self._handle_rest_period,
            FeedbackEventType.PAIN_INDICATION: self._handle_pain,
        }

    @property
    def pending_context(self) -> Optional[str]:
        return self._pending_context

    def start(self):
        self.is_active = True
        self.debouncer.reset()
        self.coach.reset()
        self._pending_context = None
        logger.info("Feedback bridge started (channel=%s)", self.channel.name)

    def stop(self):
        self.is_active = False
        self._pending_context = None
        logger.info("Feedback bridge stopped")

    def reset_debouncer(self):
        """Call on exercise change."""
        self.debouncer.reset()

    def handle_event(self, event: FeedbackEvent) -> Optional[VoiceAction]:
        """Route one event. Returns the action taken, or None when nothing was sent."""
        if not self.is_active:
            logger.debug("Bridge not active, ignoring %s", getattr(event, "type", event))
            return None
        if not self.channel.is_connected:
            logger.debug("Voice channel not connected, ignoring %s", getattr(event, "type", event))
            return None

        try:
            handler = self._handlers.get(FeedbackEventType(event.type))
        except ValueError:
            handler = None
        if handler is None:
            logger.warning("Unknown feedback event %r; sending generic note", getattr(event, "type", event))
            return self._inject(GENERIC_CONTEXT, EventPriority.LOW)

        try:
            return handler(event)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed %s event (%s); sending generic note", event.type, e)
            return self._inject(GENERIC_CONTEXT, EventPriority.LOW)

    def on_speech_update(self, is_speaking: bool) -> Optional[VoiceAction]:
        """Track assistant speech; flush the held note when speech stops."""
        self.channel.is_speaking = is_speaking
        if not is_speaking:
            return self.flush_pending()
        return None

    def flush_pending(self) -> Optional[VoiceAction]:
        if self._pending_context is None or self.channel.is_speaking:
            return None
        text, self._pending_context = self._pending_context, None
        self.channel.inject_context(text)
        logger.debug("[CONTEXT flushed] %s", text)
        return VoiceAction("inject_context", text, EventPriority.LOW)

    def _say(self, text: str, priority: EventPriority) -> VoiceAction:
        self.channel.say(text)
        logger.debug("[SAY] %s", text)
        return VoiceAction("say", text, priority)

    def _inject(self, text: str, priority: EventPriority) -> VoiceAction:
        if self.channel.is_speaking:
            if self._pending_context is not None:
                logger.debug("Replacing held context note")
            self._pending_context = text
            return VoiceAction("inject_context", text, priority, deferred=True)
        self.channel.inject_context(text)
        logger.debug("[CONTEXT] %s", text)
        return VoiceAction("inject_context", text, priority)

    def _handle_form_error(self, event: FeedbackEvent) -> Optional[VoiceAction]:
        details = _expect(event.payload, FormErrorDetails)
        exercise_id, error_type = event.exercise_id, details.error_type

        if not self.debouncer.should_send(exercise_id, error_type):
            self.debouncer.record_suppressed(exercise_id, error_type)
            logger.debug("Debounced: %s/%s", exercise_id, error_type)
            return None

        occurrences = self.debouncer.get_occurrence_count(exercise_id, error_type)
        priority = self.coach.get_priority(error_type, details.severity)
        if occurrences >= ESCALATION_COUNT and priority < EventPriority.HIGH:
            priority = EventPriority.HIGH
        self.debouncer.record_sent(exercise_id, error_type)

        if priority >= EventPriority.HIGH:
            return self._say(self.coach.get_correction(error_type), priority)
        return self._inject(self.coach.format_form_error_context(details, exercise_id), priority)

    def _handle_rep_complete(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, RepCompleteDetails)
        rep, target = details.rep_number, details.target_reps
        if rep == target:
            return self._say(f"That's {rep}! Great set.", EventPriority.HIGH)
        if target >= 2 and rep == target // 2:
            return self._say(f"Nice, that's {rep}. Halfway there.", EventPriority.HIGH)
        return self._inject(
            f"[REP COMPLETED] Rep {rep}/{target}. Form score: {details.form_score}%.", EventPriority.LOW
        )

    def _handle_phase_change(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, PhaseChangeDetails)
        return self._inject(f"[PHASE CHANGE] Now in {details.new_phase} phase.", EventPriority.LOW)

    def _handle_session_start(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, SessionDetails)
        return self._inject(
            f"[EXERCISE START] Starting {details.exercise_name}. Provide brief introduction and first instruction.",
            EventPriority.LOW,
        )

    def _handle_session_end(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, SessionDetails)
        total = details.total_reps if details.total_reps is not None else "N/A"
        score = details.average_form_score if details.average_form_score is not None else "N/A"
        duration = round(details.duration_seconds) if details.duration_seconds else "N/A"
        return self._inject(
            f"[SESSION COMPLETE] Exercise: {details.exercise_name}. Total reps: {total}. "
            f"Average form score: {score}%. Duration: {duration} seconds. Provide warm closing summary.",
            EventPriority.LOW,
        )

    def _handle_rest_period(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, RestDetails)
        return self._inject(
            f"[REST PERIOD] User is resting for {round(details.duration_seconds)} seconds. You can be more "
            "conversational, ask how they're feeling, or prepare them for the next set.",
            EventPriority.LOW,
        )

    def _handle_pain(self, event: FeedbackEvent) -> VoiceAction:
        details = _expect(event.payload, PainDetails)
        level = int(details.pain_level)
        if level >= PAIN_STOP_LEVEL:
            return self._say(PAIN_STOP_PHRASE, EventPriority.CRITICAL)
        if level >= PAIN_MODIFY_LEVEL:
            return self._say(PAIN_MODIFY_PHRASE, EventPriority.HIGH)
        return self._inject(
            f"[PAIN REPORTED] User reported {level}/10 pain in {details.location}. "
            "Acknowledge and offer to modify or rest.",
            EventPriority.MEDIUM,
        )
