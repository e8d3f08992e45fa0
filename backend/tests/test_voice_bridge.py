"""
Tests for the feedback event bridge and voice channels.

Run with: pytest tests/test_voice_bridge.py -v
"""

import random

import pytest
import requests

from coaches.event_debouncer import FormEventDebouncer
from coaches.feedback_events import (
    EventPriority,
    FeedbackEvent,
    FeedbackEventType,
    PainDetails,
    RestDetails,
    SessionDetails,
)
from coaches.feedback_phrases import GENERIC_CONTEXT, GENERIC_CORRECTION, PAIN_MODIFY_PHRASE, PAIN_STOP_PHRASE
from coaches.realtime_coach import RealtimeCoach
from coaches.voice_bridge import FeedbackEventBridge
from coaches.voice_channel import HttpVoiceChannel, QueuedVoiceChannel


@pytest.fixture
def bridge(channel, clock):
    debouncer = FormEventDebouncer(cooldown_s=3.0, initial_debounce_s=0.0, clock=clock)
    b = FeedbackEventBridge(channel, debouncer=debouncer, coach=RealtimeCoach(rng=random.Random(0)))
    b.start()
    return b


# ============================================================================
# Form errors: debounce and escalation
# ============================================================================

def test_repeated_error_is_debounced_then_escalated(bridge, channel, clock):
    first = bridge.handle_event(FeedbackEvent.form_error("squat", "hip_shift"))
    assert first.kind == "inject_context"
    assert first.priority == EventPriority.MEDIUM
    assert channel.contexts[0].startswith(
        '[FORM FEEDBACK NEEDED] Exercise: squat. Issue detected: hip_shift (moderate). '
        'Suggested correction: "Keep your hips stacked over your knees".'
    )

    clock.advance(1.0)
    assert bridge.handle_event(FeedbackEvent.form_error("squat", "hip_shift")) is None
    assert channel.action_count == 1

    clock.advance(2.5)
    third = bridge.handle_event(FeedbackEvent.form_error("squat", "hip_shift"))
    assert third.kind == "say"
    assert third.priority == EventPriority.HIGH
    assert channel.said == ["Keep your hips stacked over your knees"]
    assert channel.action_count == 2


def test_escalation_never_bypasses_cooldown(bridge, channel, clock):
    for _ in range(5):
        bridge.handle_event(FeedbackEvent.form_error("squat", "hip_shift"))
        clock.advance(0.5)
    assert channel.action_count == 1


def test_high_priority_error_is_spoken(bridge, channel):
    action = bridge.handle_event(FeedbackEvent.form_error("squat", "forward_lean"))
    assert action.kind == "say"
    assert channel.said == ["Keep your chest up"]


def test_unknown_error_uses_generic_correction(bridge, channel):
    bridge.handle_event(FeedbackEvent.form_error("squat", "elbow_flare"))
    assert GENERIC_CORRECTION in channel.contexts[0]

    bridge.handle_event(FeedbackEvent.form_error("squat", "wrist_drop", severity="severe"))
    assert channel.said == [GENERIC_CORRECTION]


def test_initial_debounce_blocks_corrections(channel, clock):
    debouncer = FormEventDebouncer(initial_debounce_s=0.5, clock=clock)
    b = FeedbackEventBridge(channel, debouncer=debouncer)
    b.start()
    assert b.handle_event(FeedbackEvent.form_error("squat", "forward_lean")) is None
    clock.advance(0.6)
    assert b.handle_event(FeedbackEvent.form_error("squat", "forward_lean")) is not None


# ============================================================================
# Speaking state
# ============================================================================

def test_context_held_while_speaking_newest_wins(bridge, channel):
    bridge.on_speech_update(True)
    held = bridge.handle_event(FeedbackEvent.phase_change("squat", "standing", "descending"))
    assert held.deferred
    bridge.handle_event(FeedbackEvent.phase_change("squat", "descending", "bottom"))
    assert channel.contexts == []
    assert bridge.pending_context == "[PHASE CHANGE] Now in bottom phase."

    flushed = bridge.on_speech_update(False)
    assert flushed.text == "[PHASE CHANGE] Now in bottom phase."
    assert channel.contexts == ["[PHASE CHANGE] Now in bottom phase."]

    # flushed exactly once
    assert bridge.flush_pending() is None
    assert bridge.on_speech_update(False) is None
    assert len(channel.contexts) == 1


def test_say_is_not_held_while_speaking(bridge, channel):
    bridge.on_speech_update(True)
    bridge.handle_event(FeedbackEvent.pain("squat", 8))
    assert channel.said == [PAIN_STOP_PHRASE]


# ============================================================================
# Reps, sessions, rest
# ============================================================================

@pytest.mark.parametrize(
    "rep, target, kind, text",
    [
        (10, 10, "say", "That's 10! Great set."),
        (5, 10, "say", "Nice, that's 5. Halfway there."),
        (3, 10, "inject_context", "[REP COMPLETED] Rep 3/10. Form score: 90%."),
        (1, 1, "say", "That's 1! Great set."),
    ],
)
def test_rep_milestones(bridge, channel, rep, target, kind, text):
    action = bridge.handle_event(FeedbackEvent.rep_complete("squat", rep, target, 90))
    assert action.kind == kind
    assert action.text == text


def test_session_and_rest_notes(bridge, channel):
    bridge.handle_event(FeedbackEvent(FeedbackEventType.SESSION_START, "squat", SessionDetails("squat", "Squat")))
    bridge.handle_event(FeedbackEvent(
        FeedbackEventType.SESSION_END, "squat",
        SessionDetails("squat", "Squat", total_reps=10, average_form_score=88, duration_seconds=61.6),
    ))
    bridge.handle_event(FeedbackEvent(FeedbackEventType.REST_PERIOD, "squat", RestDetails(45)))

    start, end, rest = channel.contexts
    assert start.startswith("[EXERCISE START] Starting Squat.")
    assert "Total reps: 10. Average form score: 88%. Duration: 62 seconds." in end
    assert rest.startswith("[REST PERIOD] User is resting for 45 seconds.")


# ============================================================================
# Pain
# ============================================================================

@pytest.mark.parametrize(
    "level, priority, text",
    [(8, EventPriority.CRITICAL, PAIN_STOP_PHRASE), (7, EventPriority.CRITICAL, PAIN_STOP_PHRASE),
     (5, EventPriority.HIGH, PAIN_MODIFY_PHRASE)],
)
def test_pain_is_spoken(bridge, channel, level, priority, text):
    action = bridge.handle_event(FeedbackEvent.pain("squat", level, "lower back"))
    assert action.kind == "say"
    assert action.priority == priority
    assert channel.said == [text]


def test_mild_pain_becomes_context(bridge, channel):
    action = bridge.handle_event(FeedbackEvent.pain("squat", 2, "lower back"))
    assert action.priority == EventPriority.MEDIUM
    assert channel.contexts[0].startswith("[PAIN REPORTED] User reported 2/10 pain in lower back.")


# ============================================================================
# Robustness
# ============================================================================

def test_unknown_event_type_gets_generic_note(bridge, channel):
    action = bridge.handle_event(FeedbackEvent("MYSTERY", "squat", RestDetails(1)))
    assert action.text == GENERIC_CONTEXT
    assert channel.contexts == [GENERIC_CONTEXT]


def test_mismatched_payload_gets_generic_note(bridge, channel):
    bridge.handle_event(FeedbackEvent(FeedbackEventType.REP_COMPLETE, "squat", PainDetails(3)))
    assert channel.contexts == [GENERIC_CONTEXT]


def test_inactive_bridge_does_nothing(channel):
    b = FeedbackEventBridge(channel)
    assert b.handle_event(FeedbackEvent.pain("squat", 9)) is None
    assert channel.action_count == 0


def test_disconnected_channel_does_nothing(bridge, channel):
    channel.is_connected = False
    assert bridge.handle_event(FeedbackEvent.pain("squat", 9)) is None
    assert channel.action_count == 0


def test_stop_drops_held_context(bridge, channel):
    bridge.on_speech_update(True)
    bridge.handle_event(FeedbackEvent.phase_change("squat", "standing", "descending"))
    bridge.stop()
    assert bridge.pending_context is None
    assert bridge.handle_event(FeedbackEvent.pain("squat", 9)) is None


# ============================================================================
# Channels
# ============================================================================

def test_queued_channel_drains_in_order():
    queued = QueuedVoiceChannel()
    queued.say("one")
    queued.inject_context("two")
    assert queued.drain() == [{"type": "say", "text": "one"}, {"type": "inject_context", "text": "two"}]
    assert queued.drain() == []


class _FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class _FakeSession:
    def __init__(self, fail_with=None, status_code=200):
        self.calls = []
        self.fail_with = fail_with
        self.status_code = status_code
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.fail_with is not None:
            raise self.fail_with
        return _FakeResponse(self.status_code)

    def close(self):
        self.closed = True


def test_http_channel_payloads():
    session = _FakeSession()
    http = HttpVoiceChannel("http://voice.local/control", timeout=1.5, session=session)
    http.say("Keep your chest up")
    http.inject_context("[PHASE CHANGE] Now in bottom phase.")
    http.close()

    (url, say_body, timeout), (_, note_body, _) = session.calls
    assert url == "http://voice.local/control"
    assert timeout == 1.5
    assert say_body == {"type": "say", "content": "Keep your chest up"}
    assert note_body == {
        "type": "add-message",
        "message": {"role": "system", "content": "[PHASE CHANGE] Now in bottom phase."},
        "triggerResponseEnabled": False,
    }
    assert session.closed


@pytest.mark.parametrize(
    "session",
    [_FakeSession(fail_with=requests.ConnectionError("refused")), _FakeSession(status_code=500)],
)
def test_http_channel_failures_are_logged_not_raised(session, caplog):
    http = HttpVoiceChannel("http://voice.local/control", session=session)
    http.say("hello")
    assert "Voice control call failed" in caplog.text
