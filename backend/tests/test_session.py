"""
Tests for ExerciseSession / WorkoutSession.

Frames go through the landmark filter, so poses are held for a number of
frames to let the smoothed angles settle before the next movement.
"""

import pytest

from coaches.event_debouncer import FormEventDebouncer
from coaches.feedback_events import FeedbackEventType
from coaches.voice_bridge import FeedbackEventBridge
from conftest import squat_pose
from form_engine import ExerciseConfigError
from session import ExerciseSession, WorkoutSession, create_simple_session

FPS = 30.0
HOLD = 20


class FrameFeed:
    """Feeds held poses at a fixed frame rate into a session-like `process` callable."""

    def __init__(self, process, start: float = 0.0):
        self.process = process
        self.ts = start
        self.outputs = []

    def hold(self, frame, frames: int = HOLD):
        for _ in range(frames):
            self.outputs.append(self.process(frame, self.ts))
            self.ts += 1 / FPS
        return self.outputs[-frames:]

    def squat(self, reps: int = 1, trunk_lean: float = 0.0):
        for _ in range(reps):
            self.hold(squat_pose(90, trunk_lean=trunk_lean))
            self.hold(squat_pose(5))


def _event_types(events):
    return [e.type for e in events]


@pytest.fixture
def bridge(channel, clock):
    return FeedbackEventBridge(channel, debouncer=FormEventDebouncer(initial_debounce_s=0.0, clock=clock))


# ============================================================================
# ExerciseSession
# ============================================================================

def test_exercise_session_emits_phase_and_rep_events():
    session = ExerciseSession("squat", target_reps=5)
    feed = FrameFeed(session.process)
    feed.hold(squat_pose(5))
    feed.squat(reps=2)

    events = [e for _, frame_events in feed.outputs for e in frame_events]
    phases = [e.payload.new_phase for e in events if e.type == FeedbackEventType.PHASE_CHANGE]
    assert phases == ["descending", "bottom", "ascending", "standing"] * 2

    reps = [e.payload for e in events if e.type == FeedbackEventType.REP_COMPLETE]
    assert [r.rep_number for r in reps] == [1, 2]
    assert all(r.target_reps == 5 for r in reps)
    assert session.engine.rep_count == 2


def test_form_error_reported_on_onset_only():
    session = ExerciseSession("squat", target_reps=5)
    feed = FrameFeed(session.process)
    feed.hold(squat_pose(5))
    feed.hold(squat_pose(90, trunk_lean=70), frames=30)
    # an invalid frame in the middle does not re-arm the error
    feed.hold(squat_pose(90, trunk_lean=70, visibility=0.2), frames=1)
    feed.hold(squat_pose(90, trunk_lean=70), frames=10)

    form_errors = [e for _, events in feed.outputs for e in events if e.type == FeedbackEventType.FORM_ERROR]
    assert [e.payload.error_type for e in form_errors] == ["forward_lean"]
    assert form_errors[0].payload.severity == "moderate"
    assert form_errors[0].payload.body_part == "trunk"

    # correcting and repeating the mistake is a new onset
    feed.hold(squat_pose(90), frames=30)
    feed.hold(squat_pose(90, trunk_lean=70), frames=30)
    form_errors = [e for _, events in feed.outputs for e in events if e.type == FeedbackEventType.FORM_ERROR]
    assert len(form_errors) == 2


def test_exercise_session_reset():
    session = ExerciseSession("squat", target_reps=5)
    feed = FrameFeed(session.process)
    feed.hold(squat_pose(5))
    feed.squat()
    session.reset()
    assert session.engine.rep_count == 0
    assert session.engine.phase == "standing"
    assert not session.filter.is_initialized
    assert session.last_result is None


# ============================================================================
# WorkoutSession
# ============================================================================

def test_from_config_validation():
    with pytest.raises(ValueError, match="No sets"):
        WorkoutSession.from_config([])
    with pytest.raises(ValueError, match="positive rep target"):
        WorkoutSession.from_config([{"exercise": "squat", "reps": 0}])
    with pytest.raises(ExerciseConfigError, match="Unknown exercise"):
        WorkoutSession.from_config([{"exercise": "squat", "reps": 5}, {"exercise": "burpee", "reps": 5}])


def test_frames_before_start_are_rejected():
    session = create_simple_session("squat", sets=1, reps=2)
    with pytest.raises(RuntimeError, match="No active set"):
        session.process_frame(squat_pose(5), 0.0)


def test_full_set_with_voice_milestones(bridge, channel, clock):
    session = WorkoutSession.from_config([{"exercise": "squat", "reps": 2}], bridge=bridge, clock=clock)
    session.start()
    assert channel.contexts[0].startswith("[EXERCISE START] Starting Squat.")

    feed = FrameFeed(session.process_frame)
    feed.hold(squat_pose(5))
    feed.squat(reps=2)

    reps = [o for o in feed.outputs if o.result.rep_incremented]
    assert len(reps) == 2
    assert [o.set_complete for o in reps] == [False, True]
    assert channel.said == ["Nice, that's 1. Halfway there.", "That's 2! Great set."]

    current = session.current_set
    assert current.completed_reps == 2
    assert [r.rep_number for r in current.rep_records] == [1, 2]
    assert current.average_form_score == 100
    assert current.mistakes == {}


def test_mistakes_are_counted_per_onset(bridge, channel, clock):
    session = WorkoutSession.from_config([{"exercise": "squat", "reps": 5}], bridge=bridge, clock=clock)
    session.start()
    feed = FrameFeed(session.process_frame)
    feed.hold(squat_pose(5))
    feed.hold(squat_pose(90, trunk_lean=70), frames=30)

    assert session.current_set.mistakes == {"forward_lean": 1}
    assert channel.said == ["Keep your chest up"]


def test_advancing_through_sets(bridge, channel, clock):
    session = WorkoutSession.from_config(
        [{"exercise": "squat", "reps": 1}, {"exercise": "cat_camel", "reps": 3}], bridge=bridge, clock=clock
    )
    session.start()
    clock.advance(30)

    next_set = session.advance_to_next_set()
    assert next_set.exercise == "cat_camel"
    assert session.exercise_session.exercise_id == "cat_camel"
    assert session.sets[0].duration_seconds == pytest.approx(30)
    assert any(c.startswith("[SESSION COMPLETE] Exercise: Squat.") for c in channel.contexts)
    assert channel.contexts[-1].startswith("[EXERCISE START] Starting Cat-Camel.")

    assert session.advance_to_next_set() is None
    assert session.is_complete
    assert not session.is_active
    assert not bridge.is_active


def test_rest_and_pain_go_through_bridge(bridge, channel, clock):
    session = create_simple_session("squat", sets=2, reps=5, bridge=bridge, clock=clock)
    session.start()
    session.rest(45)
    session.report_pain(8, "lower back")
    assert channel.contexts[-1].startswith("[REST PERIOD] User is resting for 45 seconds.")
    assert channel.said == ["Let's stop there. Please rest and don't push through that pain."]


def test_finish_early_and_summary(bridge, channel, clock):
    session = create_simple_session("squat", sets=3, reps=10, bridge=bridge, clock=clock)
    assert session.name == "3x10 squat"
    session.start()
    clock.advance(12)
    session.finish()

    assert not session.is_active
    assert session.duration_seconds == pytest.approx(12)
    assert channel.contexts[-1].startswith("[SESSION COMPLETE] Exercise: Squat. Total reps: 0.")

    summary = session.to_dict()
    assert summary["total_sets"] == 3
    assert summary["total_reps_target"] == 30
    assert summary["completed_sets"] == 0

    progress = session.get_progress()
    assert progress["current_exercise"] == "squat"
    assert progress["current_set"]["remaining_reps"] == 10
