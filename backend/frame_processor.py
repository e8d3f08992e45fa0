"""
Per-connection frame pipeline.

One FrameProcessor per websocket client. It owns the workout session (or the
ROM assessment), the voice bridge and the pose estimator, and turns each
incoming message into at most one outgoing payload:

    frame -> timestamp clamp -> pose inference -> session / (smoothing -> assessment)
          -> throttled analysis payload (+ unthrottled reps and voice actions)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from assessment import AssessmentMovementAnalyzer
from camera_feedback import get_camera_feedback
from coaches import FeedbackEventBridge, FormEventDebouncer, QueuedVoiceChannel, RealtimeCoach, VoiceChannel
from filters import LandmarkFilter
from kinematics import Landmark, landmarks_from_dicts
from pose_backends.base import PoseEstimator
from session import WorkoutSession, create_simple_session

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_MS = 500

MODE_IDLE = "idle"
MODE_WORKOUT = "workout"
MODE_ASSESSMENT = "assessment"


class FrameProcessor:
    """
    Usage:
        processor = FrameProcessor(estimator_factory=lambda: build_pose_backend("mediapipe_2d"))
        reply = processor.handle_command({"command": "start_session", "sets": [...]})
        payload = processor.handle_frame({"landmarks": [...], "ts": 1712.5})
    """

    def __init__(
        self,
        estimator_factory: Optional[Callable[[], Optional[PoseEstimator]]] = None,
        channel: Optional[VoiceChannel] = None,
        throttle_ms: int = DEFAULT_THROTTLE_MS,
        voice_cooldown_s: float = 3.0,
        clock: Callable[[], float] = time.time,
    ):
        self.estimator_factory = estimator_factory
        self._estimator: Optional[PoseEstimator] = None
        self.channel = channel or QueuedVoiceChannel()
        self.bridge = FeedbackEventBridge(
            self.channel,
            debouncer=FormEventDebouncer(cooldown_s=voice_cooldown_s, clock=clock),
            coach=RealtimeCoach(),
        )
        self.throttle_ms = throttle_ms
        self.clock = clock
        self.mode = MODE_IDLE
        self.session: Optional[WorkoutSession] = None
        self.assessment: Optional[AssessmentMovementAnalyzer] = None
        self.assessment_filter = LandmarkFilter()
        self._last_ts_ms: Optional[int] = None
        self._last_emit_ms: Optional[int] = None

    # ------------------------------------------------------------------ frames

    def next_timestamp(self, client_ts: Optional[float] = None) -> int:
        """Strictly increasing frame timestamp in ms: max(now, previous + 1)."""
        now_ms = int(client_ts) if client_ts is not None else int(self.clock() * 1000)
        if self._last_ts_ms is not None:
            now_ms = max(now_ms, self._last_ts_ms + 1)
        self._last_ts_ms = now_ms
        return now_ms

    def _estimator_or_build(self) -> PoseEstimator:
        if self._estimator is None:
            if self.estimator_factory is None:
                raise RuntimeError("No server-side pose backend configured; send landmarks instead")
            self._estimator = self.estimator_factory()
            if self._estimator is None:
                raise RuntimeError("Pose backend is client-side; send landmarks instead")
        return self._estimator

    def _infer(self, message: Dict[str, Any], ts_ms: int) -> Optional[List[Landmark]]:
        if "landmarks" in message:
            return landmarks_from_dicts(message["landmarks"] or [])
        return self._estimator_or_build().estimate(message["frame"], ts_ms) or []

    def handle_frame(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Process one frame message; None means nothing to send for this frame."""
        client_ts = message.get("ts")
        ts_ms = self.next_timestamp(client_ts)

        try:
            landmarks = self._infer(message, ts_ms)
        except Exception as e:
            logger.warning("Skipping frame at %d ms: %s", ts_ms, e)
            return None

        camera = get_camera_feedback(landmarks)
        timestamp = ts_ms / 1000.0

        if self.mode == MODE_WORKOUT and self.session is not None and self.session.exercise_session is not None:
            payload, urgent = self._workout_frame(landmarks, timestamp)
        elif self.mode == MODE_ASSESSMENT and self.assessment is not None:
            reading = self.assessment.process_frame(self.assessment_filter.filter(landmarks, timestamp))
            payload = {
                "event": "assessment",
                "reading": {
                    "trunk_angle": round(reading.trunk_angle, 1),
                    "lateral_angle": round(reading.lateral_angle, 1),
                    "is_valid_pose": reading.is_valid_pose,
                    "confidence": reading.confidence,
                },
                "state": self.assessment.state.to_dict(),
            }
            urgent = False
        else:
            payload, urgent = {"event": "camera"}, False

        if not urgent and not self._throttle_elapsed(ts_ms):
            return None
        self._last_emit_ms = ts_ms
        payload["camera"] = camera.to_dict() if camera else None
        if client_ts is not None:
            payload["client_ts"] = client_ts
        return payload

    def _throttle_elapsed(self, ts_ms: int) -> bool:
        return self._last_emit_ms is None or ts_ms - self._last_emit_ms >= self.throttle_ms

    def _workout_frame(self, landmarks: List[Landmark], timestamp: float):
        outcome = self.session.process_frame(landmarks, timestamp)
        result = outcome.result
        payload: Dict[str, Any] = {
            "event": "analysis",
            "exercise": self.session.current_exercise,
            "analysis": result.to_dict(),
            "error_joints": self.bridge.coach.get_error_joints(result.errors),
            "set_complete": outcome.set_complete,
        }
        actions = self._drain_voice()
        if actions:
            payload["voice_actions"] = actions
        if result.rep_incremented:
            payload["progress"] = self.session.get_progress()
        urgent = result.rep_incremented or outcome.set_complete or bool(actions)
        return payload, urgent

    def _drain_voice(self) -> List[Dict[str, str]]:
        if isinstance(self.channel, QueuedVoiceChannel):
            return self.channel.drain()
        return []

    def _with_voice(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        actions = self._drain_voice()
        if actions:
            payload["voice_actions"] = actions
        return payload

    # ---------------------------------------------------------------- commands

    def handle_command(self, command_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        command = command_data.get("command")
        handler = getattr(self, f"_cmd_{command}", None) if isinstance(command, str) else None
        if handler is None:
            return {"event": "error", "message": f"Unknown command '{command}'"}
        try:
            return handler(command_data)
        except (KeyError, RuntimeError, TypeError, ValueError) as e:
            logger.warning("Command %s failed: %s", command, e)
            return self._with_voice({"event": "error", "command": command, "message": str(e)})

    def _require_session(self) -> WorkoutSession:
        if self.session is None or not self.session.is_active:
            raise RuntimeError("No active session. Start a session first.")
        return self.session

    def _require_assessment(self) -> AssessmentMovementAnalyzer:
        if self.assessment is None:
            raise RuntimeError("No active assessment. Send start_assessment first.")
        return self.assessment

    def _cmd_start_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        # {"command": "start_session", "sets": [{"exercise": "squat", "reps": 10}], "name": "Rehab"}
        # or {"command": "start_session", "exercise": "squat", "sets": 3, "reps": 10}
        if self.session is not None and self.session.is_active:
            self.session.finish()
        sets = data.get("sets")
        if isinstance(sets, list):
            session = WorkoutSession.from_config(
                sets, name=data.get("name", "Workout"), bridge=self.bridge, clock=self.clock
            )
        else:
            session = create_simple_session(
                data["exercise"], sets=int(sets or 1), reps=int(data.get("reps", 10)),
                bridge=self.bridge, clock=self.clock,
            )
        self.session = session
        self.mode = MODE_WORKOUT
        self._last_emit_ms = None
        session.start()
        return self._with_voice(
            {"event": "session_started", "session": session.to_dict(), "progress": session.get_progress()}
        )

    def _cmd_next_set(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session = self._require_session()
        next_set = session.advance_to_next_set()
        event = "set_started" if next_set else "session_complete"
        if next_set is None:
            self.mode = MODE_IDLE
        return self._with_voice({"event": event, "session": session.to_dict(), "progress": session.get_progress()})

    def _cmd_skip_set(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._cmd_next_set(data)

    def _cmd_get_session_progress(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.session is None:
            return {"event": "session_progress", "active": False, "progress": None}
        return {"event": "session_progress", "active": self.session.is_active, "progress": self.session.get_progress()}

    def _cmd_finish_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session = self._require_session()
        session.finish()
        self.mode = MODE_IDLE
        summary = session.to_dict()
        self.session = None
        return self._with_voice({"event": "session_ended", "session": summary})

    def _cmd_speech_update(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        status = data.get("status")
        if status not in ("started", "stopped"):
            raise ValueError(f"speech_update status must be 'started' or 'stopped', got {status!r}")
        self.bridge.on_speech_update(status == "started")
        actions = self._drain_voice()
        if actions:
            return {"event": "voice", "voice_actions": actions}
        return None

    def _cmd_report_pain(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session = self._require_session()
        level = int(data["level"])
        if not 0 <= level <= 10:
            raise ValueError(f"Pain level must be within 0-10, got {level}")
        session.report_pain(level, data.get("location", "unspecified"))
        return self._with_voice({"event": "pain_recorded", "level": level})

    def _cmd_rest(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session = self._require_session()
        duration = float(data.get("duration", 60))
        session.rest(duration)
        return self._with_voice({"event": "rest_started", "duration": duration})

    def _cmd_start_assessment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.assessment = AssessmentMovementAnalyzer()
        self.assessment_filter.reset()
        self.mode = MODE_ASSESSMENT
        self._last_emit_ms = None
        logger.info("ROM assessment started")
        return {"event": "assessment_started", "state": self.assessment.state.to_dict()}

    def _cmd_start_movement_test(self, data: Dict[str, Any]) -> Dict[str, Any]:
        state = self._require_assessment().start_movement_test(data.get("test"))
        self.assessment_filter.reset()
        self.mode = MODE_ASSESSMENT
        return {"event": "movement_test_started", "state": state.to_dict()}

    def _cmd_stop_movement_test(self, data: Dict[str, Any]) -> Dict[str, Any]:
        state = self._require_assessment().stop_movement_test()
        return {"event": "movement_test_stopped", "state": state.to_dict()}

    def _cmd_reset_rom(self, data: Dict[str, Any]) -> Dict[str, Any]:
        state = self._require_assessment().reset_rom_state()
        self.assessment_filter.reset()
        return {"event": "rom_reset", "state": state.to_dict()}

    def _cmd_rom_results(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"event": "rom_results", "results": self._require_assessment().get_rom_results()}

    def close(self):
        if self.session is not None and self.session.is_active:
            self.session.finish()
        if self._estimator is not None:
            self._estimator.close()
        self.channel.close()
