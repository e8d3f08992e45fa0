"""Shared fixtures: synthetic pose frames, a controllable clock, a recording voice channel."""

import math
from typing import Dict, List, Optional, Tuple

import pytest

from coaches.voice_channel import VoiceChannel
from kinematics import LANDMARK_INDEX, Landmark

# Upright, front-facing subject well inside the frame (normalized image coords)
STANDING_POSE: Dict[str, Tuple[float, float]] = {
    "nose": (0.50, 0.12),
    "left_eye_inner": (0.51, 0.11),
    "left_eye": (0.52, 0.11),
    "left_eye_outer": (0.53, 0.11),
    "right_eye_inner": (0.49, 0.11),
    "right_eye": (0.48, 0.11),
    "right_eye_outer": (0.47, 0.11),
    "left_ear": (0.54, 0.12),
    "right_ear": (0.46, 0.12),
    "mouth_left": (0.51, 0.14),
    "mouth_right": (0.49, 0.14),
    "left_shoulder": (0.60, 0.25),
    "right_shoulder": (0.40, 0.25),
    "left_elbow": (0.62, 0.38),
    "right_elbow": (0.38, 0.38),
    "left_wrist": (0.60, 0.50),
    "right_wrist": (0.40, 0.50),
    "left_pinky": (0.61, 0.52),
    "right_pinky": (0.39, 0.52),
    "left_index": (0.60, 0.53),
    "right_index": (0.40, 0.53),
    "left_thumb": (0.59, 0.52),
    "right_thumb": (0.41, 0.52),
    "left_hip": (0.55, 0.52),
    "right_hip": (0.45, 0.52),
    "left_knee": (0.55, 0.70),
    "right_knee": (0.45, 0.70),
    "left_ankle": (0.55, 0.88),
    "right_ankle": (0.45, 0.88),
    "left_heel": (0.55, 0.90),
    "right_heel": (0.45, 0.90),
    "left_foot_index": (0.56, 0.92),
    "right_foot_index": (0.44, 0.92),
}


def make_frame(
    points: Optional[Dict[str, Tuple[float, float]]] = None,
    visibility: float = 0.95,
    visibility_overrides: Optional[Dict[str, float]] = None,
) -> List[Landmark]:
    """33 landmarks in MediaPipe order, starting from STANDING_POSE."""
    layout = dict(STANDING_POSE)
    layout.update(points or {})
    vis = visibility_overrides or {}
    frame: List[Landmark] = [None] * len(LANDMARK_INDEX)
    for name, idx in LANDMARK_INDEX.items():
        x, y = layout[name]
        frame[idx] = Landmark(x=x, y=y, z=0.0, visibility=vis.get(name, visibility))
    return frame


def offset(point: Tuple[float, float], length: float, angle_deg: float) -> Tuple[float, float]:
    """Point `length` away from `point`, `angle_deg` from straight up (positive toward +x)."""
    a = math.radians(angle_deg)
    return (point[0] + length * math.sin(a), point[1] - length * math.cos(a))


def knee_pose(knee_angle: float, visibility: float = 0.95) -> List[Landmark]:
    """Standing frame with both knees bent to `knee_angle` (interior hip-knee-ankle angle)."""
    points = {}
    for side in ("left", "right"):
        knee = STANDING_POSE[f"{side}_knee"]
        # ankle direction measured from "up" so the interior angle equals knee_angle
        points[f"{side}_ankle"] = offset(knee, 0.18, knee_angle)
    return make_frame(points, visibility=visibility)


def squat_pose(thigh_angle: float, trunk_lean: float = 0.0, visibility: float = 0.95) -> List[Landmark]:
    """Side-on squat: thigh tilted `thigh_angle` from vertical, torso leaning `trunk_lean`."""
    points = {}
    for side, dx in (("left", 0.01), ("right", -0.01)):
        knee = (0.50 + dx, 0.70)
        hip = offset(knee, 0.18, thigh_angle)
        shoulder = offset(hip, 0.27, trunk_lean)
        points[f"{side}_knee"] = knee
        points[f"{side}_ankle"] = (0.50 + dx, 0.88)
        points[f"{side}_hip"] = hip
        points[f"{side}_shoulder"] = shoulder
        points[f"{side}_ear"] = offset(shoulder, 0.12, trunk_lean)
    return make_frame(points, visibility=visibility)


def trunk_pose(trunk_angle: float, visibility: float = 0.95) -> List[Landmark]:
    """Hips fixed, shoulders tilted `trunk_angle` degrees from vertical."""
    points = {}
    for side in ("left", "right"):
        hip = STANDING_POSE[f"{side}_hip"]
        points[f"{side}_shoulder"] = offset(hip, 0.27, trunk_angle)
    return make_frame(points, visibility=visibility)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingVoiceChannel(VoiceChannel):
    name = "recording"

    def __init__(self):
        super().__init__()
        self.said: List[str] = []
        self.contexts: List[str] = []

    def say(self, text: str) -> None:
        self.said.append(text)

    def inject_context(self, text: str) -> None:
        self.contexts.append(text)

    @property
    def action_count(self) -> int:
        return len(self.said) + len(self.contexts)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingVoiceChannel()
