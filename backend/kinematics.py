"""
Kinematic utilities for the form coach.

Implements:
- Landmark representation and the MediaPipe Pose index convention
- Midpoints, joint angles and angles against the vertical axis
- Visibility aggregation and a simple facing (front/side) heuristic

Coordinates are normalized image coordinates: x grows to the right,
y grows downward.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

import numpy as np


# MediaPipe Pose landmark indices
LANDMARK_INDEX: Dict[str, int] = {
    "nose": 0,
    "left_eye_inner": 1,
    "left_eye": 2,
    "left_eye_outer": 3,
    "right_eye_inner": 4,
    "right_eye": 5,
    "right_eye_outer": 6,
    "left_ear": 7,
    "right_ear": 8,
    "mouth_left": 9,
    "mouth_right": 10,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_pinky": 17,
    "right_pinky": 18,
    "left_index": 19,
    "right_index": 20,
    "left_thumb": 21,
    "right_thumb": 22,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
    "left_heel": 29,
    "right_heel": 30,
    "left_foot_index": 31,
    "right_foot_index": 32,
}

LANDMARK_COUNT = len(LANDMARK_INDEX)

CORE_LANDMARKS = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")


@dataclass(frozen=True)
class Landmark:
    """A single tracked joint with its detection visibility."""

    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Landmark":
        return cls(
            x=float(d["x"]),
            y=float(d["y"]),
            z=float(d.get("z", 0.0) or 0.0),
            visibility=float(d.get("visibility", 0.0) or 0.0),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}

    def as_array(self, use_z: bool = False) -> np.ndarray:
        if use_z:
            return np.array([self.x, self.y, self.z], dtype=float)
        return np.array([self.x, self.y], dtype=float)


def landmarks_from_dicts(items: Iterable[Mapping[str, Any]]) -> list:
    """Convert a JSON-style list of landmark dicts into Landmarks."""
    return [Landmark.from_dict(item) for item in items]


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def midpoint(a: Landmark, b: Landmark) -> Landmark:
    return Landmark(
        x=(a.x + b.x) / 2,
        y=(a.y + b.y) / 2,
        z=(a.z + b.z) / 2,
        visibility=(a.visibility + b.visibility) / 2,
    )


def distance_2d(a: Landmark, b: Landmark) -> float:
    return float(np.hypot(a.x - b.x, a.y - b.y))


def angle_at(a: Landmark, b: Landmark, c: Landmark, use_z: bool = False) -> float:
    """Interior angle at joint b formed by a-b-c, in degrees (0..180)."""
    ba = a.as_array(use_z) - b.as_array(use_z)
    bc = c.as_array(use_z) - b.as_array(use_z)
    norm_ba = np.linalg.norm(ba)
    norm_bc = np.linalg.norm(bc)
    if norm_ba < 1e-9 or norm_bc < 1e-9:
        return 0.0
    cosine = np.dot(ba, bc) / (norm_ba * norm_bc)
    return float(np.degrees(np.arccos(np.clip(cosine, -1.0, 1.0))))


def angle_from_vertical(point_a: Landmark, point_b: Landmark) -> float:
    """
    Signed angle of the vector point_a -> point_b against the upward vertical.

    0 means point_b sits straight above point_a. Positive angles lean toward
    +x, negative toward -x. Used for trunk lean (hip -> shoulder) and limb
    segment angles.
    """
    dx = point_b.x - point_a.x
    dy = point_b.y - point_a.y
    if abs(dx) < 1e-9 and abs(dy) < 1e-9:
        return 0.0
    # Image y points down, so "up" is -dy
    return float(np.degrees(np.arctan2(dx, -dy)))


def get_landmark(landmarks: Sequence[Optional[Landmark]], name: str) -> Optional[Landmark]:
    idx = LANDMARK_INDEX[name]
    if idx >= len(landmarks):
        return None
    return landmarks[idx]


def average_visibility(landmarks: Sequence[Optional[Landmark]], names: Iterable[str]) -> float:
    """Mean visibility over the named joints; missing joints count as 0."""
    names = list(names)
    if not names:
        return 0.0
    total = 0.0
    for name in names:
        lm = get_landmark(landmarks, name)
        if lm is not None and np.isfinite(lm.visibility):
            total += lm.visibility
    return total / len(names)


def check_orientation(landmarks: Sequence[Landmark], desired: str) -> Optional[str]:
    """
    Compare shoulder width with torso height to guess which way the subject faces.

    Returns a corrective message, or None when the facing matches `desired`
    ("front" or "side").
    """
    left_shoulder = get_landmark(landmarks, "left_shoulder")
    right_shoulder = get_landmark(landmarks, "right_shoulder")
    left_hip = get_landmark(landmarks, "left_hip")
    right_hip = get_landmark(landmarks, "right_hip")
    if None in (left_shoulder, right_shoulder, left_hip, right_hip):
        return None

    shoulder_width = distance_2d(left_shoulder, right_shoulder)
    torso_height = distance_2d(midpoint(left_shoulder, right_shoulder), midpoint(left_hip, right_hip)) or 1.0
    ratio = shoulder_width / torso_height

    if desired == "side" and ratio > 0.6:
        return "Turn to face the side"
    if desired == "front" and ratio < 0.5:
        return "Turn to face forward"
    return None
