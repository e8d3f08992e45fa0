"""
Camera positioning feedback.

Stateless check of how well the subject is framed, independent of any
exercise logic. Checks run in priority order and the first hit wins:
no person > framing > distance > centering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from kinematics import Landmark, get_landmark

VISIBLE_THRESHOLD = 0.6
EDGE_MARGIN = 0.02
MIN_HEIGHT_RATIO = 0.4
MAX_HEIGHT_RATIO = 0.9
FEET_EXPECTED_HEIGHT_RATIO = 0.6
MAX_CENTER_OFFSET = 0.2


@dataclass(frozen=True)
class CameraFeedback:
    message: str
    type: str  # "warning" | "info" | "success"
    category: str  # "no_person" | "framing" | "distance" | "centering"

    def to_dict(self) -> Dict[str, str]:
        return {"message": self.message, "type": self.type, "category": self.category}


def _visible(lm: Optional[Landmark]) -> bool:
    return lm is not None and lm.visibility > VISIBLE_THRESHOLD


def get_camera_feedback(landmarks: Optional[Sequence[Landmark]]) -> Optional[CameraFeedback]:
    """Return positioning feedback, or None when the subject is well framed."""
    if not landmarks:
        return CameraFeedback("No person detected", "warning", "no_person")

    visible = [lm for lm in landmarks if _visible(lm)]
    if not visible:
        return CameraFeedback("No person detected", "warning", "no_person")

    def lm(name: str) -> Optional[Landmark]:
        return get_landmark(landmarks, name)

    # Framing
    head_visible = _visible(lm("nose")) or (_visible(lm("left_shoulder")) and _visible(lm("right_shoulder")))
    if not head_visible:
        return CameraFeedback("Cannot see head", "warning", "framing")
    if not (_visible(lm("left_hip")) or _visible(lm("right_hip"))):
        return CameraFeedback("Cannot see body", "warning", "framing")

    feet_visible = _visible(lm("left_ankle")) or _visible(lm("right_ankle"))
    ankles = [a for a in (lm("left_ankle"), lm("right_ankle")) if a is not None]

    if _visible(lm("nose")) and lm("nose").y < EDGE_MARGIN:
        return CameraFeedback("Too close to top", "warning", "framing")
    if any(a.y > 1 - EDGE_MARGIN for a in ankles):
        if not feet_visible:
            return CameraFeedback("Cannot see feet", "warning", "framing")
        return CameraFeedback("Too close to bottom", "warning", "framing")
    if any(p.x < EDGE_MARGIN or p.x > 1 - EDGE_MARGIN for p in visible):
        return CameraFeedback("Too close to edge", "warning", "framing")

    # Distance, from the vertical extent of the visible joints
    min_y = min(p.y for p in visible)
    max_y = max(p.y for p in visible)
    height = max_y - min_y
    if height < MIN_HEIGHT_RATIO:
        return CameraFeedback("Too far, move closer", "warning", "distance")
    if height > MAX_HEIGHT_RATIO:
        return CameraFeedback("Too close, move back", "warning", "distance")
    if not feet_visible and height > FEET_EXPECTED_HEIGHT_RATIO:
        return CameraFeedback("Cannot see feet", "warning", "framing")

    # Centering
    center_x = (min(p.x for p in visible) + max(p.x for p in visible)) / 2
    if abs(center_x - 0.5) > MAX_CENTER_OFFSET:
        return CameraFeedback("Move toward the center of the frame", "info", "centering")

    return None
