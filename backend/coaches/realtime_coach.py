"""
Realtime Coach - Fast, Rule-Based Phrasing During a Workout

Provides:
1. Short corrections - fixed phrases spoken immediately
2. Context notes - richer text for the voice assistant's next turn, with a
   varied closing instruction so repeated corrections don't sound identical
3. Joint highlighting - which joints the client should draw red

No LLM calls here; everything is table lookups.
"""

import random
from typing import Dict, Iterable, List, Optional

from kinematics import LANDMARK_INDEX

from .feedback_events import EventPriority, FormErrorDetails
from .feedback_phrases import CONTEXT_PHRASINGS, ERROR_PRIORITY, FORM_ERROR_CORRECTIONS, GENERIC_CORRECTION

# Joints to highlight per body part named by a form error
ERROR_JOINTS = {
    "trunk": ["left_shoulder", "right_shoulder", "left_hip", "right_hip"],
    "upper_back": ["left_shoulder", "right_shoulder"],
    "lower_back": ["left_hip", "right_hip"],
    "neck": ["nose", "left_shoulder", "right_shoulder"],
    "hips": ["left_hip", "right_hip"],
    "knees": ["left_knee", "right_knee"],
    "arms": ["left_elbow", "right_elbow", "left_wrist", "right_wrist"],
}


class RealtimeCoach:
    """
    Usage:
        coach = RealtimeCoach()
        text = coach.get_correction("forward_lean")
        note = coach.format_form_error_context(details, "squat")
        joints = coach.get_error_joints(result.errors)
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.last_phrasing: Optional[str] = None

    def get_correction(self, error_type: str) -> str:
        return FORM_ERROR_CORRECTIONS.get(error_type, GENERIC_CORRECTION)

    def get_priority(self, error_type: str, severity: str) -> EventPriority:
        """Base priority for an error; severe errors are always at least HIGH."""
        base = ERROR_PRIORITY.get(error_type, EventPriority.LOW)
        if severity == "severe" and base < EventPriority.HIGH:
            return EventPriority.HIGH
        return base

    def get_phrasing(self) -> str:
        """Pick a closing instruction, never the same one twice in a row."""
        choices = [p for p in CONTEXT_PHRASINGS if p != self.last_phrasing] or CONTEXT_PHRASINGS
        phrasing = self.rng.choice(choices)
        self.last_phrasing = phrasing
        return phrasing

    def format_form_error_context(self, details: FormErrorDetails, exercise_id: str) -> str:
        hint = details.correction or self.get_correction(details.error_type)
        return (
            f"[FORM FEEDBACK NEEDED] Exercise: {exercise_id}. "
            f"Issue detected: {details.error_type} ({details.severity}). "
            f'Suggested correction: "{hint}". {self.get_phrasing()}'
        )

    def get_error_joints(self, errors: Iterable) -> List[int]:
        """Landmark indices to highlight for the given form errors."""
        indices: List[int] = []
        for error in errors:
            for name in ERROR_JOINTS.get(error.body_part, []):
                idx = LANDMARK_INDEX[name]
                if idx not in indices:
                    indices.append(idx)
        return indices

    def reset(self):
        self.last_phrasing = None


def describe_priorities() -> Dict[str, str]:
    """Error type -> priority name, for the catalog endpoint."""
    return {error: priority.name for error, priority in ERROR_PRIORITY.items()}
