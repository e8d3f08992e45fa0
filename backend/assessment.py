"""
Range-of-motion capture for clinical movement tests.

A small state machine, separate from rep counting:

    idle --start_movement_test(test)--> capturing(test)
    capturing(test) --stop_movement_test()--> idle

While capturing, only the active test's maximum angle is updated, and only
upward. Maxima survive stop/start; reset_rom_state() is the only way to zero
them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

from coaches.assessment_config import ASSESSMENT_CONFIG, MOVEMENT_TESTS, ROM_REFERENCE_RANGES
from kinematics import CORE_LANDMARKS, Landmark, angle_from_vertical, average_visibility, clamp, get_landmark, midpoint

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    # .5 rounds up, not to even
    return int(math.floor(value + 0.5))


IDLE = "idle"


@dataclass
class AssessmentMovementState:
    current_test: str = IDLE
    max_flexion_angle: float = 0.0
    max_extension_angle: float = 0.0
    max_side_bend_left_angle: float = 0.0
    max_side_bend_right_angle: float = 0.0
    is_capturing: bool = False

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class MovementReading:
    """Trunk angles for one frame. Positive trunk = forward, positive lateral = right."""

    trunk_angle: float
    lateral_angle: float
    is_valid_pose: bool = True
    confidence: int = 100


# test -> (state field, extractor from a reading)
_TEST_FIELDS = {
    "flexion": ("max_flexion_angle", lambda r: r.trunk_angle),
    "extension": ("max_extension_angle", lambda r: abs(min(0.0, r.trunk_angle))),
    "sidebend_left": ("max_side_bend_left_angle", lambda r: abs(min(0.0, r.lateral_angle))),
    "sidebend_right": ("max_side_bend_right_angle", lambda r: max(0.0, r.lateral_angle)),
}


class AssessmentMovementAnalyzer:
    """
    One instance per assessment.

    Usage:
        analyzer = AssessmentMovementAnalyzer()
        analyzer.start_movement_test("flexion")
        for frame in frames:
            analyzer.process_frame(frame)
        analyzer.stop_movement_test()
        results = analyzer.get_rom_results()
    """

    def __init__(self, reference_ranges: Optional[Dict[str, float]] = None):
        self.reference_ranges = dict(reference_ranges or ROM_REFERENCE_RANGES)
        self.state = AssessmentMovementState()

    def start_movement_test(self, test: str) -> AssessmentMovementState:
        if test not in MOVEMENT_TESTS:
            raise ValueError(f"Unknown movement test '{test}'. Valid: {', '.join(MOVEMENT_TESTS)}")
        if self.state.is_capturing and self.state.current_test != test:
            logger.info("Switching movement test %s -> %s", self.state.current_test, test)
        self.state.current_test = test
        self.state.is_capturing = True
        return self.state

    def stop_movement_test(self) -> AssessmentMovementState:
        self.state.current_test = IDLE
        self.state.is_capturing = False
        return self.state

    def reset_rom_state(self) -> AssessmentMovementState:
        self.state = AssessmentMovementState()
        return self.state

    def analyze_frame(self, landmarks: Sequence[Landmark]) -> MovementReading:
        """Measure trunk tilt in the sagittal and frontal planes."""
        confidence = _round_half_up(clamp(
            average_visibility(landmarks, ASSESSMENT_CONFIG["confidence_landmarks"]) * 100.0, 0.0, 100.0
        ))
        if average_visibility(landmarks, CORE_LANDMARKS) <= ASSESSMENT_CONFIG["min_pose_visibility"]:
            return MovementReading(0.0, 0.0, is_valid_pose=False, confidence=confidence)

        shoulder = midpoint(get_landmark(landmarks, "left_shoulder"), get_landmark(landmarks, "right_shoulder"))
        hip = midpoint(get_landmark(landmarks, "left_hip"), get_landmark(landmarks, "right_hip"))
        # Same hip -> shoulder vector; the test decides which plane it is read in
        angle = angle_from_vertical(hip, shoulder)
        return MovementReading(trunk_angle=angle, lateral_angle=angle, is_valid_pose=True, confidence=confidence)

    def update(self, reading: MovementReading) -> AssessmentMovementState:
        if not self.state.is_capturing or not reading.is_valid_pose:
            return self.state
        field_name, extract = _TEST_FIELDS[self.state.current_test]
        value = extract(reading)
        if value > getattr(self.state, field_name):
            setattr(self.state, field_name, value)
        return self.state

    def process_frame(self, landmarks: Sequence[Landmark]) -> MovementReading:
        reading = self.analyze_frame(landmarks)
        self.update(reading)
        return reading

    def get_rom_results(self) -> Dict[str, Dict[str, int]]:
        results = {}
        for test in MOVEMENT_TESTS:
            field_name, _ = _TEST_FIELDS[test]
            angle = getattr(self.state, field_name)
            results[test] = {
                "angle": _round_half_up(angle),
                "percent_of_normal": _round_half_up(angle / self.reference_ranges[test] * 100),
            }
        return results
