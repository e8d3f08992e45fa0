"""
Rep similarity scoring with dynamic time warping.

Compares the primary-metric trace of one completed rep against a reference
pattern (e.g. the thigh angle of a clean squat) and maps the DTW distance to
a 0-100 score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from fastdtw import fastdtw
from scipy.spatial.distance import euclidean

MIN_REP_SAMPLES = 5
MAX_SAMPLES = 20
DTW_RADIUS = MAX_SAMPLES


@dataclass(frozen=True)
class RepComparison:
    score: int
    feedback: str
    distance: float


def dtw_distance(series_a: Sequence[float], series_b: Sequence[float]) -> float:
    """DTW distance with absolute difference as the local cost; inf for an empty series."""
    if len(series_a) == 0 or len(series_b) == 0:
        return float("inf")

    a = np.asarray(series_a, dtype=float).reshape(-1, 1)
    b = np.asarray(series_b, dtype=float).reshape(-1, 1)
    # fastdtw runs the full DTW when either series is shorter than radius + 2
    distance, _ = fastdtw(a, b, radius=DTW_RADIUS, dist=euclidean)
    return float(distance)


def resample(values: Sequence[float], target_length: int) -> np.ndarray:
    """Linearly resample down to target_length; shorter series are returned unchanged."""
    arr = np.asarray(values, dtype=float)
    if arr.size <= target_length:
        return arr
    positions = np.linspace(0, arr.size - 1, target_length)
    return np.interp(positions, np.arange(arr.size), arr)


def compare_rep(rep_values: Sequence[float], reference: Sequence[float], max_distance: float = 300.0) -> RepComparison:
    if len(rep_values) < MIN_REP_SAMPLES:
        return RepComparison(score=0, feedback="Rep too short to analyze", distance=float("inf"))

    distance = dtw_distance(resample(rep_values, MAX_SAMPLES), reference)
    score = int(round(float(np.clip(100.0 - distance / max_distance * 100.0, 0.0, 100.0))))

    if score >= 80:
        feedback = "Excellent form!"
    elif score >= 60:
        feedback = "Good rep!"
    elif score >= 40:
        feedback = "Work on consistency"
    else:
        feedback = "Try to match the movement pattern"

    return RepComparison(score=score, feedback=feedback, distance=distance)
