"""
Temporal smoothing of pose landmarks.

Each joint/axis runs an independent One Euro filter: the cutoff frequency
rises with the joint's estimated speed, so a held position is smoothed hard
while a fast movement is followed with little lag.
See https://gery.casiez.net/1euro/ for the filter itself.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from kinematics import Landmark

logger = logging.getLogger(__name__)


@dataclass
class OneEuroParams:
    freq: float = 30.0  # nominal frame rate, used when timestamps don't advance
    min_cutoff: float = 1.0  # lower = less jitter, more lag
    beta: float = 0.007  # higher = more responsive to fast movement
    d_cutoff: float = 1.0
    min_visibility: float = 0.5


def _alpha(cutoff: np.ndarray, dt: np.ndarray) -> np.ndarray:
    tau = 1.0 / (2.0 * math.pi * cutoff)
    return 1.0 / (1.0 + tau / dt)


class LandmarkFilter:
    """
    Per-joint One Euro smoothing for a frame of landmarks.

    Usage:
        smoother = LandmarkFilter()
        filtered = smoother.filter(raw_landmarks, timestamp_seconds)
        ...
        smoother.reset()  # on exercise change or camera restart
    """

    def __init__(self, params: Optional[OneEuroParams] = None):
        self.params = params or OneEuroParams()
        self.reset()

    def reset(self):
        """Drop all per-joint motion history."""
        self._value: Optional[np.ndarray] = None  # (N, 3) last filtered position
        self._deriv: Optional[np.ndarray] = None  # (N, 3) smoothed velocity
        self._last_t: Optional[np.ndarray] = None  # (N,) last update time per joint
        self._seen: Optional[np.ndarray] = None  # (N,) joint has a good estimate

    @property
    def is_initialized(self) -> bool:
        return self._value is not None

    def _allocate(self, count: int):
        self._value = np.zeros((count, 3), dtype=float)
        self._deriv = np.zeros((count, 3), dtype=float)
        self._last_t = np.zeros(count, dtype=float)
        self._seen = np.zeros(count, dtype=bool)

    def filter(self, landmarks: Sequence[Optional[Landmark]], timestamp: float) -> List[Landmark]:
        """
        Smooth one frame.

        Args:
            landmarks: raw landmarks, one per joint (entries may be None)
            timestamp: frame time in seconds, expected to increase

        Returns:
            Filtered landmarks with the same length and indexing.
        """
        count = len(landmarks)
        if count == 0:
            return []
        if self._value is None or self._value.shape[0] != count:
            if self._value is not None:
                logger.warning("Landmark count changed (%d -> %d); resetting filter", self._value.shape[0], count)
            self._allocate(count)

        raw = np.zeros((count, 3), dtype=float)
        visibility = np.zeros(count, dtype=float)
        for i, lm in enumerate(landmarks):
            if lm is None:
                raw[i] = np.nan
                continue
            raw[i] = (lm.x, lm.y, lm.z)
            visibility[i] = lm.visibility if np.isfinite(lm.visibility) else 0.0

        finite = np.all(np.isfinite(raw), axis=1)
        good = finite & (visibility >= self.params.min_visibility)

        first = good & ~self._seen
        update = good & self._seen

        # First good sample seeds the filter as-is
        self._value[first] = raw[first]
        self._deriv[first] = 0.0
        self._last_t[first] = timestamp
        self._seen[first] = True

        if np.any(update):
            dt = timestamp - self._last_t[update]
            dt = np.where(dt > 0, dt, 1.0 / self.params.freq)[:, None]
            prev = self._value[update]
            dx = (raw[update] - prev) / dt
            a_d = _alpha(np.full_like(dt, self.params.d_cutoff), dt)
            dx_hat = a_d * dx + (1.0 - a_d) * self._deriv[update]
            cutoff = self.params.min_cutoff + self.params.beta * np.abs(dx_hat)
            a = _alpha(cutoff, dt)
            self._value[update] = a * raw[update] + (1.0 - a) * prev
            self._deriv[update] = dx_hat
            self._last_t[update] = timestamp

        # Held joints report their last good estimate; never-seen joints fall
        # back to the raw value, with non-finite coordinates zeroed.
        out = np.where(self._seen[:, None], self._value, np.nan_to_num(raw, nan=0.0, posinf=0.0, neginf=0.0))

        return [
            Landmark(x=float(out[i, 0]), y=float(out[i, 1]), z=float(out[i, 2]), visibility=float(visibility[i]))
            for i in range(count)
        ]
