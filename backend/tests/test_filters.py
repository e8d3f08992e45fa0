import math

import numpy as np
import pytest

from conftest import make_frame
from filters import LandmarkFilter, OneEuroParams
from kinematics import Landmark

FPS = 30.0


def _xy(frame):
    return np.array([[lm.x, lm.y] for lm in frame])


def test_output_has_same_shape_and_indexing():
    smoother = LandmarkFilter()
    frame = make_frame()
    out = smoother.filter(frame, 0.0)
    assert len(out) == len(frame)
    assert np.allclose(_xy(out), _xy(frame))


def test_constant_input_converges_without_bias():
    smoother = LandmarkFilter()
    start = make_frame({"left_wrist": (0.20, 0.20)})
    target = make_frame({"left_wrist": (0.70, 0.60)})

    smoother.filter(start, 0.0)
    out = None
    for i in range(1, 300):
        out = smoother.filter(target, i / FPS)

    assert np.allclose(_xy(out), _xy(target), atol=1e-4)


def test_jitter_is_smoothed():
    smoother = LandmarkFilter()
    base = make_frame()
    smoother.filter(base, 0.0)
    jittered = make_frame({"nose": (0.52, 0.12)})
    out = smoother.filter(jittered, 1 / FPS)
    # a small jump is only partially followed
    assert 0.50 < out[0].x < 0.52


def test_low_visibility_joint_holds_last_good_estimate():
    smoother = LandmarkFilter(OneEuroParams(min_visibility=0.5))
    smoother.filter(make_frame(), 0.0)

    noisy = make_frame({"left_knee": (0.95, 0.05)}, visibility_overrides={"left_knee": 0.1})
    out = smoother.filter(noisy, 1 / FPS)

    knee = out[25]
    assert (knee.x, knee.y) == pytest.approx((0.55, 0.70))
    assert knee.visibility == pytest.approx(0.1)  # visibility is passed through


def test_missing_and_non_finite_landmarks_never_produce_nan():
    smoother = LandmarkFilter()
    frame = make_frame()
    frame[0] = None
    frame[5] = Landmark(math.nan, math.inf, 0.0, 0.9)
    frame[7] = Landmark(0.5, 0.5, 0.0, math.nan)

    for i in range(5):
        out = smoother.filter(frame, i / FPS)
        coords = np.array([[lm.x, lm.y, lm.z, lm.visibility] for lm in out])
        assert np.all(np.isfinite(coords))


def test_non_increasing_timestamp_uses_nominal_interval():
    smoother = LandmarkFilter()
    smoother.filter(make_frame(), 1.0)
    out = smoother.filter(make_frame({"nose": (0.6, 0.12)}), 1.0)
    assert np.isfinite(out[0].x)
    assert 0.5 < out[0].x < 0.6


def test_reset_clears_motion_history():
    smoother = LandmarkFilter()
    smoother.filter(make_frame(), 0.0)
    assert smoother.is_initialized

    smoother.reset()
    assert not smoother.is_initialized

    moved = make_frame({"nose": (0.9, 0.9)})
    out = smoother.filter(moved, 5.0)
    # first sample after reset is taken as-is, no memory of the old position
    assert (out[0].x, out[0].y) == pytest.approx((0.9, 0.9))


def test_landmark_count_change_reallocates():
    smoother = LandmarkFilter()
    smoother.filter(make_frame(), 0.0)
    out = smoother.filter(make_frame()[:17], 1 / FPS)
    assert len(out) == 17


def test_empty_frame():
    assert LandmarkFilter().filter([], 0.0) == []
