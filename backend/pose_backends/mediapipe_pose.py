"""
MediaPipe-based 2D pose estimator.

Decodes a JPEG data URL with OpenCV and runs MediaPipe Pose in video mode,
returning the 33 MediaPipe landmarks with visibility.
"""

from __future__ import annotations

import base64
import logging
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from kinematics import Landmark
from .base import PoseEstimator

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


def decode_data_url(data: str) -> np.ndarray:
    """Decode a JPEG data URL into a BGR frame."""
    if not data.startswith(DATA_URL_PREFIX):
        raise ValueError("Malformed frame: expected a JPEG data URL")
    _, encoded = data.split(",", 1)
    img_data = base64.b64decode(encoded)
    nparr = np.frombuffer(img_data, np.uint8)
    frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError("Decoded frame is None")
    return frame


class MediaPipePoseEstimator(PoseEstimator):
    """Thin wrapper around MediaPipe Pose for 2D landmark extraction."""

    name = "mediapipe_2d"
    dimension_hint = "2D"

    def __init__(
        self,
        min_detection_confidence: float = 0.7,
        min_tracking_confidence: float = 0.7,
        model_complexity: int = 1,
    ):
        self.mp_pose = mp.solutions.pose
        self.pose = self.mp_pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def estimate(self, image_data_url: str, timestamp_ms: int) -> Optional[List[Landmark]]:
        frame_bgr = decode_data_url(image_data_url)
        image_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.pose.process(image_rgb)
        if not results.pose_landmarks:
            logger.debug("No pose detected at %d ms", timestamp_ms)
            return None
        return [
            Landmark(
                x=float(lm.x),
                y=float(lm.y),
                z=float(lm.z),
                visibility=float(getattr(lm, "visibility", 0.0)),
            )
            for lm in results.pose_landmarks.landmark
        ]

    def close(self) -> None:
        self.pose.close()
