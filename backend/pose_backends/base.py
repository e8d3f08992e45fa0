"""Common interface for pose-estimation backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from kinematics import Landmark


class PoseEstimator(ABC):
    """Turns one encoded camera frame into a list of landmarks."""

    name: str = "base"
    dimension_hint: str = "2D"

    @abstractmethod
    def estimate(self, image_data_url: str, timestamp_ms: int) -> Optional[List[Landmark]]:
        """
        Run inference on a `data:image/jpeg;base64,...` frame.

        Returns None when no person is detected. Raises on decode or
        inference failure; the caller skips the frame.
        """

    def close(self) -> None:
        """Release resources."""
        return None
