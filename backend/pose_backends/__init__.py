"""Pose backend registry.

Lets the WebSocket server swap pose-estimation implementations without
touching the transport layer. "client" means the browser runs pose
estimation itself and streams landmarks, so no server-side model is loaded.
Server-side backends are imported on first use, which keeps their heavy
dependencies (MediaPipe, OpenCV) optional.
"""

import importlib
from typing import Dict, Optional

from .base import PoseEstimator

CLIENT_BACKEND = "client"

BACKEND_REGISTRY: Dict[str, Optional[str]] = {
    CLIENT_BACKEND: None,
    "mediapipe_2d": "pose_backends.mediapipe_pose:MediaPipePoseEstimator",
}


def get_available_backends():
    """Return the list of registered backend names."""
    return list(BACKEND_REGISTRY.keys())


def build_pose_backend(name: str) -> Optional[PoseEstimator]:
    """Instantiate a pose backend by registry name (None for client-side pose)."""
    if name not in BACKEND_REGISTRY:
        raise ValueError(
            f"Unknown pose backend '{name}'. "
            f"Available options: {', '.join(get_available_backends())}"
        )
    target = BACKEND_REGISTRY[name]
    if target is None:
        return None
    module_name, class_name = target.split(":")
    backend_cls = getattr(importlib.import_module(module_name), class_name)
    return backend_cls()
