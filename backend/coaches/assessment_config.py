MOVEMENT_TESTS = ("flexion", "extension", "sidebend_left", "sidebend_right")

# Normal lumbar range of motion, in degrees of trunk tilt from vertical
ROM_REFERENCE_RANGES = {
    "flexion": 50.0,  # normal 40-60
    "extension": 25.0,  # normal 20-35
    "sidebend_left": 20.0,  # normal 15-20
    "sidebend_right": 20.0,
}

ASSESSMENT_CONFIG = {
    # Average visibility of shoulders and hips needed to accept a reading
    "min_pose_visibility": 0.5,
    # Joints averaged into the reported confidence
    "confidence_landmarks": [
        "left_shoulder",
        "right_shoulder",
        "left_hip",
        "right_hip",
        "left_knee",
        "right_knee",
    ],
}
