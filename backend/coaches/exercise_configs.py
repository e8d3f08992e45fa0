"""
Exercise catalog for the form engine.

Each entry is plain data interpreted by form_engine.ExerciseConfig:

    phases / initial_phase   named stages of one repetition
    metrics                  angle formulas over landmark names; "mid_<joint>"
                             is the midpoint of left_<joint> and right_<joint>
    transitions              from -> to when a metric goes below/above a
                             threshold; counts_rep marks the rep-completing edge
    checks                   per-phase error checks (bound, symmetry, orientation)
    rep_checks               checked once per rep against the metric peak
    reference_pattern        optional DTW template for rep similarity

Thresholds are empirically tuned starting points, expected to be adjusted per
deployment.
"""

# Thigh angle of a clean bodyweight squat sampled over one rep (degrees from vertical)
SQUAT_REFERENCE_PATTERN = [33, 60, 78, 90, 96, 91, 80, 64, 43, 26]

EXERCISE_CONFIGS = {
    "squat": {
        "name": "Squat",
        "phases": ["standing", "descending", "bottom", "ascending"],
        "initial_phase": "standing",
        "metrics": {
            "thigh_angle": {"type": "vertical_angle", "points": ["mid_knee", "mid_hip"]},
            "trunk_lean": {"type": "vertical_angle", "points": ["mid_hip", "mid_shoulder"]},
            "shin_angle": {"type": "vertical_angle", "points": ["mid_ankle", "mid_knee"]},
            "neck_angle": {"type": "joint_angle", "points": ["mid_ear", "mid_shoulder", "mid_hip"]},
        },
        "transitions": [
            {"from": "standing", "to": "descending", "metric": "thigh_angle", "above": 25},
            {"from": "descending", "to": "bottom", "metric": "thigh_angle", "above": 55},
            {"from": "descending", "to": "standing", "metric": "thigh_angle", "below": 15},
            {"from": "bottom", "to": "ascending", "metric": "thigh_angle", "below": 50},
            {"from": "ascending", "to": "bottom", "metric": "thigh_angle", "above": 55},
            {"from": "ascending", "to": "standing", "metric": "thigh_angle", "below": 15, "counts_rep": True},
        ],
        "checks": {
            "descending": [
                {"error": "forward_lean", "metric": "trunk_lean", "max": 60, "severity": "warning",
                 "body_part": "trunk", "message": "Keep your chest up"},
            ],
            "bottom": [
                {"error": "forward_lean", "metric": "trunk_lean", "max": 60, "severity": "warning",
                 "body_part": "trunk", "message": "Keep your chest up"},
                {"error": "knee_over_toe", "metric": "shin_angle", "max": 45, "severity": "warning",
                 "body_part": "knees", "message": "Sit back, keep your knees behind your toes"},
                {"error": "upper_back_rounding", "metric": "neck_angle", "min": 120, "severity": "info",
                 "body_part": "upper_back", "message": "Keep your head in line with your spine"},
            ],
            "ascending": [
                {"error": "forward_lean", "metric": "trunk_lean", "max": 60, "severity": "warning",
                 "body_part": "trunk", "message": "Keep your chest up"},
            ],
        },
        "rep_checks": [
            {"error": "insufficient_depth", "metric": "thigh_angle", "peak": "max", "min": 70,
             "severity": "info", "body_part": "hips", "message": "Try to sit a little deeper"},
        ],
        "phase_cues": {
            "descending": "Sit back and down",
            "bottom": "Good depth, drive up",
            "ascending": "Stand up tall",
        },
        "reference_pattern": {"metric": "thigh_angle", "values": SQUAT_REFERENCE_PATTERN},
        "min_rep_interval_s": 1.0,
    },
    "romanian_deadlift": {
        "name": "Romanian Deadlift",
        "phases": ["standing", "hinging", "bottom"],
        "initial_phase": "standing",
        "metrics": {
            "trunk_lean": {"type": "vertical_angle", "points": ["mid_hip", "mid_shoulder"]},
            "knee_angle": {"type": "joint_angle", "points": ["mid_hip", "mid_knee", "mid_ankle"]},
            "neck_angle": {"type": "joint_angle", "points": ["mid_ear", "mid_shoulder", "mid_hip"]},
        },
        "transitions": [
            {"from": "standing", "to": "hinging", "metric": "trunk_lean", "above": 25},
            {"from": "hinging", "to": "bottom", "metric": "trunk_lean", "above": 60},
            {"from": "hinging", "to": "standing", "metric": "trunk_lean", "below": 15, "counts_rep": True},
            {"from": "bottom", "to": "hinging", "metric": "trunk_lean", "below": 55},
        ],
        "checks": {
            "hinging": [
                {"error": "knee_bend", "metric": "knee_angle", "min": 130, "severity": "warning",
                 "body_part": "knees", "message": "Keep a soft knee, don't squat it"},
                {"error": "neck_alignment", "metric": "neck_angle", "min": 140, "severity": "info",
                 "body_part": "neck", "message": "Keep your neck neutral"},
            ],
            "bottom": [
                {"error": "knee_bend", "metric": "knee_angle", "min": 130, "severity": "warning",
                 "body_part": "knees", "message": "Keep a soft knee, don't squat it"},
                {"error": "neck_alignment", "metric": "neck_angle", "min": 140, "severity": "info",
                 "body_part": "neck", "message": "Keep your neck neutral"},
            ],
        },
        "rep_checks": [
            {"error": "insufficient_hinge", "metric": "trunk_lean", "peak": "max", "min": 45,
             "severity": "info", "body_part": "hips", "message": "Push your hips further back"},
        ],
        "phase_cues": {
            "hinging": "Hips back, flat back",
            "bottom": "Squeeze your glutes to stand",
        },
        "min_rep_interval_s": 1.5,
    },
    "cat_camel": {
        "name": "Cat-Camel",
        "phases": ["neutral", "cat", "camel"],
        "initial_phase": "neutral",
        "metrics": {
            "spine_curve": {"type": "vertical_offset", "points": ["mid_shoulder", "mid_hip"]},
            "hip_angle": {"type": "joint_angle", "points": ["mid_shoulder", "mid_hip", "mid_knee"]},
        },
        "transitions": [
            {"from": "neutral", "to": "cat", "metric": "spine_curve", "above": 0.1},
            {"from": "neutral", "to": "camel", "metric": "spine_curve", "below": -0.1},
            {"from": "cat", "to": "camel", "metric": "spine_curve", "below": -0.1, "counts_rep": True},
            {"from": "camel", "to": "cat", "metric": "spine_curve", "above": 0.1},
        ],
        "checks": {
            "cat": [
                {"error": "hip_shift", "metric": "hip_angle", "min": 60, "max": 130, "severity": "warning",
                 "body_part": "hips", "message": "Keep your hips stacked over your knees"},
            ],
            "camel": [
                {"error": "hip_shift", "metric": "hip_angle", "min": 60, "max": 130, "severity": "warning",
                 "body_part": "hips", "message": "Keep your hips stacked over your knees"},
            ],
        },
        "phase_cues": {
            "cat": "Round your back up toward the ceiling",
            "camel": "Let your belly sink and lift your head",
        },
        "min_rep_interval_s": 1.5,
    },
    "cobra_stretch": {
        "name": "Cobra Stretch",
        "phases": ["prone", "lifting", "hold", "lowering"],
        "initial_phase": "prone",
        "metrics": {
            "chest_lift": {"type": "vertical_offset", "points": ["mid_hip", "mid_shoulder"]},
            "left_elbow_angle": {"type": "joint_angle", "points": ["left_shoulder", "left_elbow", "left_wrist"]},
            "right_elbow_angle": {"type": "joint_angle", "points": ["right_shoulder", "right_elbow", "right_wrist"]},
        },
        "transitions": [
            {"from": "prone", "to": "lifting", "metric": "chest_lift", "above": 0.1},
            {"from": "lifting", "to": "hold", "metric": "chest_lift", "above": 0.3},
            {"from": "lifting", "to": "prone", "metric": "chest_lift", "below": 0.05},
            {"from": "hold", "to": "lowering", "metric": "chest_lift", "below": 0.25},
            {"from": "lowering", "to": "hold", "metric": "chest_lift", "above": 0.3},
            {"from": "lowering", "to": "prone", "metric": "chest_lift", "below": 0.05, "counts_rep": True},
        ],
        "checks": {
            "hold": [
                {"error": "overextension", "metric": "chest_lift", "max": 0.45, "severity": "warning",
                 "body_part": "lower_back", "message": "Don't push too high, keep it comfortable"},
                {"error": "arm_asymmetry", "type": "symmetry",
                 "metrics": ["left_elbow_angle", "right_elbow_angle"], "max_difference": 25,
                 "severity": "info", "body_part": "arms", "message": "Press evenly through both hands"},
            ],
        },
        "phase_cues": {
            "lifting": "Press up slowly",
            "hold": "Hold and breathe",
            "lowering": "Lower with control",
        },
        "min_rep_interval_s": 2.0,
    },
    "standing_lumbar_flexion": {
        "name": "Standing Lumbar Flexion",
        "phases": ["upright", "flexed"],
        "initial_phase": "upright",
        "metrics": {
            "hip_angle": {"type": "joint_angle", "points": ["mid_shoulder", "mid_hip", "mid_knee"]},
            "knee_angle": {"type": "joint_angle", "points": ["mid_hip", "mid_knee", "mid_ankle"]},
        },
        "transitions": [
            {"from": "upright", "to": "flexed", "metric": "hip_angle", "below": 110},
            {"from": "flexed", "to": "upright", "metric": "hip_angle", "above": 160, "counts_rep": True},
        ],
        "checks": {
            "flexed": [
                {"error": "knee_bend", "metric": "knee_angle", "min": 140, "severity": "info",
                 "body_part": "knees", "message": "Keep your legs straight"},
                {"error": "wrong_orientation", "type": "orientation", "facing": "side", "severity": "info",
                 "body_part": "body", "message": "Turn to face the side"},
            ],
        },
        "phase_cues": {
            "flexed": "Reach down only as far as is comfortable",
            "upright": "Roll back up slowly",
        },
        "min_rep_interval_s": 2.0,
    },
    "standing_side_bend": {
        "name": "Standing Side Bend",
        "phases": ["neutral", "bend_left", "return_left", "bend_right"],
        "initial_phase": "neutral",
        "metrics": {
            "lateral_angle": {"type": "vertical_angle", "points": ["mid_hip", "mid_shoulder"], "signed": True},
        },
        "transitions": [
            {"from": "neutral", "to": "bend_left", "metric": "lateral_angle", "below": -12},
            {"from": "bend_left", "to": "return_left", "metric": "lateral_angle", "above": -4},
            {"from": "return_left", "to": "bend_right", "metric": "lateral_angle", "above": 12},
            {"from": "bend_right", "to": "neutral", "metric": "lateral_angle", "below": 4, "counts_rep": True},
        ],
        "checks": {
            "bend_left": [
                {"error": "wrong_orientation", "type": "orientation", "facing": "front", "severity": "info",
                 "body_part": "body", "message": "Turn to face forward"},
            ],
            "bend_right": [
                {"error": "wrong_orientation", "type": "orientation", "facing": "front", "severity": "info",
                 "body_part": "body", "message": "Turn to face forward"},
            ],
        },
        "phase_cues": {
            "neutral": "Bend to your left first",
            "return_left": "Now bend to the right",
        },
        "min_rep_interval_s": 2.0,
    },
}
