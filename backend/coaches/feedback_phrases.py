from .feedback_events import EventPriority

GENERIC_CORRECTION = "Adjust your form slightly"

# Short phrases spoken immediately for high-priority corrections
FORM_ERROR_CORRECTIONS = {
    "forward_lean": "Keep your chest up",
    "knee_over_toe": "Sit back, keep your knees behind your toes",
    "upper_back_rounding": "Keep your head in line with your spine",
    "insufficient_depth": "Try to sit a little deeper",
    "knee_bend": "Keep your legs a little straighter",
    "neck_alignment": "Keep your neck neutral",
    "insufficient_hinge": "Push your hips further back",
    "hip_shift": "Keep your hips stacked over your knees",
    "overextension": "Don't push too high, keep it comfortable",
    "arm_asymmetry": "Press evenly through both hands",
    "wrong_orientation": "Turn so I can see you clearly",
}

ERROR_PRIORITY = {
    "forward_lean": EventPriority.HIGH,
    "knee_over_toe": EventPriority.MEDIUM,
    "upper_back_rounding": EventPriority.MEDIUM,
    "insufficient_depth": EventPriority.LOW,
    "knee_bend": EventPriority.LOW,
    "neck_alignment": EventPriority.LOW,
    "insufficient_hinge": EventPriority.LOW,
    "hip_shift": EventPriority.MEDIUM,
    "overextension": EventPriority.HIGH,
    "arm_asymmetry": EventPriority.LOW,
    "wrong_orientation": EventPriority.LOW,
}

# Closing instruction appended to context notes so repeated corrections vary
CONTEXT_PHRASINGS = [
    "Provide a brief, encouraging correction.",
    "Give one short, friendly cue.",
    "Correct this gently in a few words.",
    "Mention this briefly and keep the energy up.",
    "Offer a quick tip without breaking their rhythm.",
]

PAIN_STOP_LEVEL = 7
PAIN_MODIFY_LEVEL = 4
PAIN_STOP_PHRASE = "Let's stop there. Please rest and don't push through that pain."
PAIN_MODIFY_PHRASE = "Take a moment. We can modify this or take a break."

GENERIC_CONTEXT = "[COACH NOTE] Something changed in the user's exercise. Check in briefly if appropriate."
