"""
Coaching / voice feedback layer

Four components:
1. FeedbackEventBridge - routes feedback events to say / inject_context
2. FormEventDebouncer - per-error cooldowns and occurrence counting
3. RealtimeCoach - fixed corrections, varied context phrasing, joint highlights
4. Voice channels - client-queued or HTTP control-URL output
"""

from .event_debouncer import FormEventDebouncer
from .feedback_events import EventPriority, FeedbackEvent, FeedbackEventType
from .realtime_coach import RealtimeCoach
from .voice_bridge import FeedbackEventBridge, VoiceAction
from .voice_channel import HttpVoiceChannel, QueuedVoiceChannel, VoiceChannel

__all__ = [
    "EventPriority",
    "FeedbackEvent",
    "FeedbackEventBridge",
    "FeedbackEventType",
    "FormEventDebouncer",
    "HttpVoiceChannel",
    "QueuedVoiceChannel",
    "RealtimeCoach",
    "VoiceAction",
    "VoiceChannel",
]
