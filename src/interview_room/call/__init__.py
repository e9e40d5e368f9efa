"""
Call session module: lifecycle of the connection an interview runs over.
"""

from interview_room.call.assistant import AssistantService
from interview_room.call.events import CallEvent, CallEventType, EventBus
from interview_room.call.session_manager import (
    CallSessionManager,
    RealtimeCallSession,
    ScriptedCallSession,
)

__all__ = [
    "AssistantService",
    "CallEvent",
    "CallEventType",
    "CallSessionManager",
    "EventBus",
    "RealtimeCallSession",
    "ScriptedCallSession",
]
