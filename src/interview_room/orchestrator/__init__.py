"""
Orchestrator module for managing interview flow and coordination.

Import `InterviewOrchestrator` from `interview_room.orchestrator.interview_orchestrator`.
"""

from interview_room.orchestrator.evaluation import EvaluationClient
from interview_room.orchestrator.interview_state import PRE_GREETING_INDEX, InterviewSession
from interview_room.orchestrator.ledger import TranscriptLedger
from interview_room.orchestrator.questions import QuestionSet, QuestionSupplier, generic_questions
from interview_room.orchestrator.schemas import (
    AssistantConfig,
    InterviewHandoff,
    SessionStatus,
    Speaker,
    StatusChange,
    Turn,
)
from interview_room.orchestrator.timers import DurationTracker, SilenceTimeout

__all__ = [
    "AssistantConfig",
    "DurationTracker",
    "EvaluationClient",
    "InterviewHandoff",
    "InterviewSession",
    "PRE_GREETING_INDEX",
    "QuestionSet",
    "QuestionSupplier",
    "SessionStatus",
    "SilenceTimeout",
    "Speaker",
    "StatusChange",
    "TranscriptLedger",
    "Turn",
    "generic_questions",
]
