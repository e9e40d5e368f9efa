"""
Pydantic schemas for the orchestrator module.

Defines data models for transcript turns, session status and the handoff
payload produced when an interview finishes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class Speaker(str, Enum):
    """Who produced a turn."""

    INTERVIEWER = "interviewer"
    CANDIDATE = "candidate"


class SessionStatus(str, Enum):
    """States of the turn-taking state machine."""

    IDLE = "idle"
    CONNECTING = "connecting"
    GREETING = "greeting"
    ASKING = "asking"
    LISTENING = "listening"
    PROCESSING = "processing"
    RESPONDING = "responding"
    COMPLETED = "completed"
    ERROR = "error"


class Turn(BaseModel):
    """One recorded utterance. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker = Field(..., description="Who spoke")
    text: str = Field(..., description="Transcribed or synthesized content")
    timestamp: datetime = Field(default_factory=_now_utc, description="When the turn was recorded")
    confidence: int | None = Field(
        default=None,
        ge=0,
        le=100,
        description="Recognition confidence, only for candidate turns produced by speech recognition",
    )
    question_index: int | None = Field(
        default=None,
        description="Index of the question this turn asks or answers, if any",
    )


class AssistantConfig(BaseModel):
    """What a call session needs to start talking to the candidate."""

    candidate_name: str = Field(..., description="Candidate display name")
    questions: list[str] = Field(default_factory=list, description="Ordered interview questions")
    job_description: str = Field(default="", description="Job description text")
    assistant_id: str | None = Field(
        default=None,
        description="Remote assistant identifier (required by live call sessions)",
    )
    language: str = Field(default="en-US", description="Interview language")


class StatusChange(BaseModel):
    """Notification sent to observers whenever the session changes."""

    status: SessionStatus
    previous: SessionStatus
    question_index: int
    error_message: str | None = None
    turn: Turn | None = None


class InterviewHandoff(BaseModel):
    """Read-only result handed to the evaluation collaborator."""

    session_id: str = Field(..., description="Interview session identifier")
    candidate_name: str = Field(..., description="Candidate display name")
    job_description: str = Field(default="", description="Passed through for report generation")
    questions: list[str] = Field(default_factory=list, description="Passed through for report generation")
    conversation_history: list[Turn] = Field(default_factory=list, description="Ledger in append order")
    low_confidence_turns: list[int] = Field(
        default_factory=list,
        description="Indices into conversation_history of candidate turns below the confidence threshold",
    )
    duration: float = Field(..., ge=0, description="Interview duration in seconds")
    end_reason: str = Field(default="completed", description="Why the interview ended")
    started_at: datetime | None = Field(default=None, description="When the call reported started")
    completed_at: datetime = Field(default_factory=_now_utc, description="When the interview completed")

    def to_payload(self) -> dict[str, Any]:
        """Shape expected by the evaluation endpoint."""
        return {
            "sessionId": self.session_id,
            "candidateName": self.candidate_name,
            "jobDescription": self.job_description,
            "questions": list(self.questions),
            "conversationHistory": [
                {
                    "role": "user" if t.speaker == Speaker.CANDIDATE else "assistant",
                    "text": t.text,
                    "timestamp": t.timestamp.isoformat(),
                    "confidence": t.confidence,
                }
                for t in self.conversation_history
            ],
            "lowConfidenceTurns": list(self.low_confidence_turns),
            "duration": self.duration,
        }
