"""
Interview session state.

Holds everything one interview attempt knows about itself: identity, the
fixed question list, the current position in it, status and the ledger.
Only the orchestrator mutates it.
"""

from datetime import datetime, timezone

from interview_room.orchestrator.ledger import TranscriptLedger
from interview_room.orchestrator.schemas import SessionStatus, Speaker, Turn

PRE_GREETING_INDEX = -1


class InterviewSession:
    """
    Mutable state of one interview attempt.

    ``current_question_index`` is -1 before the first question, 0..N-1 while a
    question is being asked or answered, and N once every question has been
    answered.
    """

    def __init__(
        self,
        session_id: str,
        candidate_name: str,
        questions: list[str] | tuple[str, ...],
        job_description: str = "",
    ) -> None:
        """
        Initialize session state.

        Args:
            session_id: Opaque session identifier.
            candidate_name: Candidate display name.
            questions: Ordered questions, fixed for the life of the session.
            job_description: Job description, passed through to evaluation.
        """
        self._session_id = session_id
        self._candidate_name = candidate_name
        self._questions: tuple[str, ...] = tuple(questions)
        self._job_description = job_description
        self._current_question_index: int = PRE_GREETING_INDEX
        self._status: SessionStatus = SessionStatus.IDLE
        self._started_at: datetime | None = None
        self._ledger = TranscriptLedger()
        self._error_message: str | None = None
        self._end_reason: str | None = None

    @property
    def session_id(self) -> str:
        """Get the session identifier."""
        return self._session_id

    @property
    def candidate_name(self) -> str:
        """Get the candidate name."""
        return self._candidate_name

    @property
    def questions(self) -> tuple[str, ...]:
        """Get the question list."""
        return self._questions

    @property
    def job_description(self) -> str:
        return self._job_description

    @property
    def current_question_index(self) -> int:
        """Get the index of the question being asked or answered."""
        return self._current_question_index

    @property
    def current_question(self) -> str | None:
        """Get the current question text, if the index points at one."""
        if 0 <= self._current_question_index < len(self._questions):
            return self._questions[self._current_question_index]
        return None

    @property
    def status(self) -> SessionStatus:
        """Get the current status."""
        return self._status

    @property
    def started_at(self) -> datetime | None:
        """When the call reported started."""
        return self._started_at

    @property
    def ledger(self) -> TranscriptLedger:
        """Get the transcript ledger."""
        return self._ledger

    @property
    def error_message(self) -> str | None:
        """Current user-visible error banner, if any."""
        return self._error_message

    @property
    def end_reason(self) -> str | None:
        return self._end_reason

    @property
    def is_complete(self) -> bool:
        """Check if the session reached its terminal state."""
        return self._status == SessionStatus.COMPLETED

    @property
    def has_more_questions(self) -> bool:
        """Check whether a question follows the current one."""
        return self._current_question_index + 1 < len(self._questions)

    def set_status(self, status: SessionStatus) -> SessionStatus:
        """
        Change status.

        Returns:
            The previous status.
        """
        previous = self._status
        self._status = status
        return previous

    def mark_started(self) -> None:
        """Record the moment the call reported started (first report wins)."""
        if self._started_at is None:
            self._started_at = datetime.now(timezone.utc)

    def advance_question(self) -> int:
        """
        Move to the next question.

        Returns:
            The new question index.

        Raises:
            RuntimeError: If no question is left.
        """
        if not self.has_more_questions:
            raise RuntimeError("No questions left to advance to.")
        self._current_question_index += 1
        return self._current_question_index

    def mark_all_answered(self) -> None:
        """Move the index past the last question."""
        self._current_question_index = len(self._questions)

    def set_error(self, message: str | None) -> None:
        self._error_message = message

    def set_end_reason(self, reason: str) -> None:
        if self._end_reason is None:
            self._end_reason = reason

    def add_turn(
        self,
        speaker: Speaker,
        text: str,
        *,
        confidence: int | None = None,
        question_index: int | None = None,
    ) -> Turn:
        """
        Append a new turn to the ledger.

        Args:
            speaker: Who spoke.
            text: What was said.
            confidence: Recognition confidence for candidate turns.
            question_index: Question the turn belongs to.

        Returns:
            The recorded Turn.
        """
        turn = Turn(
            speaker=speaker,
            text=text,
            confidence=confidence,
            question_index=question_index,
        )
        return self._ledger.append(turn)
