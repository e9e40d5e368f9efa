"""Append-only transcript ledger."""

from __future__ import annotations

from collections.abc import Iterator

from interview_room.orchestrator.schemas import Speaker, Turn


class TranscriptLedger:
    """
    Ordered record of conversation turns.

    Turns can only be appended. Append order is conversational order, so a
    turn stamped earlier than the previous one is re-stamped instead of being
    inserted out of order.
    """

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def append(self, turn: Turn) -> Turn:
        """
        Append a turn.

        Args:
            turn: The turn to record.

        Returns:
            The turn as stored (possibly re-stamped).
        """
        if self._turns and turn.timestamp < self._turns[-1].timestamp:
            turn = turn.model_copy(update={"timestamp": self._turns[-1].timestamp})
        self._turns.append(turn)
        return turn

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Snapshot of all turns."""
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def candidate_turns(self) -> list[Turn]:
        return [t for t in self._turns if t.speaker == Speaker.CANDIDATE]

    def interviewer_turns(self) -> list[Turn]:
        return [t for t in self._turns if t.speaker == Speaker.INTERVIEWER]

    def low_confidence_turns(self, threshold: int = 50) -> list[Turn]:
        """Candidate turns whose recognition confidence is below ``threshold``."""
        return [
            t
            for t in self._turns
            if t.speaker == Speaker.CANDIDATE and t.confidence is not None and t.confidence < threshold
        ]
