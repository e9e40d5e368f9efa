"""
Tests for the transcript ledger, duration tracker and silence timeout.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from interview_room.orchestrator.interview_state import PRE_GREETING_INDEX, InterviewSession
from interview_room.orchestrator.ledger import TranscriptLedger
from interview_room.orchestrator.schemas import SessionStatus, Speaker, Turn
from interview_room.orchestrator.timers import SILENCE_TIMEOUT, DurationTracker, SilenceTimeout


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestTranscriptLedger:
    """Tests for TranscriptLedger."""

    def test_append_keeps_order(self) -> None:
        ledger = TranscriptLedger()
        ledger.append(Turn(speaker=Speaker.INTERVIEWER, text="Hello"))
        ledger.append(Turn(speaker=Speaker.CANDIDATE, text="Hi", confidence=88))
        ledger.append(Turn(speaker=Speaker.INTERVIEWER, text="First question?"))

        assert [t.text for t in ledger] == ["Hello", "Hi", "First question?"]
        assert len(ledger) == 3
        assert ledger.last is not None and ledger.last.text == "First question?"

    def test_earlier_timestamp_is_restamped(self) -> None:
        ledger = TranscriptLedger()
        now = datetime.now(timezone.utc)
        first = ledger.append(Turn(speaker=Speaker.INTERVIEWER, text="a", timestamp=now))
        second = ledger.append(
            Turn(speaker=Speaker.CANDIDATE, text="b", timestamp=now - timedelta(seconds=10))
        )

        assert second.timestamp == first.timestamp
        assert [t.text for t in ledger.turns] == ["a", "b"]

    def test_iteration_is_a_snapshot(self) -> None:
        ledger = TranscriptLedger()
        ledger.append(Turn(speaker=Speaker.INTERVIEWER, text="a"))

        seen = []
        for turn in ledger:
            seen.append(turn.text)
            ledger.append(Turn(speaker=Speaker.CANDIDATE, text="late"))

        assert seen == ["a"]
        assert len(ledger) == 2

    def test_speaker_views_and_low_confidence(self) -> None:
        ledger = TranscriptLedger()
        ledger.append(Turn(speaker=Speaker.INTERVIEWER, text="q"))
        ledger.append(Turn(speaker=Speaker.CANDIDATE, text="mumble", confidence=30))
        ledger.append(Turn(speaker=Speaker.CANDIDATE, text="clear", confidence=95))

        assert [t.text for t in ledger.candidate_turns()] == ["mumble", "clear"]
        assert [t.text for t in ledger.interviewer_turns()] == ["q"]
        assert [t.text for t in ledger.low_confidence_turns()] == ["mumble"]

    def test_turns_are_immutable_and_validated(self) -> None:
        turn = Turn(speaker=Speaker.CANDIDATE, text="x", confidence=50)
        with pytest.raises(ValidationError):
            turn.text = "changed"  # type: ignore[misc]
        with pytest.raises(ValidationError):
            Turn(speaker=Speaker.CANDIDATE, text="x", confidence=101)


class TestInterviewSession:
    """Tests for InterviewSession."""

    def test_question_index_advances_and_stops(self) -> None:
        session = InterviewSession("s-1", "Alex", ["q1", "q2"])
        assert session.current_question_index == PRE_GREETING_INDEX
        assert session.current_question is None
        assert session.status == SessionStatus.IDLE

        assert session.advance_question() == 0
        assert session.current_question == "q1"
        assert session.advance_question() == 1
        assert session.has_more_questions is False
        with pytest.raises(RuntimeError):
            session.advance_question()

        session.mark_all_answered()
        assert session.current_question_index == 2

    def test_first_end_reason_wins(self) -> None:
        session = InterviewSession("s-1", "Alex", [])
        session.set_end_reason("call_ended")
        session.set_end_reason("cancelled")
        assert session.end_reason == "call_ended"


class TestDurationTracker:
    """Tests for DurationTracker."""

    def test_duration_from_timestamps(self) -> None:
        clock = FakeClock()
        tracker = DurationTracker(clock=clock)
        assert tracker.elapsed() is None
        assert tracker.duration() == 0.0

        tracker.start()
        clock.advance(12.3456)
        assert tracker.stop() == 12.346
        assert tracker.is_frozen is True

    def test_stop_freezes_value(self) -> None:
        clock = FakeClock()
        tracker = DurationTracker(clock=clock)
        tracker.start()
        clock.advance(5)
        first = tracker.stop()
        clock.advance(60)
        assert tracker.stop() == first == 5.0
        assert tracker.duration() == 5.0

    def test_start_is_idempotent(self) -> None:
        clock = FakeClock()
        tracker = DurationTracker(clock=clock)
        tracker.start()
        clock.advance(3)
        tracker.start()
        clock.advance(2)
        assert tracker.stop() == 5.0

    @pytest.mark.asyncio
    async def test_counter_ticks_while_running(self) -> None:
        tracker = DurationTracker(tick_s=0.01)
        tracker.start()
        assert tracker.is_running is True
        await asyncio.sleep(0.08)
        tracker.stop()
        ticks = tracker.count
        assert ticks >= 1
        await asyncio.sleep(0.03)
        assert tracker.count == ticks
        assert tracker.is_running is False


class TestSilenceTimeout:
    """Tests for SilenceTimeout."""

    @pytest.mark.asyncio
    async def test_times_out_within_epsilon(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        reason = await SilenceTimeout(0.05).wait(manual=asyncio.Event())
        elapsed = loop.time() - started

        assert reason == SILENCE_TIMEOUT
        assert 0.04 <= elapsed < 0.5

    @pytest.mark.asyncio
    async def test_first_signal_wins(self) -> None:
        manual = asyncio.Event()
        vad = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, vad.set)

        reason = await SilenceTimeout(5.0).wait(manual=manual, vad=vad)
        assert reason == "vad"

    @pytest.mark.asyncio
    async def test_already_set_signal_returns_immediately(self) -> None:
        manual = asyncio.Event()
        manual.set()
        assert await SilenceTimeout(5.0).wait(manual=manual) == "manual"
