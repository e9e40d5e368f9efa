"""
Interview orchestrator.

Turn-taking state machine for one interview session. It consumes normalized
call events, drives speech output and input between turns, appends every
turn to the session ledger and hands the finished transcript off exactly once.

idle -> connecting -> greeting -> listening -> processing -> asking -> ...
     -> listening -> processing -> responding -> asking | completed

Any state can jump to completed (user cancel, call ended, max duration).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from interview_room.call.events import CallEvent, CallEventType
from interview_room.call.session_manager import CallSessionManager, ScriptedCallSession
from interview_room.errors import InterviewRoomError, MicrophonePermissionError, TranscriptionError
from interview_room.orchestrator.interview_state import PRE_GREETING_INDEX, InterviewSession
from interview_room.orchestrator.schemas import (
    AssistantConfig,
    InterviewHandoff,
    SessionStatus,
    Speaker,
    StatusChange,
    Turn,
)
from interview_room.orchestrator.timers import DurationTracker, SilenceTimeout

if TYPE_CHECKING:
    from interview_room.config import Settings
    from interview_room.voice.speech_input import Transcription

logger = logging.getLogger(__name__)

StatusObserver = Callable[[StatusChange], Any]
HandoffCallback = Callable[[InterviewHandoff], Any]

GREETING_TEMPLATE = (
    "Hello {name}! I'm the AI assistant who will be interviewing you today. "
    "We have {count} questions for this session. Are you ready to begin?"
)
CLOSING_TEMPLATE = "That completes our interview. Thank you {name} for your time, and good luck!"
TRANSITION_PHRASE = "Let's move on to the next question."
ACKNOWLEDGEMENTS = ("Thank you for sharing.", "Great, thank you.", "I see.", "Interesting.")
ENCOURAGEMENT = "No problem, take a moment. Let me know when you're ready to begin."
READY_PHRASES = ("ready", "yes", "yeah", "sure", "okay", "ok", "let's go", "let's start", "go ahead", "start")

NO_ANSWER_MESSAGE = "We couldn't hear your answer. Check your microphone and press retry."
CALL_ENDED_BEFORE_START = "Call ended before it started"

_LIVE_STATUS = {
    Speaker.INTERVIEWER: SessionStatus.ASKING,
    Speaker.CANDIDATE: SessionStatus.RESPONDING,
}
_NO_CALL = (SessionStatus.IDLE, SessionStatus.ERROR)


def is_ready_reply(text: str) -> bool:
    """Whether a greeting reply reads as "I'm ready"."""
    lowered = text.lower()
    return any(phrase in lowered for phrase in READY_PHRASES)


@dataclass(frozen=True)
class OrchestratorConfig:
    silence_timeout_s: float = 30.0
    max_call_duration_s: float = 1800.0
    call_start_timeout_s: float = 30.0
    language: str = "en-US"
    low_confidence_threshold: int = 50

    # Ask again (at most max_readiness_prompts times) if the greeting reply isn't a "ready".
    confirm_readiness: bool = False
    max_readiness_prompts: int = 2

    greeting_template: str = GREETING_TEMPLATE
    closing_template: str = CLOSING_TEMPLATE
    transition_phrase: str = TRANSITION_PHRASE
    acknowledgements: tuple[str, ...] = ACKNOWLEDGEMENTS
    encouragement: str = ENCOURAGEMENT

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> OrchestratorConfig:
        values: dict[str, Any] = {
            "silence_timeout_s": settings.silence_timeout_s,
            "max_call_duration_s": settings.max_call_duration_s,
            "language": settings.language,
            "low_confidence_threshold": settings.low_confidence_threshold,
        }
        values.update(overrides)
        return cls(**values)


def _log_task_error(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"[FSM] background task {task.get_name()} failed", exc_info=exc)


class InterviewOrchestrator:
    """
    Runs one interview session over a call session.

    With a `ScriptedCallSession` the orchestrator asks every question itself
    and listens for each answer. With a live call session the remote side runs
    the conversation and the orchestrator only records the turns it reports.
    """

    def __init__(
        self,
        session: InterviewSession,
        call: CallSessionManager,
        *,
        config: OrchestratorConfig | None = None,
        assistant_id: str | None = None,
        tracker: DurationTracker | None = None,
        on_complete: HandoffCallback | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            session: Fresh session state (status idle).
            call: Call session the interview runs over. Owned from here on:
                it is disposed when the interview completes.
            config: Turn-taking configuration.
            assistant_id: Remote assistant identifier for live call sessions.
            tracker: Duration tracker (injectable clock for tests).
            on_complete: Receives the handoff once; may be sync or async.
            rng: Random source for acknowledgement phrases.
        """
        self._session = session
        self._call = call
        self._config = config or OrchestratorConfig()
        self._assistant_id = assistant_id
        self._tracker = tracker or DurationTracker()
        self._on_complete = on_complete
        self._rng = rng or random.Random()
        self._silence = SilenceTimeout(self._config.silence_timeout_s)

        self._observers: list[StatusObserver] = []
        self._history: list[SessionStatus] = [session.status]

        self._events: asyncio.Queue[CallEvent] = asyncio.Queue()
        self._unsubscribe_call: Callable[[], None] | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._driver_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None

        self._connect_settled = asyncio.Event()
        self._start_error: str | None = None
        self._manual_stop = asyncio.Event()
        self._remote_vad = asyncio.Event()
        self._resume = asyncio.Event()
        self._awaiting_resume = False
        self._finishing = False
        self._completed = asyncio.Event()
        self._handoff: InterviewHandoff | None = None

    @property
    def session(self) -> InterviewSession:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def status_history(self) -> tuple[SessionStatus, ...]:
        """Every status the session has been in, oldest first."""
        return tuple(self._history)

    @property
    def handoff(self) -> InterviewHandoff | None:
        return self._handoff

    @property
    def duration(self) -> float:
        """Current (or final) interview duration in seconds."""
        return self._tracker.duration()

    @property
    def is_waiting_for_retry(self) -> bool:
        """True while a recoverable error banner waits for `retry()`."""
        return self._awaiting_resume or self._session.status == SessionStatus.ERROR

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """
        Register a status observer.

        Observers are called for every status change, new turn and banner
        update. Their errors are logged and otherwise ignored.

        Returns:
            A callable that removes the observer.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def start(self) -> bool:
        """
        Start the call: idle -> connecting -> greeting, or error.

        Returns:
            True if the call is up and the conversation has begun.
        """
        status = self._session.status
        if status != SessionStatus.IDLE:
            logger.warning(f"[FSM] start() ignored in status={status.value}")
            return False

        self._wire()
        self._start_error = None
        self._connect_settled.clear()
        self._transition(SessionStatus.CONNECTING)

        try:
            await self._call.start(self._assistant_config())
        except InterviewRoomError as e:
            self._fail_start(e.message)
            return False

        try:
            await asyncio.wait_for(self._connect_settled.wait(), timeout=self._config.call_start_timeout_s)
        except asyncio.TimeoutError:
            self._start_error = f"Call did not start within {self._config.call_start_timeout_s:.0f}s"
            await self._call.stop()

        if self._finishing:
            return False
        if self._start_error is not None:
            self._fail_start(self._start_error)
            return False

        self._begin_conversation()
        return True

    async def run(self) -> InterviewHandoff | None:
        """
        Start the interview and wait until it completes.

        Returns:
            The handoff, or None if the call failed to start (status error).
        """
        if not await self.start() and not self._finishing:
            return self._handoff
        return await self.wait_completed()

    async def wait_completed(self) -> InterviewHandoff | None:
        await self._completed.wait()
        return self._handoff

    def retry(self) -> None:
        """
        Recover from a recoverable failure.

        From error: clear the banner and go back to idle so `start()` can be
        called again. While waiting after a microphone or transcription
        failure: clear the banner and listen again.
        """
        if self._session.status == SessionStatus.ERROR:
            self._session.set_error(None)
            self._transition(SessionStatus.IDLE)
            return
        if self._awaiting_resume:
            logger.info("[FSM] retry requested")
            self._resume.set()

    def stop_listening(self, reason: str = "manual") -> bool:
        """End the current listening phase early (the candidate is done)."""
        if self._session.status != SessionStatus.LISTENING:
            return False
        logger.info(f"[FSM] listening stopped reason={reason}")
        self._manual_stop.set()
        return True

    def signal_end_of_speech(self) -> bool:
        """End the current listening phase because speech stopped (VAD)."""
        if self._session.status != SessionStatus.LISTENING:
            return False
        self._remote_vad.set()
        return True

    def set_muted(self, muted: bool) -> None:
        self._call.set_muted(muted)

    async def cancel(self, reason: str = "cancelled") -> InterviewHandoff | None:
        """
        End the interview now, from any state. Idempotent.

        Returns:
            The handoff (the same object on every call).
        """
        if self._completed.is_set():
            return self._handoff
        if self._finishing:
            await self._completed.wait()
            return self._handoff
        await self._finish(reason)
        return self._handoff

    async def stop(self) -> InterviewHandoff | None:
        return await self.cancel("stopped")

    # ------------------------------------------------------------------
    # Call events

    def _wire(self) -> None:
        if self._unsubscribe_call is None:
            self._unsubscribe_call = self._call.subscribe(self._on_call_event)
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump(), name="interview-events")
            self._pump_task.add_done_callback(_log_task_error)

    def _on_call_event(self, event: CallEvent) -> None:
        self._events.put_nowait(event)

    async def _pump(self) -> None:
        while not self._completed.is_set():
            event = await self._events.get()
            await self._handle_event(event)

    async def _handle_event(self, event: CallEvent) -> None:
        if self._finishing:
            logger.debug(f"[FSM] ignoring {event.type.value} after completion")
            return

        status = self._session.status
        if event.type == CallEventType.STARTED:
            if status != SessionStatus.CONNECTING:
                logger.debug(f"[FSM] ignoring started in status={status.value}")
                return
            self._session.mark_started()
            self._tracker.start()
            self._watchdog_task = asyncio.create_task(self._watchdog(), name="interview-watchdog")
            self._watchdog_task.add_done_callback(_log_task_error)
            self._connect_settled.set()

        elif status in _NO_CALL:
            # Late report from a call that failed to start.
            logger.debug(f"[FSM] ignoring {event.type.value} in status={status.value}")

        elif event.type == CallEventType.ERROR:
            message = event.message or "Unknown call error"
            if status == SessionStatus.CONNECTING:
                self._start_error = message
                self._connect_settled.set()
            else:
                logger.warning(f"[FSM] call error in status={status.value}: {message}")
                self._set_banner(message)

        elif event.type == CallEventType.ENDED:
            logger.info(f"[FSM] call ended reason={event.reason} status={status.value}")
            if status == SessionStatus.CONNECTING:
                if self._start_error is None:
                    self._start_error = CALL_ENDED_BEFORE_START
                self._connect_settled.set()
                return
            await self._finish(event.reason or "call_ended")

        elif event.type == CallEventType.SPEECH_TURN:
            if self._call.drives_turns or event.speaker is None:
                return
            turn = self._session.add_turn(event.speaker, event.text)
            target = _LIVE_STATUS[event.speaker]
            if status == target:
                self._notify_turn(turn)
            else:
                self._transition(target, turn=turn)

    # ------------------------------------------------------------------
    # Scripted conversation

    def _begin_conversation(self) -> None:
        if isinstance(self._call, ScriptedCallSession):
            self._driver_task = asyncio.create_task(self._drive(self._call), name="interview-driver")
            self._driver_task.add_done_callback(_log_task_error)
        else:
            # The remote assistant greets; its turns arrive as events.
            self._transition(SessionStatus.GREETING)

    async def _drive(self, call: ScriptedCallSession) -> None:
        try:
            await self._greet(call)
            readiness_prompts = 0
            while True:
                answer = await self._capture_answer(call)

                if self._session.current_question_index == PRE_GREETING_INDEX:
                    if (
                        self._config.confirm_readiness
                        and not is_ready_reply(answer.text)
                        and readiness_prompts < self._config.max_readiness_prompts
                    ):
                        readiness_prompts += 1
                        await self._say(call, self._config.encouragement)
                        continue
                    if not self._session.has_more_questions:
                        await self._close(call)
                        return
                    self._session.advance_question()
                    await self._ask_current(call)
                    continue

                if not await self._respond(call, answer):
                    return
        except InterviewRoomError as e:
            logger.error(f"[FSM] interview stopped on unexpected error: {e.message}")
            self._session.set_error(e.message)
            await self._finish("error")

    async def _greet(self, call: ScriptedCallSession) -> None:
        text = self._config.greeting_template.format(
            name=self._session.candidate_name,
            count=len(self._session.questions),
        )
        turn = self._session.add_turn(Speaker.INTERVIEWER, text)
        self._transition(SessionStatus.GREETING, turn=turn)
        await self._speak(call, text)

    async def _ask_current(self, call: ScriptedCallSession) -> None:
        index = self._session.current_question_index
        question = self._session.current_question or ""
        turn = self._session.add_turn(Speaker.INTERVIEWER, question, question_index=index)
        self._transition(SessionStatus.ASKING, turn=turn)
        await self._speak(call, question)

    async def _respond(self, call: ScriptedCallSession, answer: Transcription) -> bool:
        """Record the answer and move on. Returns False once the interview is over."""
        turn = self._session.add_turn(
            Speaker.CANDIDATE,
            answer.text,
            confidence=answer.confidence,
            question_index=self._session.current_question_index,
        )
        self._transition(SessionStatus.RESPONDING, turn=turn)

        ack = self._rng.choice(self._config.acknowledgements) if self._config.acknowledgements else ""
        if self._session.has_more_questions:
            await self._say(call, f"{ack} {self._config.transition_phrase}".strip())
            self._session.advance_question()
            await self._ask_current(call)
            return True

        await self._close(call, prefix=ack)
        return False

    async def _close(self, call: ScriptedCallSession, prefix: str = "") -> None:
        closing = self._config.closing_template.format(name=self._session.candidate_name)
        await self._say(call, f"{prefix} {closing}".strip())
        self._session.mark_all_answered()
        await self._finish("questions_exhausted")

    async def _say(self, call: ScriptedCallSession, text: str) -> None:
        self._notify_turn(self._session.add_turn(Speaker.INTERVIEWER, text))
        await self._speak(call, text)

    async def _speak(self, call: ScriptedCallSession, text: str) -> None:
        result = await call.speak(text)
        if result.error:
            # Carry on as if playback had finished; the turn is in the ledger.
            logger.warning(f"[FSM] interviewer turn not played ({result.error})")

    async def _capture_answer(self, call: ScriptedCallSession) -> Transcription:
        """Listen until an answer is transcribed, retrying per the retry policy."""
        policy = call.retry_policy
        attempt = 0
        while True:
            attempt += 1
            self._manual_stop.clear()
            self._remote_vad.clear()
            self._transition(SessionStatus.LISTENING)

            try:
                await call.begin_listening()
            except MicrophonePermissionError as e:
                logger.error(f"[FSM] microphone unavailable: {e.message}")
                await self._wait_for_retry(e.message)
                attempt = 0
                continue

            signals = {"manual": self._manual_stop, "vad": self._remote_vad}
            if call.end_of_speech is not None:
                signals["speech_end"] = call.end_of_speech
            reason = await self._silence.wait(**signals)
            logger.info(f"[FSM] listening ended reason={reason}")
            self._transition(SessionStatus.PROCESSING)

            try:
                return await call.finish_listening()
            except TranscriptionError as e:
                if policy.allows(attempt):
                    delay = policy.delay_for(attempt)
                    logger.warning(
                        f"[FSM] transcription failed (attempt {attempt}/{policy.max_attempts}), "
                        f"listening again in {delay:.1f}s: {e.message}"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"[FSM] transcription failed {attempt} times, waiting for retry")
                await self._wait_for_retry(NO_ANSWER_MESSAGE)
                attempt = 0

    async def _wait_for_retry(self, message: str) -> None:
        self._resume.clear()
        self._awaiting_resume = True
        self._set_banner(message)
        try:
            await self._resume.wait()
        finally:
            self._awaiting_resume = False
        self._set_banner(None)

    # ------------------------------------------------------------------
    # Completion

    async def _watchdog(self) -> None:
        await asyncio.sleep(self._config.max_call_duration_s)
        logger.warning(f"[FSM] maximum call duration reached ({self._config.max_call_duration_s:.0f}s)")
        await self._finish("max_duration")

    async def _finish(self, reason: str) -> None:
        if self._finishing:
            return
        self._finishing = True
        current = asyncio.current_task()
        self._session.set_end_reason(reason)
        logger.info(f"[FSM] finishing reason={reason} status={self._session.status.value}")

        await self._cancel_task(self._driver_task, current)
        await self._cancel_task(self._watchdog_task, current)
        try:
            await self._call.halt_media()
        except (InterviewRoomError, OSError, RuntimeError) as e:
            logger.warning(f"[FSM] error while stopping audio: {e}")

        duration = self._tracker.stop()
        self._transition(SessionStatus.COMPLETED)
        self._connect_settled.set()

        try:
            await self._call.stop()
        except (InterviewRoomError, OSError, RuntimeError) as e:
            logger.warning(f"[FSM] error while ending call: {e}")
        await self._call.dispose()
        if self._unsubscribe_call is not None:
            self._unsubscribe_call()
            self._unsubscribe_call = None

        self._handoff = self._build_handoff(duration)
        logger.info(
            f"[FSM] interview {self._session.session_id} completed "
            f"turns={len(self._session.ledger)} duration={duration:.3f}s reason={reason}"
        )
        await self._deliver(self._handoff)
        self._completed.set()
        await self._cancel_task(self._pump_task, current)

    def _build_handoff(self, duration: float) -> InterviewHandoff:
        ledger = self._session.ledger
        flagged = {id(t) for t in ledger.low_confidence_turns(self._config.low_confidence_threshold)}
        return InterviewHandoff(
            session_id=self._session.session_id,
            candidate_name=self._session.candidate_name,
            job_description=self._session.job_description,
            questions=list(self._session.questions),
            conversation_history=list(self._session.ledger.turns),
            low_confidence_turns=[i for i, t in enumerate(ledger.turns) if id(t) in flagged],
            duration=duration,
            end_reason=self._session.end_reason or "completed",
            started_at=self._session.started_at,
        )

    async def _deliver(self, handoff: InterviewHandoff) -> None:
        if self._on_complete is None:
            return
        try:
            result = self._on_complete(handoff)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[FSM] completion handler failed")

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None, current: asyncio.Task[Any] | None) -> None:
        if task is None or task is current or task.done():
            return
        task.cancel()
        await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Status and observers

    def _assistant_config(self) -> AssistantConfig:
        return AssistantConfig(
            candidate_name=self._session.candidate_name,
            questions=list(self._session.questions),
            job_description=self._session.job_description,
            assistant_id=self._assistant_id,
            language=self._config.language,
        )

    def _fail_start(self, message: str) -> None:
        logger.error(f"[FSM] call failed to start: {message}")
        self._session.set_error(message)
        self._transition(SessionStatus.ERROR)

    def _transition(self, status: SessionStatus, *, turn: Turn | None = None) -> None:
        previous = self._session.set_status(status)
        self._history.append(status)
        logger.info(f"[FSM] {previous.value} -> {status.value} question={self._session.current_question_index}")
        self._notify(previous, turn)

    def _notify_turn(self, turn: Turn) -> None:
        self._notify(self._session.status, turn)

    def _set_banner(self, message: str | None) -> None:
        self._session.set_error(message)
        self._notify(self._session.status, None)

    def _notify(self, previous: SessionStatus, turn: Turn | None) -> None:
        change = StatusChange(
            status=self._session.status,
            previous=previous,
            question_index=self._session.current_question_index,
            error_message=self._session.error_message,
            turn=turn,
        )
        for observer in list(self._observers):
            try:
                result = observer(change)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    task.add_done_callback(_log_task_error)
            except Exception:
                logger.exception("[FSM] status observer failed")
