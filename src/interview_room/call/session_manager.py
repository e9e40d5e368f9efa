"""
Call session managers.

A call session owns the connection the interview runs over and reports its
lifecycle as normalized `CallEvent`s. Two strategies share one contract:

- `ScriptedCallSession`: no conversational backend. The orchestrator drives
  every turn through this session's speech output and input.
- `RealtimeCallSession`: a live voice SDK (Vapi-style client) runs the
  conversation; its callbacks are translated into call events.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol

from interview_room.call.events import CallEvent, CallEventListener, EventBus
from interview_room.errors import CallStartError, ConfigurationError
from interview_room.orchestrator.schemas import AssistantConfig, Speaker
from interview_room.voice.speech_input import RetryPolicy, SpeechInput, Transcription
from interview_room.voice.speech_output import PlaybackResult, SpeechOutput

logger = logging.getLogger(__name__)


class CallSessionManager(ABC):
    """Abstract base class for call sessions."""

    drives_turns: bool = False

    def __init__(self) -> None:
        self._bus = EventBus()
        self._active = False
        self._muted = False
        self._disposed = False

    @property
    def is_active(self) -> bool:
        """Check if a call is currently running."""
        return self._active

    @property
    def is_muted(self) -> bool:
        return self._muted

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def subscribe(self, listener: CallEventListener) -> Callable[[], None]:
        """Register for call events; returns an unsubscribe callable."""
        return self._bus.subscribe(listener)

    def _emit(self, event: CallEvent) -> None:
        self._bus.emit(event)

    def _require_usable(self) -> None:
        if self._disposed:
            raise ConfigurationError("Call session has been disposed.")

    @abstractmethod
    async def start(self, assistant_config: AssistantConfig) -> None:
        """
        Start the call. Completion is reported through a STARTED or ERROR event.

        Args:
            assistant_config: Who is interviewed and with which questions.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Hang up. Safe to call when no call is active."""
        ...

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        """Mute or unmute the candidate's microphone."""
        ...

    @abstractmethod
    async def halt_media(self) -> None:
        """Stop any in-flight playback and capture without ending the call."""
        ...

    @abstractmethod
    async def dispose(self) -> None:
        """Release every resource (call, microphone). Idempotent."""
        ...


class ScriptedCallSession(CallSessionManager):
    """
    Local question sequencer.

    The "call" is the candidate's own microphone and speaker; the orchestrator
    asks each question through `speak()` and collects answers through the
    listening methods.
    """

    drives_turns = True

    def __init__(self, speech_output: SpeechOutput, speech_input: SpeechInput) -> None:
        super().__init__()
        self._output = speech_output
        self._input = speech_input

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._input.retry_policy

    @property
    def end_of_speech(self) -> asyncio.Event | None:
        return self._input.end_of_speech

    async def start(self, assistant_config: AssistantConfig) -> None:
        self._require_usable()
        if self._active:
            return
        logger.info(f"[CALL] scripted session starting for {assistant_config.candidate_name!r}")
        self._active = True
        self._emit(CallEvent.started())

    async def stop(self) -> None:
        if not self._active:
            return
        await self.halt_media()
        self._active = False
        logger.info("[CALL] scripted session stopped")
        self._emit(CallEvent.ended("stopped"))

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        self._input.set_muted(muted)

    async def speak(self, text: str) -> PlaybackResult:
        return await self._output.speak(text)

    async def begin_listening(self) -> None:
        await self._input.start_capture()

    async def finish_listening(self) -> Transcription:
        return await self._input.stop_capture()

    async def abort_listening(self) -> None:
        await self._input.abort_capture()

    async def halt_media(self) -> None:
        await self._output.stop()
        await self._input.abort_capture()

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._output.stop_nowait()
        self._input.release()
        self._active = False
        self._bus.clear()
        logger.info("[CALL] scripted session disposed")


class RealtimeClientProtocol(Protocol):
    """Shape of a real-time voice SDK client (modelled on the Vapi client)."""

    def on(self, event: str, handler: Callable[..., Any]) -> Any: ...

    def start(self, assistant_id: str) -> Any: ...

    def stop(self) -> Any: ...

    def set_muted(self, muted: bool) -> Any: ...


_ROLE_TO_SPEAKER = {
    "assistant": Speaker.INTERVIEWER,
    "bot": Speaker.INTERVIEWER,
    "user": Speaker.CANDIDATE,
}


class RealtimeCallSession(CallSessionManager):
    """
    Adapter from a live voice SDK to call events.

    SDK callbacks may arrive on a foreign thread; they are marshalled onto the
    event loop the call was started from before being emitted.
    """

    drives_turns = False

    def __init__(
        self,
        client_factory: Callable[[], RealtimeClientProtocol],
        *,
        speech_input: SpeechInput | None = None,
    ) -> None:
        super().__init__()
        self._client_factory = client_factory
        self._speech_input = speech_input
        self._client: RealtimeClientProtocol | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._initializations = 0

    @property
    def initializations(self) -> int:
        """How many SDK clients were constructed (at most one)."""
        return self._initializations

    def _ensure_client(self) -> RealtimeClientProtocol:
        if self._client is not None:
            return self._client
        self._client = self._client_factory()
        self._initializations += 1
        self._client.on("call-start", self._on_call_start)
        self._client.on("call-end", self._on_call_end)
        self._client.on("message", self._on_message)
        self._client.on("error", self._on_error)
        logger.info("[CALL] realtime client initialized")
        return self._client

    async def start(self, assistant_config: AssistantConfig) -> None:
        self._require_usable()
        if not assistant_config.assistant_id:
            raise ConfigurationError("No assistant id provided. Create the assistant before starting the call.")

        self._loop = asyncio.get_running_loop()
        client = self._ensure_client()
        logger.info(f"[CALL] starting realtime call assistant={assistant_config.assistant_id}")
        try:
            result = client.start(assistant_config.assistant_id)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise CallStartError(f"Failed to start call: {e}", provider="realtime") from e

    async def stop(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            result = client.stop()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"[CALL] error while stopping realtime call: {e}")
        self._active = False

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        if self._client is not None:
            self._client.set_muted(muted)

    async def halt_media(self) -> None:
        if self._speech_input is not None:
            await self._speech_input.abort_capture()

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._active:
            await self.stop()
        if self._speech_input is not None:
            self._speech_input.release()
        self._client = None
        self._active = False
        self._bus.clear()
        logger.info("[CALL] realtime session disposed")

    def _dispatch(self, event: CallEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._emit(event)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._emit(event)
        else:
            loop.call_soon_threadsafe(self._emit, event)

    def _on_call_start(self, *_: Any) -> None:
        self._active = True
        self._dispatch(CallEvent.started())

    def _on_call_end(self, *_: Any) -> None:
        self._active = False
        self._dispatch(CallEvent.ended("call_ended"))

    def _on_message(self, message: Any) -> None:
        if not isinstance(message, dict) or message.get("type") != "transcript":
            return
        if message.get("transcriptType", "final") != "final":
            return
        text = (message.get("transcript") or "").strip()
        speaker = _ROLE_TO_SPEAKER.get(str(message.get("role", "")).lower())
        if not text or speaker is None:
            return
        self._dispatch(CallEvent.speech_turn(speaker, text))

    def _on_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or (error.get("message") if isinstance(error, dict) else None)
        self._dispatch(CallEvent.error(str(message or error or "Unknown error")))
