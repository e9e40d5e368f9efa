"""Speech input: capture one spoken answer and turn it into text.

start_capture() -> (candidate speaks) -> stop_capture() -> Transcription
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from interview_room.errors import MicrophonePermissionError, TranscriptionError
from interview_room.voice.stt import Hypothesis, STTProvider

logger = logging.getLogger(__name__)


class AudioCaptureProtocol(Protocol):
    async def start_recording(self, *, end_of_speech: asyncio.Event | None = None) -> None: ...

    async def stop_recording(self) -> Any: ...

    def to_wav_bytes(self, audio: Any) -> bytes: ...

    def release(self) -> None: ...

    def set_muted(self, muted: bool) -> None: ...


@dataclass(frozen=True)
class RetryPolicy:
    """How often a failed transcription is retried by listening again.

    ``attempt`` is 1-based: attempt 1 is the first capture.
    """

    max_attempts: int = 3
    backoff_s: float = 2.0
    multiplier: float = 1.0
    max_backoff_s: float = 10.0

    def allows(self, attempt: int) -> bool:
        """Whether another capture may follow failed attempt number ``attempt``."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt``."""
        delay = self.backoff_s * (self.multiplier ** max(0, attempt - 1))
        return min(delay, self.max_backoff_s)


@dataclass(frozen=True)
class Transcription:
    text: str
    confidence: int  # 0-100


def best_hypothesis(hypotheses: list[Hypothesis]) -> Hypothesis | None:
    """Highest-confidence hypothesis with non-empty text (first wins on ties)."""
    best: Hypothesis | None = None
    for h in hypotheses:
        if not h.text.strip():
            continue
        if best is None or h.confidence > best.confidence:
            best = h
    return best


class SpeechInput:
    def __init__(
        self,
        *,
        audio: AudioCaptureProtocol,
        stt: STTProvider,
        retry_policy: RetryPolicy | None = None,
        min_audio_bytes: int = 64,
    ) -> None:
        self._audio = audio
        self._stt = stt
        self._retry_policy = retry_policy or RetryPolicy()
        self._min_audio_bytes = min_audio_bytes
        self._capturing = False
        self._end_of_speech: asyncio.Event | None = None

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def end_of_speech(self) -> asyncio.Event | None:
        """Set by the audio layer when the speaker stops talking (current capture only)."""
        return self._end_of_speech

    def set_muted(self, muted: bool) -> None:
        self._audio.set_muted(muted)

    async def start_capture(self) -> None:
        """Open the microphone and start buffering.

        Raises:
            MicrophonePermissionError: If the microphone cannot be opened.
        """
        if self._capturing:
            return
        self._end_of_speech = asyncio.Event()
        try:
            await self._audio.start_recording(end_of_speech=self._end_of_speech)
        except asyncio.CancelledError:
            self._end_of_speech = None
            self._audio.release()
            raise
        except MicrophonePermissionError:
            self._end_of_speech = None
            raise
        except (OSError, RuntimeError) as e:
            self._end_of_speech = None
            raise MicrophonePermissionError(f"Cannot open microphone: {e}") from e
        self._capturing = True
        logger.info("[VOICE][STT] capture started")

    async def stop_capture(self) -> Transcription:
        """Stop capturing and transcribe what was heard.

        Raises:
            TranscriptionError: If nothing usable came back (retryable).
        """
        if not self._capturing:
            raise TranscriptionError("stop_capture() called without an active capture")
        self._capturing = False
        self._end_of_speech = None

        try:
            audio = await self._audio.stop_recording()
        except (OSError, RuntimeError) as e:
            self._audio.release()
            raise TranscriptionError(f"Audio capture failed: {e}") from e

        payload = self._audio.to_wav_bytes(audio)
        if len(payload) < self._min_audio_bytes:
            raise TranscriptionError("No audio captured")

        hypotheses = await self._stt.transcribe(payload)
        best = best_hypothesis(hypotheses)
        if best is None:
            raise TranscriptionError("No transcription hypotheses returned")

        confidence = max(0, min(100, round(best.confidence)))
        logger.info(f"[VOICE][STT] transcribed chars={len(best.text)} confidence={confidence}")
        return Transcription(text=best.text.strip(), confidence=confidence)

    async def abort_capture(self) -> None:
        """Stop capturing and throw the audio away."""
        if not self._capturing:
            return
        self._capturing = False
        self._end_of_speech = None
        try:
            await self._audio.stop_recording()
        except (OSError, RuntimeError) as e:
            logger.warning(f"[VOICE][STT] error while aborting capture: {e}")
            self._audio.release()

    def release(self) -> None:
        """Release the microphone immediately, whatever state capture is in."""
        self._capturing = False
        self._end_of_speech = None
        self._audio.release()
