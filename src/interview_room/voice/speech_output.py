"""Speech output: say a piece of interviewer text out loud.

remote TTS -> probe -> download -> speaker
        \\-> (any failure) local Piper -> speaker

`speak()` returns when playback has finished, was interrupted, or could not
happen at all. It never raises for provider failures, so the caller can
always move on.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import tempfile
import time
import uuid
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from interview_room.errors import InterviewRoomError, SynthesisError
from interview_room.voice.speakable import to_speakable
from interview_room.voice.tts import RemoteTTS, TTSProvider

logger = logging.getLogger(__name__)

# Failures a provider or the audio device may surface while speaking.
_SPEAK_ERRORS = (InterviewRoomError, OSError, RuntimeError, ValueError, wave.Error)


class AudioPlayerProtocol(Protocol):
    async def play_wav(self, wav: str | Path | bytes) -> bool: ...

    def stop_playback(self) -> None: ...


@dataclass(frozen=True)
class SpeechOutputConfig:
    sticky_fallback: bool = True
    max_primary_failures: int = 2
    max_chars: int = 400
    cache_dir: str | None = None


@dataclass(frozen=True)
class PlaybackResult:
    text: str
    path: str  # primary | fallback | skipped | none
    finished: bool = True
    interrupted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SpeechOutput:
    def __init__(
        self,
        *,
        audio: AudioPlayerProtocol,
        primary: RemoteTTS | None = None,
        fallback: TTSProvider | None = None,
        config: SpeechOutputConfig | None = None,
    ) -> None:
        self._audio = audio
        self._primary = primary
        self._fallback = fallback
        self._config = config or SpeechOutputConfig()

        self._current: asyncio.Task[PlaybackResult] | None = None
        self._sticky_fallback = False
        self._primary_failures = 0
        self._cache_dir: Path | None = Path(self._config.cache_dir) if self._config.cache_dir else None

    @property
    def config(self) -> SpeechOutputConfig:
        return self._config

    @property
    def prefers_fallback(self) -> bool:
        """True once the remote voice is being skipped for this session."""
        if self._primary is None:
            return True
        if self._sticky_fallback:
            return True
        return self._primary_failures >= self._config.max_primary_failures

    @property
    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()

    async def speak(self, text: str) -> PlaybackResult:
        """Speak ``text``, stopping whatever is currently playing first."""
        await self.stop()

        task = asyncio.ensure_future(self._speak(text))
        self._current = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            self._audio.stop_playback()
            raise
        finally:
            if self._current is task:
                self._current = None

        if task.cancelled():
            return PlaybackResult(text=text, path="none", interrupted=True)
        return task.result()

    async def stop(self) -> None:
        """Interrupt the current playback, if any, and wait for it to unwind."""
        task = self._current
        self._audio.stop_playback()
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    def stop_nowait(self) -> None:
        task = self._current
        self._audio.stop_playback()
        if task is not None and not task.done():
            task.cancel()

    async def _speak(self, text: str) -> PlaybackResult:
        speakable, dbg = to_speakable(text, max_chars=self._config.max_chars)
        if speakable is None:
            logger.info(f"[VOICE][TTS] skipped reason={dbg.get('skip_reason')} debug={dbg}")
            return PlaybackResult(text=text, path="skipped")

        excerpt = speakable[:80].replace("\n", " ")
        if not self.prefers_fallback:
            t0 = time.perf_counter()
            try:
                completed = await self._speak_primary(speakable)
            except _SPEAK_ERRORS as e:
                self._primary_failures += 1
                logger.info(
                    f"[VOICE][TTS] remote voice failed ({self._primary_failures} in a row), "
                    f"falling back to local voice: {e}"
                )
            else:
                self._primary_failures = 0
                logger.info(f"[VOICE][TTS] remote dur={time.perf_counter() - t0:.2f}s text=\"{excerpt}\"")
                return PlaybackResult(text=text, path="primary", interrupted=not completed)

        if self._fallback is None:
            logger.warning("[VOICE][TTS] no local voice configured; continuing without audio")
            return PlaybackResult(text=text, path="none", error="no speech output available")

        t0 = time.perf_counter()
        try:
            completed = await self._speak_fallback(speakable)
        except _SPEAK_ERRORS as e:
            logger.warning(f"[VOICE][TTS] local voice failed; continuing without audio: {e}")
            return PlaybackResult(text=text, path="none", error=str(e))

        if self._config.sticky_fallback and not self._sticky_fallback:
            logger.info("[VOICE][TTS] local voice will be used for the rest of the session")
            self._sticky_fallback = True
        logger.info(f"[VOICE][TTS] local dur={time.perf_counter() - t0:.2f}s text=\"{excerpt}\"")
        return PlaybackResult(text=text, path="fallback", interrupted=not completed)

    async def _speak_primary(self, text: str) -> bool:
        assert self._primary is not None
        reference = await self._primary.synthesize(text)
        playable = await self._primary.probe(reference)
        if playable is None:
            raise SynthesisError(f"synthesized audio is not reachable: {reference}", provider="remote")
        data = await self._primary.fetch(playable)
        return await self._audio.play_wav(data)

    async def _speak_fallback(self, text: str) -> bool:
        assert self._fallback is not None
        cache_dir = self._get_cache_dir()
        cache_key = hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]
        wavs = sorted(cache_dir.glob(f"{cache_key}_*.wav"))
        if not wavs:
            wavs = await self._synthesize_into_cache(text, cache_dir, cache_key)
        if not wavs:
            raise SynthesisError("local voice produced no audio", provider="piper")
        for wav in wavs:
            if not await self._audio.play_wav(wav):
                return False
        return True

    async def _synthesize_into_cache(self, text: str, cache_dir: Path, cache_key: str) -> list[Path]:
        """Synthesize under a scratch name; chunks enter the cache only as a complete set."""
        assert self._fallback is not None
        scratch = f"partial-{cache_key}-{uuid.uuid4().hex[:8]}"
        try:
            parts = await self._fallback.synthesize_to_wavs(text, out_dir=cache_dir, base_name=scratch)
        except BaseException:
            for leftover in cache_dir.glob(f"{scratch}_*.wav"):
                leftover.unlink(missing_ok=True)
            raise
        wavs: list[Path] = []
        for part in parts:
            wav = part.with_name(part.name.replace(scratch, cache_key, 1))
            part.replace(wav)
            wavs.append(wav)
        return wavs

    def _get_cache_dir(self) -> Path:
        if self._cache_dir is None:
            self._cache_dir = Path(tempfile.mkdtemp(prefix="interview-room-tts-"))
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        return self._cache_dir
