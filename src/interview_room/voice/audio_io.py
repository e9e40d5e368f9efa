"""Audio capture + playback.

This module is "dumb hardware I/O": it knows nothing about the interview.

It provides:
- microphone capture buffered in chunks (start/stop), with a simple noise
  gate and half-duplex echo suppression
- an energy-based end-of-speech detector (local VAD)
- WAV encode/decode helpers
- speaker playback that can be stopped from the event loop
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from interview_room.errors import MicrophonePermissionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioIOConfig:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"  # sounddevice dtype and WAV sample width
    block_duration_s: float = 1.0  # one buffered chunk per block
    echo_cancellation: bool = True
    noise_suppression: bool = True
    noise_gate_rms: float = 0.01  # fraction of full scale
    vad_enabled: bool = True
    vad_speech_rms: float = 0.03
    vad_silence_s: float = 1.5


class AudioIO:
    def __init__(self, config: AudioIOConfig | None = None) -> None:
        self._config = config or AudioIOConfig()
        self._recording_stream = None
        self._recording_chunks: list[np.ndarray] = []
        self._playing = False
        self._muted = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._end_of_speech: asyncio.Event | None = None
        self._heard_speech = False
        self._silent_s = 0.0

    @property
    def config(self) -> AudioIOConfig:
        return self._config

    @property
    def is_recording(self) -> bool:
        return self._recording_stream is not None

    @property
    def is_playing(self) -> bool:
        return self._playing

    def set_muted(self, muted: bool) -> None:
        """Muted capture keeps the stream open but records silence."""
        self._muted = muted

    def _require_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "sounddevice is required for voice mode. Install Python deps with: pip install -e '.[voice]'. "
                "If you see 'PortAudio library not found', install PortAudio (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
            ) from e

    async def start_recording(self, *, end_of_speech: asyncio.Event | None = None) -> None:
        """Open the microphone and start buffering chunks.

        ``end_of_speech`` is set from the audio thread when the local VAD
        decides the speaker has stopped talking.
        """
        if self._recording_stream is not None:
            raise RuntimeError("Microphone is already capturing.")

        sd = self._require_sounddevice()
        self._recording_chunks = []
        self._loop = asyncio.get_running_loop()
        self._end_of_speech = end_of_speech
        self._heard_speech = False
        self._silent_s = 0.0

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"Input status: {status}")
            self._on_chunk(indata.copy(), frames)

        try:
            stream = sd.InputStream(
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
                blocksize=int(self._config.sample_rate * self._config.block_duration_s / 10),
                callback=callback,
            )
        except Exception as e:
            # PortAudio reports a denied/missing input device as a generic error.
            raise MicrophonePermissionError(f"Cannot open microphone: {e}", provider="portaudio") from e

        # Tracked before start() so release() can close it if we are cancelled here.
        self._recording_stream = stream
        try:
            await asyncio.to_thread(self._start_stream, stream)
        except Exception as e:
            self.release()
            raise MicrophonePermissionError(f"Cannot open microphone: {e}", provider="portaudio") from e
        logger.info("[VOICE][AUDIO] microphone open")

    def _start_stream(self, stream) -> None:  # noqa: ANN001
        stream.start()
        if self._recording_stream is not stream:
            # Released while the device was opening.
            _close_stream(stream)

    def _on_chunk(self, chunk: np.ndarray, frames: int) -> None:
        if self._muted or (self._config.echo_cancellation and self._playing):
            chunk = np.zeros_like(chunk)
        elif self._config.noise_suppression:
            chunk = self._suppress_noise(chunk)
        self._recording_chunks.append(chunk)

        if self._config.vad_enabled and self._end_of_speech is not None:
            self._update_vad(chunk, frames)

    def _suppress_noise(self, chunk: np.ndarray) -> np.ndarray:
        samples = chunk.astype(np.float32)
        samples -= samples.mean(axis=0, keepdims=True)
        if _rms(samples) < self._config.noise_gate_rms * 32768.0:
            return np.zeros_like(chunk)
        return samples.astype(chunk.dtype)

    def _update_vad(self, chunk: np.ndarray, frames: int) -> None:
        if _rms(chunk.astype(np.float32)) >= self._config.vad_speech_rms * 32768.0:
            self._heard_speech = True
            self._silent_s = 0.0
            return
        if not self._heard_speech:
            return
        self._silent_s += frames / self._config.sample_rate
        if self._silent_s >= self._config.vad_silence_s and self._loop is not None and self._end_of_speech is not None:
            logger.debug("[VOICE][AUDIO] end of speech detected")
            self._loop.call_soon_threadsafe(self._end_of_speech.set)
            self._heard_speech = False

    async def stop_recording(self) -> np.ndarray:
        """Stop mic capture and return audio as int16 numpy array [samples, channels]."""
        if self._recording_stream is None:
            return np.zeros((0, self._config.channels), dtype=np.int16)

        stream = self._recording_stream
        self._recording_stream = None
        self._end_of_speech = None

        await asyncio.to_thread(stream.stop)
        await asyncio.to_thread(stream.close)
        logger.info("[VOICE][AUDIO] microphone released")

        if not self._recording_chunks:
            return np.zeros((0, self._config.channels), dtype=np.int16)

        audio = np.concatenate(self._recording_chunks, axis=0)
        self._recording_chunks = []
        return audio

    def release(self) -> None:
        """Close the microphone without waiting; safe to call at any time."""
        stream = self._recording_stream
        self._recording_stream = None
        self._end_of_speech = None
        self._recording_chunks = []
        if stream is None:
            return
        _close_stream(stream)
        logger.info("[VOICE][AUDIO] microphone released")

    def to_wav_bytes(self, audio: np.ndarray) -> bytes:
        """Encode int16 PCM as an in-memory WAV payload."""
        buf = io.BytesIO()
        if audio.ndim == 1:
            audio = audio[:, None]
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(self._config.channels)
            wf.setsampwidth(2)  # int16
            wf.setframerate(self._config.sample_rate)
            wf.writeframes(audio.astype(np.int16, copy=False).tobytes())
        return buf.getvalue()

    def write_wav(self, wav_path: str | Path, audio: np.ndarray) -> Path:
        """Write int16 PCM WAV."""
        wav_path = Path(wav_path)
        wav_path.parent.mkdir(parents=True, exist_ok=True)
        wav_path.write_bytes(self.to_wav_bytes(audio))
        return wav_path

    @staticmethod
    def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
        with wave.open(io.BytesIO(data), "rb") as wf:
            sr = wf.getframerate()
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            if sampwidth != 2:
                raise ValueError(f"Only 16-bit WAV supported, got sampwidth={sampwidth}")
            frames = wf.readframes(wf.getnframes())

        audio = np.frombuffer(frames, dtype=np.int16)
        return audio.reshape(-1, max(1, n_channels)), sr

    async def play_wav(self, wav: str | Path | bytes, *, timeout_s: float = 120.0) -> bool:
        """Play a WAV file or in-memory WAV payload.

        Returns True if playback ran to the end, False if it was stopped.
        """
        sd = self._require_sounddevice()

        data = wav if isinstance(wav, bytes) else Path(wav).read_bytes()
        audio, sr = self.decode_wav(data)
        audio_f32 = audio.astype(np.float32) / 32768.0
        if audio_f32.shape[1] == 1:
            audio_f32 = audio_f32.squeeze(-1)

        self._playing = True
        sd.play(audio_f32, samplerate=sr, blocking=False)
        try:
            await asyncio.wait_for(asyncio.to_thread(sd.wait), timeout=timeout_s)
        except asyncio.TimeoutError:
            sd.stop()
            return False
        except asyncio.CancelledError:
            sd.stop()
            raise
        finally:
            self._playing = False
        return True

    def stop_playback(self) -> None:
        if not self._playing:
            return
        try:
            sd = self._require_sounddevice()
            sd.stop()
        except Exception as e:
            logger.warning(f"[VOICE][AUDIO] error while stopping playback: {e}")
        self._playing = False


def _close_stream(stream) -> None:  # noqa: ANN001
    try:
        stream.stop()
        stream.close()
    except Exception as e:
        logger.warning(f"[VOICE][AUDIO] error while releasing microphone: {e}")


def _rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples))))
