import asyncio
import time
from types import SimpleNamespace

import numpy as np
import pytest

from interview_room.voice.audio_io import AudioIO, AudioIOConfig


def _tone(frames: int = 1600, amplitude: int = 8000) -> np.ndarray:
    samples = np.full((frames, 1), amplitude, dtype=np.int16)
    samples[::2] = -amplitude
    return samples


def _hiss(frames: int = 1600) -> np.ndarray:
    return np.full((frames, 1), 50, dtype=np.int16)


class TestCaptureProcessing:
    def test_noise_gate_zeroes_quiet_chunks(self) -> None:
        io = AudioIO(AudioIOConfig(vad_enabled=False))
        io._on_chunk(_hiss(), 1600)
        io._on_chunk(_tone(), 1600)

        quiet, loud = io._recording_chunks
        assert not quiet.any()
        assert np.abs(loud).max() == 8000

    def test_capture_is_gated_while_speaker_plays(self) -> None:
        io = AudioIO(AudioIOConfig(vad_enabled=False))
        io._playing = True
        io._on_chunk(_tone(), 1600)
        assert not io._recording_chunks[0].any()

    def test_muted_capture_records_silence(self) -> None:
        io = AudioIO(AudioIOConfig(vad_enabled=False, echo_cancellation=False))
        io.set_muted(True)
        io._on_chunk(_tone(), 1600)
        assert not io._recording_chunks[0].any()

    @pytest.mark.asyncio
    async def test_vad_signals_end_of_speech_after_silence(self) -> None:
        io = AudioIO(AudioIOConfig(vad_silence_s=0.2))
        end_of_speech = asyncio.Event()
        io._loop = asyncio.get_running_loop()
        io._end_of_speech = end_of_speech

        io._on_chunk(_hiss(), 1600)
        io._on_chunk(_hiss(), 1600)
        io._on_chunk(_hiss(), 1600)
        await asyncio.sleep(0)
        assert not end_of_speech.is_set()

        io._on_chunk(_tone(), 1600)
        io._on_chunk(_hiss(), 1600)
        await asyncio.sleep(0)
        assert not end_of_speech.is_set()

        io._on_chunk(_hiss(), 1600)
        await asyncio.sleep(0)
        assert end_of_speech.is_set()


@pytest.mark.asyncio
async def test_stop_without_stream_returns_empty_audio():
    io = AudioIO()
    audio = await io.stop_recording()
    assert audio.shape == (0, 1)
    io.release()


def test_wav_payload_keeps_format():
    io = AudioIO(AudioIOConfig(sample_rate=8000))
    payload = io.to_wav_bytes(np.arange(-5, 5, dtype=np.int16))

    assert payload[:4] == b"RIFF"
    audio, sample_rate = AudioIO.decode_wav(payload)
    assert sample_rate == 8000
    assert audio.shape == (10, 1)
    assert audio[0, 0] == -5


class SlowInputStream:
    """Input stream whose start() blocks the way PortAudio does on a slow device."""

    instances: list["SlowInputStream"] = []

    def __init__(self, **kwargs) -> None:
        self.active = False
        self.closed = False
        SlowInputStream.instances.append(self)

    def start(self) -> None:
        time.sleep(0.2)
        self.active = True

    def stop(self) -> None:
        self.active = False

    def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_microphone_is_closed_when_opening_is_cancelled(monkeypatch):
    SlowInputStream.instances = []
    io = AudioIO()
    monkeypatch.setattr(io, "_require_sounddevice", lambda: SimpleNamespace(InputStream=SlowInputStream))

    task = asyncio.create_task(io.start_recording())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert io.is_recording is True
    io.release()
    await asyncio.sleep(0.3)

    (stream,) = SlowInputStream.instances
    assert stream.closed
    assert not stream.active
    assert io.is_recording is False
