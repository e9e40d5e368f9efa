"""Voice subsystem.

Speech output (remote TTS with a local Piper fallback) and speech input
(microphone capture + STT) used by the interview orchestrator:

text -> TTS -> speaker ... mic -> STT -> text

The orchestrator remains the single authority for interview flow.
"""

from interview_room.voice.audio_io import AudioIO, AudioIOConfig
from interview_room.voice.speech_input import RetryPolicy, SpeechInput, Transcription
from interview_room.voice.speech_output import PlaybackResult, SpeechOutput, SpeechOutputConfig
from interview_room.voice.stt import (
    Hypothesis,
    RemoteSTT,
    RemoteSTTConfig,
    STTConfig,
    STTProvider,
    WhisperSTT,
)
from interview_room.voice.tts import PiperTTS, RemoteTTS, RemoteTTSConfig, TTSConfig, TTSProvider

__all__ = [
    "AudioIO",
    "AudioIOConfig",
    "Hypothesis",
    "PiperTTS",
    "PlaybackResult",
    "RemoteSTT",
    "RemoteSTTConfig",
    "RemoteTTS",
    "RemoteTTSConfig",
    "RetryPolicy",
    "SpeechInput",
    "SpeechOutput",
    "SpeechOutputConfig",
    "STTConfig",
    "STTProvider",
    "TTSConfig",
    "TTSProvider",
    "Transcription",
    "WhisperSTT",
]

