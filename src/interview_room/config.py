"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Backend speech / session API
    api_base_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the speech and interview-session backend",
    )
    tts_path: str = Field(default="/speech/fpt-speak", description="Remote text-to-speech endpoint path")
    stt_path: str = Field(default="/speech/fpt-transcribe", description="Remote speech-to-text endpoint path")
    audio_proxy_path: str | None = Field(
        default="/speech/proxy-audio",
        description="Backend proxy used to fetch synthesized audio (None to fetch directly)",
    )
    session_path: str = Field(
        default="/interview-session",
        description="Endpoint that turns a job description + CV into a question list",
    )
    evaluation_url: str | None = Field(
        default=None,
        description="Where the finished transcript is posted for evaluation (disabled if unset)",
    )
    http_timeout: float = Field(default=30.0, description="Timeout in seconds for backend requests")

    # Real-time call provider (Vapi)
    vapi_base_url: str = Field(default="https://api.vapi.ai", description="Vapi REST API base URL")
    vapi_private_key: str | None = Field(default=None, description="Vapi private key (assistant creation)")

    # Speech
    language: str = Field(default="en-US", description="Interview language (BCP-47)")
    tts_voice: str = Field(default="banmai", description="Voice name passed to the remote TTS service")
    piper_bin: str = Field(default="piper", description="Piper TTS binary used for the local fallback")
    piper_voices: dict[str, str] = Field(
        default_factory=dict,
        description="Language prefix -> Piper .onnx voice model (e.g. {'en': '/voices/en_US.onnx'})",
    )
    stt_backend: Literal["remote", "whisper"] = Field(
        default="remote",
        description="Speech-to-text backend",
    )
    stt_model: str = Field(default="small", description="faster-whisper model size for the local backend")
    stt_device: Literal["cpu", "cuda", "auto"] = Field(default="cpu", description="faster-whisper device")

    # Turn taking
    silence_timeout_s: float = Field(default=30.0, description="Max seconds spent listening for one answer")
    max_call_duration_s: float = Field(default=1800.0, description="Hard cap on the whole interview")
    transcription_max_attempts: int = Field(
        default=3,
        description="Capture attempts per answer before asking the user to retry",
    )
    transcription_retry_delay_s: float = Field(default=2.0, description="Delay before re-listening")
    sticky_tts_fallback: bool = Field(
        default=True,
        description="Keep using the local voice once it had to take over from the remote one",
    )
    max_primary_tts_failures: int = Field(
        default=2,
        description="Consecutive remote TTS failures before the remote voice is skipped",
    )
    low_confidence_threshold: int = Field(
        default=50,
        description="Candidate turns below this confidence are flagged for evaluation",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Log at DEBUG regardless of log_level",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
