"""
Error taxonomy for the interview room.

Subsystems translate low-level failures (HTTP, PortAudio, subprocess) into one
of these before anything reaches the orchestrator.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Broad category of a failure, used to pick a recovery path."""

    PERMISSION = "permission"
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"


class InterviewRoomError(Exception):
    """Base class for all interview room errors."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, *, provider: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider


class MicrophonePermissionError(InterviewRoomError):
    """Microphone (or camera) access was denied or the device is unavailable."""

    kind = ErrorKind.PERMISSION


class TransientProviderError(InterviewRoomError):
    """A remote provider failed in a way that may succeed on retry."""

    kind = ErrorKind.TRANSIENT


class SynthesisError(TransientProviderError):
    """Text-to-speech failed."""


class TranscriptionError(TransientProviderError):
    """Speech-to-text failed or produced no usable hypothesis."""


class CallStartError(TransientProviderError):
    """The call session could not be started."""


class ConfigurationError(InterviewRoomError):
    """A required identifier or key is missing, or a response was malformed."""

    kind = ErrorKind.CONFIGURATION
