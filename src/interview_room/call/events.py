"""
Normalized call events and a small pub/sub bus.

Whatever drives the call (a live voice SDK or the local scripted sequencer)
reports through these four events, so the orchestrator never sees SDK
specifics.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from interview_room.orchestrator.schemas import Speaker

logger = logging.getLogger(__name__)


class CallEventType(str, Enum):
    """Types of call events."""

    STARTED = "started"
    ENDED = "ended"
    SPEECH_TURN = "speech_turn"
    ERROR = "error"


@dataclass(frozen=True)
class CallEvent:
    """Base class for all call events."""

    type: CallEventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    speaker: Speaker | None = None
    text: str = ""
    message: str = ""
    reason: str = ""

    @classmethod
    def started(cls) -> CallEvent:
        return cls(type=CallEventType.STARTED)

    @classmethod
    def ended(cls, reason: str = "call_ended") -> CallEvent:
        return cls(type=CallEventType.ENDED, reason=reason)

    @classmethod
    def speech_turn(cls, speaker: Speaker, text: str) -> CallEvent:
        return cls(type=CallEventType.SPEECH_TURN, speaker=speaker, text=text)

    @classmethod
    def error(cls, message: str) -> CallEvent:
        return cls(type=CallEventType.ERROR, message=message)


CallEventListener = Callable[[CallEvent], None]


class EventBus:
    """Synchronous fan-out of call events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[CallEventListener] = []

    def subscribe(self, listener: CallEventListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: CallEvent) -> None:
        """Deliver ``event`` to every listener, in subscription order."""
        logger.debug(f"[CALL] event={event.type.value} speaker={event.speaker} reason={event.reason}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"[CALL] listener failed for event={event.type.value}")

    def clear(self) -> None:
        self._listeners.clear()
