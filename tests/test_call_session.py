import pytest

from interview_room.call.events import CallEvent, CallEventType, EventBus
from interview_room.call.session_manager import RealtimeCallSession, ScriptedCallSession
from interview_room.errors import CallStartError, ConfigurationError
from interview_room.orchestrator.schemas import AssistantConfig, Speaker
from interview_room.voice.speech_input import SpeechInput
from interview_room.voice.speech_output import SpeechOutput
from interview_room.voice.stt import STTProvider


class FakeDevice:
    """Microphone and speaker in one, like AudioIO."""

    def __init__(self) -> None:
        self.releases = 0
        self.muted = False
        self.stop_playback_calls = 0

    async def start_recording(self, *, end_of_speech=None) -> None:
        pass

    async def stop_recording(self):
        return b""

    def to_wav_bytes(self, audio) -> bytes:
        return bytes(audio)

    def release(self) -> None:
        self.releases += 1

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    async def play_wav(self, wav) -> bool:
        return True

    def stop_playback(self) -> None:
        self.stop_playback_calls += 1


class NullSTT(STTProvider):
    async def transcribe(self, audio: bytes, *, filename: str = "answer.wav"):
        return []


class FakeRealtimeClient:
    """Stand-in for a Vapi-style web SDK client."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.handlers: dict[str, object] = {}
        self.started_with: list[str] = []
        self.stops = 0
        self.muted: bool | None = None

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    async def start(self, assistant_id: str) -> None:
        self.started_with.append(assistant_id)
        if self.fail:
            raise ConnectionError("network unreachable")
        self.fire("call-start")

    def stop(self) -> None:
        self.stops += 1
        self.fire("call-end")

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def fire(self, event: str, *args) -> None:
        self.handlers[event](*args)


def _config(assistant_id: str | None = "asst-123") -> AssistantConfig:
    return AssistantConfig(candidate_name="Alex", questions=["q1"], assistant_id=assistant_id)


def _scripted(device: FakeDevice) -> ScriptedCallSession:
    return ScriptedCallSession(SpeechOutput(audio=device), SpeechInput(audio=device, stt=NullSTT()))


class TestEventBus:
    def test_listener_errors_do_not_stop_delivery(self) -> None:
        bus = EventBus()
        received: list[CallEvent] = []

        def broken(event: CallEvent) -> None:
            raise ValueError("observer bug")

        bus.subscribe(broken)
        unsubscribe = bus.subscribe(received.append)
        bus.emit(CallEvent.started())
        unsubscribe()
        bus.emit(CallEvent.ended())

        assert [e.type for e in received] == [CallEventType.STARTED]


class TestRealtimeCallSession:
    @pytest.mark.asyncio
    async def test_sdk_callbacks_are_normalized(self) -> None:
        client = FakeRealtimeClient()
        session = RealtimeCallSession(lambda: client)
        events: list[CallEvent] = []
        session.subscribe(events.append)

        await session.start(_config())
        client.fire("message", {"type": "transcript", "role": "assistant", "transcript": "Hel", "transcriptType": "partial"})
        client.fire("message", {"type": "transcript", "role": "assistant", "transcript": "Hello Alex!", "transcriptType": "final"})
        client.fire("message", {"type": "transcript", "role": "user", "transcript": "Hi there", "transcriptType": "final"})
        client.fire("message", {"type": "status-update", "status": "in-progress"})
        client.fire("error", {"message": "Meeting ejected"})
        client.fire("call-end")

        assert [e.type for e in events] == [
            CallEventType.STARTED,
            CallEventType.SPEECH_TURN,
            CallEventType.SPEECH_TURN,
            CallEventType.ERROR,
            CallEventType.ENDED,
        ]
        assert (events[1].speaker, events[1].text) == (Speaker.INTERVIEWER, "Hello Alex!")
        assert (events[2].speaker, events[2].text) == (Speaker.CANDIDATE, "Hi there")
        assert events[3].message == "Meeting ejected"
        assert session.is_active is False

    @pytest.mark.asyncio
    async def test_missing_assistant_id_is_configuration_error(self) -> None:
        created = []
        session = RealtimeCallSession(lambda: created.append(1) or FakeRealtimeClient())

        with pytest.raises(ConfigurationError):
            await session.start(_config(assistant_id=None))
        assert created == []
        assert session.initializations == 0

    @pytest.mark.asyncio
    async def test_client_is_initialized_once(self) -> None:
        client = FakeRealtimeClient()
        session = RealtimeCallSession(lambda: client)

        await session.start(_config())
        await session.stop()
        await session.start(_config())

        assert session.initializations == 1
        assert client.started_with == ["asst-123", "asst-123"]

    @pytest.mark.asyncio
    async def test_start_failure_is_call_start_error(self) -> None:
        session = RealtimeCallSession(lambda: FakeRealtimeClient(fail=True))
        with pytest.raises(CallStartError):
            await session.start(_config())

    @pytest.mark.asyncio
    async def test_mute_is_forwarded(self) -> None:
        client = FakeRealtimeClient()
        session = RealtimeCallSession(lambda: client)
        await session.start(_config())

        session.set_muted(True)
        assert client.muted is True
        assert session.is_muted is True

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent_and_releases_microphone(self) -> None:
        device = FakeDevice()
        client = FakeRealtimeClient()
        session = RealtimeCallSession(lambda: client, speech_input=SpeechInput(audio=device, stt=NullSTT()))
        await session.start(_config())

        await session.dispose()
        await session.dispose()

        assert client.stops == 1
        assert device.releases == 1
        with pytest.raises(ConfigurationError):
            await session.start(_config())


class TestScriptedCallSession:
    @pytest.mark.asyncio
    async def test_start_and_stop_emit_events_once(self) -> None:
        session = _scripted(FakeDevice())
        events: list[CallEvent] = []
        session.subscribe(events.append)

        await session.start(_config(assistant_id=None))
        await session.start(_config(assistant_id=None))
        await session.stop()
        await session.stop()

        assert [e.type for e in events] == [CallEventType.STARTED, CallEventType.ENDED]
        assert session.drives_turns is True

    @pytest.mark.asyncio
    async def test_dispose_releases_devices_once(self) -> None:
        device = FakeDevice()
        session = _scripted(device)
        await session.start(_config(assistant_id=None))
        session.set_muted(True)

        await session.dispose()
        await session.dispose()

        assert device.muted is True
        assert device.releases == 1
        assert session.is_disposed is True
        assert session.is_active is False
