import json

import httpx
import pytest

from interview_room.call.assistant import AssistantService, build_system_prompt
from interview_room.errors import ConfigurationError, TransientProviderError

KEY = "0f1e2d3c-aaaa-bbbb-cccc-1234567890ab"
QUESTIONS = ["Tell me about yourself.", "Why this role?"]


def _service(handler, key: str | None = KEY) -> AssistantService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.vapi.test")
    return AssistantService(private_key=key, client=client)


def test_system_prompt_lists_numbered_questions():
    prompt = build_system_prompt("Alex", QUESTIONS, "Backend developer")
    assert "candidate Alex" in prompt
    assert "1. Tell me about yourself." in prompt
    assert "2. Why this role?" in prompt
    assert "Backend developer" in prompt


@pytest.mark.asyncio
async def test_create_assistant_posts_config_and_returns_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["payload"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "asst-42", "name": "Interview-Alex"})

    service = _service(handler)
    assistant_id = await service.create_assistant("Alex", "Backend developer", QUESTIONS)
    await service.close()

    assert assistant_id == "asst-42"
    assert seen["path"] == "/assistant"
    assert seen["auth"] == f"Bearer {KEY}"
    payload = seen["payload"]
    assert "2 questions" in payload["firstMessage"]
    assert "1. Tell me about yourself." in payload["model"]["messages"][0]["content"]
    assert payload["maxDurationSeconds"] > 0
    assert payload["silenceTimeoutSeconds"] > 0
    assert payload["endCallPhrases"]


@pytest.mark.asyncio
@pytest.mark.parametrize("key", [None, "", "your_vapi_private_key_here", "not a key!"])
async def test_bad_keys_are_configuration_errors(key):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    service = _service(handler, key=key)
    with pytest.raises(ConfigurationError):
        await service.create_assistant("Alex", "", QUESTIONS)


@pytest.mark.asyncio
async def test_no_questions_is_configuration_error():
    service = _service(lambda request: httpx.Response(201, json={"id": "x"}))
    with pytest.raises(ConfigurationError):
        await service.create_assistant("Alex", "", [])


@pytest.mark.asyncio
async def test_provider_failure_is_transient():
    service = _service(lambda request: httpx.Response(500, text="internal error"))
    with pytest.raises(TransientProviderError, match="500"):
        await service.create_assistant("Alex", "", QUESTIONS)


@pytest.mark.asyncio
async def test_response_without_id_is_configuration_error():
    service = _service(lambda request: httpx.Response(200, json={"name": "no id"}))
    with pytest.raises(ConfigurationError):
        await service.create_assistant("Alex", "", QUESTIONS)
