"""
Remote assistant creation.

A live call needs an assistant on the voice provider's side that knows the
candidate and the question list. This service builds that configuration and
registers it, returning the opaque assistant id used to start a call.
"""

import logging
import re
from typing import Any

import httpx

from interview_room.config import get_settings
from interview_room.errors import ConfigurationError, TransientProviderError

logger = logging.getLogger(__name__)

_PLACEHOLDER_KEYS = {"your_vapi_private_key_here", "your_private_api_key"}
_KEY_RE = re.compile(r"^(vapi_sk_|[a-f0-9-]{8,})")

END_CALL_PHRASES = ["goodbye", "bye", "end the interview", "that's all", "thank you, goodbye"]


def build_system_prompt(candidate_name: str, questions: list[str], job_description: str = "") -> str:
    numbered = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(questions))
    role = f"\nROLE:\n{job_description.strip()[:1500]}\n" if job_description.strip() else ""
    return f"""You are a professional AI interviewer conducting an interview with candidate {candidate_name}.
{role}
MISSION:
- Conduct the interview naturally and professionally
- Ask questions one by one in sequence
- Listen and respond appropriately
- Move to the next question after the candidate finishes answering
- End the interview when all questions are completed

INTERVIEW QUESTIONS:
{numbered}

GUIDELINES:
- Start with a friendly professional greeting
- Ask each question naturally and conversationally
- May ask follow-up questions for clarification if needed
- Keep each response under 30 words
- Stay focused on the interview questions

Begin the interview naturally!"""


class AssistantService:
    """
    Creates and deletes interview assistants on the voice provider.
    """

    def __init__(
        self,
        private_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the assistant service.

        Args:
            private_key: Provider private key (uses config if not provided).
            base_url: Provider REST endpoint (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided).
            client: Preconfigured HTTP client (mainly for tests).
        """
        settings = get_settings()
        self._private_key = private_key if private_key is not None else settings.vapi_private_key
        self._base_url = base_url or settings.vapi_base_url
        self._timeout = timeout or settings.http_timeout
        self._language = settings.language
        self._max_duration_s = settings.max_call_duration_s
        self._silence_timeout_s = settings.silence_timeout_s
        self._client = client

    def _require_key(self) -> str:
        key = (self._private_key or "").strip()
        if not key:
            raise ConfigurationError("Voice provider private key is not configured (VAPI_PRIVATE_KEY).")
        if key in _PLACEHOLDER_KEYS:
            raise ConfigurationError("Voice provider private key is still the placeholder value.")
        if not _KEY_RE.match(key):
            raise ConfigurationError("Voice provider private key has an unexpected format.")
        return key

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_assistant_config(
        self,
        candidate_name: str,
        questions: list[str],
        job_description: str = "",
    ) -> dict[str, Any]:
        """
        Build the provider-side assistant definition.

        Args:
            candidate_name: Candidate display name.
            questions: Ordered interview questions.
            job_description: Job description text for context.

        Returns:
            JSON-serializable assistant definition.
        """
        return {
            "name": f"Interview-{candidate_name}"[:40],
            "firstMessage": (
                f"Hi {candidate_name}! I'm your AI interviewer today. "
                f"We have {len(questions)} questions. Are you ready to begin?"
            ),
            "model": {
                "provider": "openai",
                "model": "gpt-4o",
                "temperature": 0.7,
                "messages": [
                    {
                        "role": "system",
                        "content": build_system_prompt(candidate_name, questions, job_description),
                    }
                ],
            },
            "voice": {"provider": "11labs", "voiceId": "21m00Tcm4TlvDq8ikWAM"},
            "transcriber": {
                "provider": "deepgram",
                "model": "nova-2",
                "language": self._language.split("-", 1)[0],
            },
            "endCallMessage": f"Thank you {candidate_name} for your time. Good luck!",
            "endCallPhrases": END_CALL_PHRASES,
            "maxDurationSeconds": int(self._max_duration_s),
            "silenceTimeoutSeconds": int(self._silence_timeout_s),
            "recordingEnabled": False,
        }

    async def create_assistant(
        self,
        candidate_name: str,
        job_description: str,
        questions: list[str],
    ) -> str:
        """
        Register an interview assistant.

        Returns:
            The assistant identifier.

        Raises:
            ConfigurationError: Missing key or malformed response.
            TransientProviderError: Network or provider failure.
        """
        key = self._require_key()
        if not questions:
            raise ConfigurationError("Cannot create an interview assistant without questions.")

        client = await self._get_client()
        payload = self.build_assistant_config(candidate_name, questions, job_description)
        logger.info(f"[CALL] creating assistant for candidate={candidate_name!r} questions={len(questions)}")
        try:
            response = await client.post(
                "/assistant",
                json=payload,
                headers={"Authorization": f"Bearer {key}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise TransientProviderError(
                f"Failed to create assistant: {e.response.status_code} {e.response.text[:200]}",
                provider="vapi",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransientProviderError(f"Failed to create assistant: {e}", provider="vapi") from e

        assistant_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(assistant_id, str) or not assistant_id:
            raise ConfigurationError("Assistant creation response has no id.")
        logger.info(f"[CALL] assistant created id={assistant_id}")
        return assistant_id

    async def delete_assistant(self, assistant_id: str) -> None:
        """Delete a previously created assistant."""
        key = self._require_key()
        client = await self._get_client()
        try:
            response = await client.delete(
                f"/assistant/{assistant_id}",
                headers={"Authorization": f"Bearer {key}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Failed to delete assistant: {e}", provider="vapi") from e
