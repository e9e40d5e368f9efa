"""
Evaluation handoff sink.

Posts the finished interview (transcript, duration and pass-through context)
to the evaluation service. Scoring happens there, not here.
"""

import logging
from typing import Any

import httpx

from interview_room.config import get_settings
from interview_room.errors import ConfigurationError, TransientProviderError
from interview_room.orchestrator.schemas import InterviewHandoff

logger = logging.getLogger(__name__)


class EvaluationClient:
    """Delivers an InterviewHandoff to the evaluation endpoint."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.evaluation_url
        self._timeout = timeout or settings.http_timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def submit(self, handoff: InterviewHandoff) -> dict[str, Any]:
        """
        Send the handoff for evaluation.

        Args:
            handoff: Completed interview.

        Returns:
            The service's JSON response (empty dict if it returned none).

        Raises:
            ConfigurationError: If no evaluation URL is configured.
            TransientProviderError: On network or service failure.
        """
        if not self._url:
            raise ConfigurationError("Evaluation endpoint is not configured (EVALUATION_URL).")

        payload = handoff.to_payload()
        client = await self._get_client()
        logger.info(
            f"Submitting interview {handoff.session_id} for evaluation "
            f"turns={len(handoff.conversation_history)} duration={handoff.duration:.1f}s"
        )
        try:
            response = await client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientProviderError(f"Evaluation submission failed: {e}", provider="evaluation") from e

        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}
