"""Speech-to-text providers.

Both return a list of hypotheses; choosing between them is the caller's job.

- `RemoteSTT`: backend speech service reached with httpx (multipart upload).
- `WhisperSTT`: local `faster-whisper`, if installed.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx

from interview_room.errors import TranscriptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hypothesis:
    text: str
    confidence: float  # 0-100


class STTProvider:
    async def transcribe(self, audio: bytes, *, filename: str = "answer.wav") -> list[Hypothesis]:
        raise NotImplementedError


@dataclass(frozen=True)
class RemoteSTTConfig:
    base_url: str = "http://localhost:3001"
    path: str = "/speech/fpt-transcribe"
    content_type: str = "audio/wav"
    timeout_s: float = 30.0


class RemoteSTT(STTProvider):
    """Backend speech-to-text client."""

    def __init__(self, config: RemoteSTTConfig | None = None, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or RemoteSTTConfig()
        self._client = client

    @property
    def config(self) -> RemoteSTTConfig:
        return self._config

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def transcribe(self, audio: bytes, *, filename: str = "answer.wav") -> list[Hypothesis]:
        client = await self._get_client()
        try:
            response = await client.post(
                self._config.path,
                files={"audio": (filename, audio, self._config.content_type)},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TranscriptionError(f"STT request failed: {e}", provider="remote") from e
        return parse_hypotheses(body)


def parse_hypotheses(body: Any) -> list[Hypothesis]:
    """Read hypotheses out of ``{"status", "data": {"hypotheses": [...]}}`` or a bare list."""
    items: Any = body
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict):
            items = data.get("hypotheses")
        else:
            items = body.get("hypotheses")
    if not isinstance(items, list):
        return []

    out: list[Hypothesis] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = item.get("utterance", item.get("text"))
        if not isinstance(text, str):
            continue
        try:
            confidence = float(item.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        out.append(Hypothesis(text=text, confidence=confidence))
    return out


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "small"
    # Default to CPU to avoid hard crashes when CUDA/cuDNN aren't present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    language: str | None = None
    vad_filter: bool = True


class WhisperSTT(STTProvider):
    """faster-whisper wrapper."""

    def __init__(self, config: STTConfig | None = None) -> None:
        self._config = config or STTConfig()
        self._model = None

    @property
    def config(self) -> STTConfig:
        return self._config

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except ImportError as e:  # pragma: no cover
            raise TranscriptionError(
                "faster-whisper is required for local STT. Install with: pip install -e '.[voice]'",
                provider="whisper",
            ) from e

        device = self._config.device
        if device == "auto":
            # Be conservative: prefer CPU unless user explicitly requests CUDA.
            device = "cpu"

        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        return self._model

    async def transcribe(self, audio: bytes, *, filename: str = "answer.wav") -> list[Hypothesis]:
        language = self._config.language.split("-", 1)[0] if self._config.language else None

        def _run() -> list[Hypothesis]:
            model = self._load_model()
            segments, _info = model.transcribe(
                io.BytesIO(audio),
                language=language,
                vad_filter=self._config.vad_filter,
            )
            texts: list[str] = []
            logprobs: list[float] = []
            for s in segments:
                if s.text and s.text.strip():
                    texts.append(s.text.strip())
                    logprobs.append(s.avg_logprob)
            if not texts:
                return []
            confidence = math.exp(sum(logprobs) / len(logprobs)) * 100.0
            return [Hypothesis(text=" ".join(texts), confidence=confidence)]

        try:
            return await asyncio.to_thread(_run)
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(f"faster-whisper failed: {e}", provider="whisper") from e
