"""Text-to-speech providers.

- `RemoteTTS`: the primary voice, a backend speech service reached with httpx
  that returns a reference (URL) to the synthesized audio.
- `PiperTTS`: the on-device fallback, the `piper` CLI run as a subprocess.
  It needs no network.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from interview_room.errors import SynthesisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteTTSConfig:
    base_url: str = "http://localhost:3001"
    path: str = "/speech/fpt-speak"
    proxy_path: str | None = "/speech/proxy-audio"
    voice: str = "banmai"
    language: str = "en-US"
    audio_format: str = "wav"
    timeout_s: float = 30.0


class RemoteTTS:
    """Backend text-to-speech client."""

    def __init__(self, config: RemoteTTSConfig | None = None, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or RemoteTTSConfig()
        self._client = client

    @property
    def config(self) -> RemoteTTSConfig:
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

    async def synthesize(self, text: str) -> str:
        """Ask the service to synthesize ``text``; return the audio reference."""
        client = await self._get_client()
        try:
            response = await client.post(
                self._config.path,
                json={
                    "text": text,
                    "voice": self._config.voice,
                    "language": self._config.language,
                    "format": self._config.audio_format,
                },
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SynthesisError(f"TTS request failed: {e}", provider="remote") from e

        url = _extract_audio_url(body)
        if not url:
            raise SynthesisError(f"TTS response has no audio reference: {str(body)[:200]}", provider="remote")
        return url

    def proxied(self, url: str) -> str | None:
        if not self._config.proxy_path:
            return None
        return f"{self._config.base_url.rstrip('/')}{self._config.proxy_path}?url={quote(url, safe='')}"

    async def probe(self, url: str) -> str | None:
        """Return a fetchable URL for ``url`` (proxied first, then direct), or None."""
        client = await self._get_client()
        for candidate in (self.proxied(url), url):
            if not candidate:
                continue
            try:
                r = await client.head(candidate, follow_redirects=True)
            except httpx.HTTPError as e:
                logger.debug(f"[VOICE][TTS] probe failed url={candidate} err={e}")
                continue
            if r.is_success:
                return candidate
        return None

    async def fetch(self, url: str) -> bytes:
        client = await self._get_client()
        try:
            r = await client.get(url, follow_redirects=True)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise SynthesisError(f"Could not download synthesized audio: {e}", provider="remote") from e
        return r.content


def _extract_audio_url(body: Any) -> str | None:
    # Accepted shapes: {"status": true, "data": {"audioUrl": ...}}, {"audioUrl": ...},
    # {"data": "<url>"}, or a bare string.
    if isinstance(body, str):
        return body or None
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict) and isinstance(data.get("audioUrl"), str):
        return data["audioUrl"]
    if isinstance(body.get("audioUrl"), str):
        return body["audioUrl"]
    if isinstance(data, str):
        return data
    return None


@dataclass(frozen=True)
class TTSConfig:
    piper_bin: str = "piper"
    model_path: str | None = None  # default *.onnx voice
    voices: dict[str, str] = field(default_factory=dict)  # language prefix -> *.onnx
    language: str = "en-US"
    speaker_id: int | None = None
    length_scale: float | None = None  # >1 speaks slower
    max_chars_per_chunk: int = 350
    timeout_s: float = 60.0


class TTSProvider:
    async def synthesize_to_wavs(self, text: str, out_dir: str | Path, base_name: str) -> list[Path]:
        raise NotImplementedError


class PiperTTS(TTSProvider):
    def __init__(self, config: TTSConfig | None = None) -> None:
        self._config = config or TTSConfig()
        self._validated_piper_path: str | None = None

    @property
    def config(self) -> TTSConfig:
        return self._config

    def select_model(self, language: str | None = None) -> str | None:
        """Pick the voice model matching ``language`` (e.g. "vi-VN" -> voices["vi"])."""
        lang = (language or self._config.language or "").lower()
        voices = {k.lower(): v for k, v in self._config.voices.items()}
        if lang in voices:
            return voices[lang]
        prefix = lang.split("-", 1)[0]
        if prefix in voices:
            return voices[prefix]
        if self._config.model_path:
            return self._config.model_path
        # Any voice beats silence.
        return next(iter(voices.values()), None)

    def is_available(self) -> tuple[bool, str]:
        try:
            _ = self._require_piper()
            return True, "ok"
        except RuntimeError as e:
            return False, str(e)

    def _require_piper(self) -> str:
        if self._validated_piper_path:
            return self._validated_piper_path

        p = shutil.which(self._config.piper_bin)
        if not p:
            raise RuntimeError(
                "piper CLI not found. Install piper (binary) and ensure it's on PATH, "
                "or set PIPER_BIN to the binary path."
            )
        if not self.select_model():
            raise RuntimeError("No Piper voice configured. Set PIPER_VOICES='{\"en\": \"/path/to/voice.onnx\"}'.")

        self._validated_piper_path = p
        return p

    def _chunk_text(self, text: str) -> list[str]:
        t = (text or "").strip()
        if not t:
            return []

        # Split on sentence-ish boundaries, then re-pack into chunks.
        parts = [p.strip() for p in re.split(r"(?<=[.!?])\s+", t) if p.strip()]
        chunks: list[str] = []
        current = ""
        for p in parts:
            if not current:
                current = p
                continue
            if len(current) + 1 + len(p) <= self._config.max_chars_per_chunk:
                current = current + " " + p
            else:
                chunks.append(current)
                current = p
        if current:
            chunks.append(current)
        return chunks

    async def synthesize_to_wavs(self, text: str, out_dir: str | Path, base_name: str) -> list[Path]:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        try:
            piper_bin = self._require_piper()
        except RuntimeError as e:
            raise SynthesisError(str(e), provider="piper") from e

        model = self.select_model()
        wavs: list[Path] = []
        for idx, chunk in enumerate(self._chunk_text(text)):
            wav_path = out_dir / f"{base_name}_{idx:02d}.wav"
            cmd = [piper_bin, "--model", str(model), "--output_file", str(wav_path)]
            if self._config.speaker_id is not None:
                cmd += ["--speaker", str(self._config.speaker_id)]
            if self._config.length_scale is not None:
                cmd += ["--length_scale", str(self._config.length_scale)]
            await asyncio.to_thread(self._run_piper, cmd, chunk)
            wavs.append(wav_path)
        return wavs

    def _run_piper(self, cmd: list[str], chunk: str) -> None:
        try:
            subprocess.run(
                cmd,
                input=chunk,
                text=True,
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self._config.timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            raise SynthesisError(
                f"piper timed out after {self._config.timeout_s:.1f}s. "
                "Consider reducing max_chars_per_chunk or increasing timeout_s.",
                provider="piper",
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise SynthesisError(
                f"piper failed (exit={e.returncode}). stderr={stderr or '<empty>'}",
                provider="piper",
            ) from e
        except OSError as e:
            raise SynthesisError(f"piper could not be executed: {e}", provider="piper") from e
