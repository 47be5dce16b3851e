"""OpenAI Whisper STT provider.

API: POST {api_base}/audio/transcriptions
  - multipart form data:
    - file: audio file (mp3, mp4, mpeg, mpga, m4a, wav, webm)
    - model: "whisper-1"
    - language: optional ISO-639-1 hint
  - Response: { "text": "..." }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Union

import httpx

from wingman.errors import TranscriptionError
from wingman.providers.base import BaseSTT
from wingman.utils.http import error_body, make_client
from wingman.utils.media import detect_audio_format, extension_for_mime

logger = logging.getLogger(__name__)


class WhisperSTT(BaseSTT):
    """Whisper speech-to-text for text-only LLM providers."""

    def __init__(self, config: dict, http=None, transport=None) -> None:
        super().__init__(config, http, transport)
        self._total_calls = 0
        self._total_time_ms = 0.0

    @property
    def endpoint(self) -> str:
        api_base = self.config.get("api_base", "https://api.openai.com/v1")
        return f"{api_base.rstrip('/')}/audio/transcriptions"

    async def transcribe_file(self, path: Union[str, Path], mime_type: str = "audio/mpeg") -> str:
        """Upload an audio file and return the transcript."""
        self._total_calls += 1
        call_id = self._total_calls
        start = time.perf_counter()

        api_key = self.config.get("api_key") or os.getenv("OPENAI_API_KEY", "")
        if not api_key:
            raise TranscriptionError("Failed to transcribe audio: no OpenAI API key configured")

        path = Path(path)
        try:
            audio = path.read_bytes()
        except OSError as e:
            raise TranscriptionError(f"Failed to transcribe audio: cannot read {path}: {e}") from e

        form_data = {"model": self.config.get("model", "whisper-1")}
        if self.config.get("language"):
            form_data["language"] = self.config["language"]

        logger.info(f"[WhisperSTT] Transcribe #{call_id}: {len(audio)} bytes ({mime_type})")

        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    files={"file": (f"audio{extension_for_mime(mime_type)}", audio, mime_type)},
                    data=form_data,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"[WhisperSTT] #{call_id} transport error: {e}")
            raise TranscriptionError(f"Failed to transcribe audio: {e}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000

        if not response.is_success:
            body = error_body(response)
            logger.error(
                f"[WhisperSTT] #{call_id} HTTP {response.status_code} "
                f"after {elapsed_ms:.0f}ms: {str(body)[:500]}"
            )
            detail = json.dumps(body) if not isinstance(body, str) else body
            raise TranscriptionError(
                f"Failed to transcribe audio: {detail}",
                status_code=response.status_code,
                body=body,
            )

        try:
            transcript = response.json().get("text", "")
        except (ValueError, AttributeError) as e:
            raise TranscriptionError("Failed to transcribe audio: invalid JSON reply") from e

        self._total_time_ms += elapsed_ms
        logger.info(f"[WhisperSTT] #{call_id}: \"{transcript}\" ({elapsed_ms:.0f}ms)")
        return transcript or ""

    async def transcribe(self, audio: bytes, mime_type: str | None = "audio/mpeg") -> str:
        """Stage bytes in a temporary file, transcribe it, then always delete it.

        Without a usable MIME type the format is sniffed from the header bytes.
        """
        if not mime_type or mime_type == "application/octet-stream":
            mime_type, _ = detect_audio_format(audio)
        fd, temp_path = tempfile.mkstemp(prefix="audio-", suffix=extension_for_mime(mime_type))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(audio)
            return await self.transcribe_file(temp_path, mime_type)
        finally:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass

    @property
    def stats(self) -> dict:
        return {
            "total_calls": self._total_calls,
            "total_time_ms": round(self._total_time_ms, 1),
            "avg_time_ms": round(
                self._total_time_ms / self._total_calls, 1
            ) if self._total_calls else 0,
        }
