"""Google Gemini provider: multimodal prompts (text + image/audio parts)."""

from __future__ import annotations

import base64
import logging

from wingman.errors import ConfigError, GenerationError
from wingman.providers.base import BaseLLM
from wingman.schema import InlineMedia, Message, TextPart
from wingman.utils.stream import ChunkCallback

logger = logging.getLogger(__name__)


class GeminiLLM(BaseLLM):
    """Gemini implementation over the google-genai SDK.

    Accepts images and audio inline; replies in one blocking round trip.
    """

    name = "gemini"
    accepts_images = True
    accepts_audio = True
    supports_streaming = False

    def __init__(self, config, http=None, transport=None) -> None:
        super().__init__(config, http, transport)
        self._client = None

    def _get_client(self):
        """Lazy-init Gemini client."""
        if self._client is None:
            from google import genai
            if not self.config.api_key:
                raise ConfigError("Gemini API key is not set")
            self._client = genai.Client(api_key=self.config.api_key)
        return self._client

    async def complete(
        self,
        messages: list[Message],
        *,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        from google.genai import types

        client = self._get_client()
        system_text = "\n\n".join(m.text() for m in messages if m.role == "system")

        parts = []
        media_count = 0
        for message in messages:
            if message.role == "system":
                continue
            for part in message.parts():
                if isinstance(part, TextPart):
                    parts.append(types.Part(text=part.text))
                elif isinstance(part, InlineMedia):
                    media_count += 1
                    parts.append(types.Part.from_bytes(
                        data=base64.b64decode(part.data),
                        mime_type=part.mime_type,
                    ))

        logger.debug(
            f"[GeminiLLM] generate: model={self.model}, parts={len(parts)}, media={media_count}"
        )

        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(
                    system_instruction=system_text or None,
                ),
            )
        except Exception as e:
            logger.error(f"[GeminiLLM] Error calling Gemini: {e}")
            raise GenerationError(
                f"Gemini request failed: {e}",
                status_code=getattr(e, "code", None),
            ) from e

        return response.text or ""
