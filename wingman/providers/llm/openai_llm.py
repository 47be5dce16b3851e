"""OpenAI chat-completions provider with SSE streaming.

The transport always requests ``stream: true``; the body is decoded line by
line as it arrives so callers can render partial output.
"""

from __future__ import annotations

import json
import logging

import httpx

from wingman.errors import GenerationError, UnsupportedOperationError
from wingman.providers.base import BaseLLM
from wingman.schema import InlineMedia, Message, TextPart
from wingman.utils.http import error_body, make_client
from wingman.utils.stream import ChunkCallback, decode_stream

logger = logging.getLogger(__name__)


class OpenAIChatLLM(BaseLLM):
    """Chat-completions implementation (text + image parts)."""

    name = "openai"
    accepts_images = True
    accepts_audio = False
    supports_streaming = True

    @property
    def endpoint(self) -> str:
        return f"{self.config.api_base.rstrip('/')}/chat/completions"

    async def complete(
        self,
        messages: list[Message],
        *,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": [self._to_openai_message(m) for m in messages],
            "temperature": self.config.temperature,
            "max_completion_tokens": self.config.max_completion_tokens,
            "stream": True,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        logger.debug(
            f"[OpenAIChatLLM] chat.completions: model={self.model}, "
            f"messages={len(messages)}, callback={'yes' if stream and on_chunk else 'no'}"
        )

        try:
            async with make_client(self.http, self._transport) as client:
                async with client.stream("POST", self.endpoint, json=payload, headers=headers) as response:
                    if not response.is_success:
                        await response.aread()
                        body = error_body(response)
                        raise GenerationError(
                            f"OpenAI API error: {response.status_code} {response.reason_phrase} - "
                            f"{json.dumps(body) if not isinstance(body, str) else body}",
                            status_code=response.status_code,
                            body=body,
                        )
                    return await decode_stream(
                        response.aiter_bytes(),
                        on_chunk if stream else None,
                    )
        except httpx.HTTPError as e:
            logger.error(f"[OpenAIChatLLM] Error calling OpenAI: {e}")
            raise GenerationError(f"Failed to connect to OpenAI: {e}") from e

    @staticmethod
    def _to_openai_message(message: Message) -> dict:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}

        content: list[dict] = []
        for part in message.content:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, InlineMedia):
                if not part.is_image:
                    raise UnsupportedOperationError(
                        f"OpenAI chat provider cannot take {part.mime_type} inline; transcribe audio first"
                    )
                content.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{part.mime_type};base64,{part.data}"},
                })
        return {"role": message.role, "content": content}
