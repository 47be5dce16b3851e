"""Local Ollama provider (text-only, non-streaming).

Endpoints:
  - POST {base_url}/api/generate  {model, prompt, stream:false, options:{temperature, top_p}}
      → {"response": "...", "done": true}
  - GET  {base_url}/api/tags      → {"models": [{"name": "llama3.2:latest"}, ...]}
"""

from __future__ import annotations

import logging

import httpx

from wingman.errors import GenerationError, UnsupportedOperationError
from wingman.providers.base import BaseLLM
from wingman.schema import ConnectionStatus, Message, ModelDetection
from wingman.utils.http import make_client
from wingman.utils.stream import ChunkCallback

logger = logging.getLogger(__name__)


class OllamaLLM(BaseLLM):
    """Ollama /api/generate implementation."""

    name = "ollama"
    accepts_images = False
    accepts_audio = False
    supports_streaming = False

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def use_model(self, model_name: str) -> None:
        """Point this client at another installed model."""
        self.config = self.config.model_copy(update={"model_name": model_name})

    async def complete(
        self,
        messages: list[Message],
        *,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        for message in messages:
            if message.media():
                raise UnsupportedOperationError("Ollama provider accepts text prompts only")
        prompt = "\n\n".join(m.text() for m in messages if m.text())
        return await self.generate(prompt)

    async def generate(self, prompt: str, model: str | None = None) -> str:
        payload = {
            "model": model or self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "top_p": self.config.top_p,
            },
        }
        logger.debug(f"[OllamaLLM] generate: model={payload['model']}, prompt_chars={len(prompt)}")

        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[OllamaLLM] Error calling Ollama: {e}")
            raise GenerationError(
                f"Failed to connect to Ollama: {e}. Make sure Ollama is running on {self.base_url}"
            ) from e

        if not response.is_success:
            raise GenerationError(
                f"Ollama API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text[:500],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError(f"Ollama returned invalid JSON at {self.base_url}/api/generate") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GenerationError("Ollama /api/generate response missing response text", body=data)
        return text

    async def list_models(self) -> list[str]:
        """Installed model names. Raises GenerationError if the server can't be queried."""
        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.get(f"{self.base_url}/api/tags")
        except httpx.HTTPError as e:
            raise GenerationError(f"Ollama not reachable at {self.base_url}: {e}") from e

        if not response.is_success:
            raise GenerationError(
                f"Failed to fetch models: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError("Ollama /api/tags returned invalid JSON") from e

        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]

    async def ping(self) -> bool:
        """True when /api/tags answers with 2xx."""
        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.get(f"{self.base_url}/api/tags")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def detect_model(self) -> ModelDetection:
        """Resolve the model to use: the configured one if installed, else the first installed one."""
        configured = self.model
        try:
            available = await self.list_models()
        except GenerationError as e:
            logger.warning(f"[OllamaLLM] Model probe failed, keeping '{configured}': {e}")
            return ModelDetection(model=configured, degraded_reason=str(e))

        if not available:
            logger.warning(f"[OllamaLLM] No Ollama models found, keeping '{configured}'")
            return ModelDetection(model=configured, degraded_reason="No Ollama models found")

        if configured in available:
            return ModelDetection(model=configured, available=available)

        logger.info(
            f"[OllamaLLM] Model '{configured}' not installed; "
            f"auto-selected first available model: {available[0]}"
        )
        try:
            await self.generate("Hello", model=available[0])
        except GenerationError as e:
            logger.warning(f"[OllamaLLM] Test call to '{available[0]}' failed: {e}")
        return ModelDetection(model=available[0], available=available)

    async def test_connection(self) -> ConnectionStatus:
        if not await self.ping():
            return ConnectionStatus(success=False, error=f"Ollama not available at {self.base_url}")
        try:
            text = await self.generate("Hello")
        except Exception as e:
            return ConnectionStatus(success=False, error=str(e))
        if not text:
            return ConnectionStatus(success=False, error="Empty response from Ollama")
        return ConnectionStatus(success=True)
