"""Abstract base classes for all providers (LLM, STT, context retrieval).

Every provider implementation inherits from one of these ABCs.
Swapping providers requires zero code changes; pass a different ProviderConfig
or update config.yml.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

import httpx

from wingman.config import HttpConfig
from wingman.errors import TranscriptionError
from wingman.schema import ConnectionStatus, ContextLookup, Message
from wingman.utils.stream import ChunkCallback


class BaseLLM(ABC):
    """Abstract base for LLM backends.

    Capability flags tell the pipeline which inputs a backend can take
    directly and whether it can stream.
    """

    name: str = ""
    accepts_images: bool = False
    accepts_audio: bool = False
    supports_streaming: bool = False

    def __init__(
        self,
        config,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.http = http or HttpConfig()
        self._transport = transport

    @property
    def model(self) -> str:
        return self.config.model_name

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Generate text from a prompt (+ optional inline media).

        Args:
            messages: Ordered system/user messages.
            stream: Request incremental delivery where the backend supports it.
            on_chunk: Called with each text delta while streaming.
        """
        ...

    async def list_models(self) -> list[str]:
        """Models the backend can serve; empty when discovery is not supported."""
        return []

    async def test_connection(self) -> ConnectionStatus:
        """Send a minimal prompt. Never raises."""
        try:
            text = await self.complete([Message(role="user", content="Hello")])
        except Exception as e:
            return ConnectionStatus(success=False, error=str(e))
        if not text:
            return ConnectionStatus(success=False, error=f"Empty response from {self.name}")
        return ConnectionStatus(success=True)


class BaseSTT(ABC):
    """Abstract base for speech-to-text providers."""

    def __init__(
        self,
        config: dict,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.http = http or HttpConfig()
        self._transport = transport

    @abstractmethod
    async def transcribe_file(self, path: Union[str, Path], mime_type: str = "audio/mpeg") -> str:
        """Transcribe an audio file to text."""
        ...

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str | None = "audio/mpeg") -> str:
        """Transcribe in-memory audio bytes to text."""
        ...

    async def transcribe_base64(self, data: str, mime_type: str = "audio/mpeg") -> str:
        """Transcribe an embedded base64 audio payload."""
        try:
            audio = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TranscriptionError(f"Failed to transcribe audio: invalid base64 payload: {e}") from e
        return await self.transcribe(audio, mime_type)


class BaseContext(ABC):
    """Abstract base for semantic-search context backends.

    ``fetch_context`` never raises: failures come back as a degraded lookup.
    """

    name: str = ""

    def __init__(
        self,
        config: dict,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.http = http or HttpConfig()
        self._transport = transport

    @abstractmethod
    async def fetch_context(self, query: str) -> ContextLookup:
        """Look up context for a natural-language query."""
        ...

