"""Unified provider factory: single entry point for creating LLM, STT and context instances.

Uses registry dicts to avoid if/elif chains. Adding a new provider =
1. Create the class implementing the base ABC
2. Add one entry to the matching registry
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Type

import httpx

from wingman.config import CloudChatConfig, HttpConfig
from wingman.errors import ConfigError
from wingman.providers.base import BaseContext, BaseLLM, BaseSTT
from wingman.providers.context.kontext_context import KontextContext
from wingman.providers.context.weaviate_context import WeaviateContext
from wingman.providers.llm.gemini_llm import GeminiLLM
from wingman.providers.llm.ollama_llm import OllamaLLM
from wingman.providers.llm.openai_llm import OpenAIChatLLM
from wingman.providers.stt.whisper_stt import WhisperSTT

if TYPE_CHECKING:
    from wingman.config import Config


class ProviderFactory:
    """Registry and factory for all providers."""

    # keyed by ProviderConfig.kind
    _LLM: dict[str, Type[BaseLLM]] = {
        "cloud_multimodal": GeminiLLM,
        "local_server": OllamaLLM,
        "cloud_chat": OpenAIChatLLM,
    }
    _STT: dict[str, Type[BaseSTT]] = {"whisper": WhisperSTT}
    _CONTEXT: dict[str, Type[BaseContext]] = {"weaviate": WeaviateContext, "kontext": KontextContext}


def create_llm(
    provider_config,
    http: HttpConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseLLM:
    """Instantiate the LLM client matching a ProviderConfig variant.

    Raises:
        ConfigError: Unknown kind, or a cloud provider without an API key.
    """
    kind = getattr(provider_config, "kind", None)
    cls = ProviderFactory._LLM.get(kind)
    if cls is None:
        raise ConfigError(
            f"Unknown LLM provider kind: {kind}. Available: {list(ProviderFactory._LLM.keys())}"
        )
    if kind == "cloud_chat" and not provider_config.api_key:
        raise ConfigError("OpenAI API key is required for the cloud chat provider")
    if kind == "cloud_multimodal" and not provider_config.api_key:
        raise ConfigError("Either provide a Gemini API key or select the Ollama/OpenAI provider")
    return cls(provider_config, http, transport)


def create_stt(
    config: Config,
    provider_config=None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseSTT:
    """Create the speech-to-text backend.

    The OpenAI key is taken from the active chat provider when there is one,
    otherwise from OPENAI_API_KEY.
    """
    name = config.stt.provider
    cls = ProviderFactory._STT.get(name)
    if cls is None:
        raise ConfigError(f"Unknown stt provider: {name}. Available: {list(ProviderFactory._STT.keys())}")

    config_dict = getattr(config.stt, name).model_dump()
    if isinstance(provider_config, CloudChatConfig):
        config_dict["api_key"] = provider_config.api_key
    else:
        config_dict["api_key"] = os.getenv("OPENAI_API_KEY", "")
    return cls(config_dict, config.http, transport)


def create_context(
    config: Config,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseContext | None:
    """Create the configured context backend, or None when enrichment is disabled."""
    name = config.context.provider
    if not name or name == "none":
        return None
    cls = ProviderFactory._CONTEXT.get(name)
    if cls is None:
        raise ConfigError(
            f"Unknown context provider: {name}. Available: {list(ProviderFactory._CONTEXT.keys())}"
        )
    return cls(getattr(config.context, name).model_dump(), config.http, transport)
