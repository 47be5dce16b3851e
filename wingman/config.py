"""YAML configuration loader, provider selection and credential lookup."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Literal, Union

import yaml
from pydantic import BaseModel, Field, TypeAdapter

from wingman.errors import ConfigError


# ── Path Constants ──
_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
_DEFAULT_CONFIG = _CONFIG_DIR / "config.yml"

# Provider names used in config.yml / the CLI, mapped to ProviderConfig kinds
PROVIDER_KINDS = {
    "gemini": "cloud_multimodal",
    "ollama": "local_server",
    "openai": "cloud_chat",
}


# ── Provider selection (tagged union) ──

class CloudMultimodalConfig(BaseModel):
    kind: Literal["cloud_multimodal"] = "cloud_multimodal"
    api_key: str = Field(default="", repr=False)
    model_name: str = "gemini-2.0-flash"


class LocalServerConfig(BaseModel):
    kind: Literal["local_server"] = "local_server"
    model_name: str = "llama3.2"
    base_url: str = "http://localhost:11434"
    temperature: float = 0.7
    top_p: float = 0.9


class CloudChatConfig(BaseModel):
    kind: Literal["cloud_chat"] = "cloud_chat"
    api_key: str = Field(default="", repr=False)
    model_name: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    temperature: float = 0.7
    max_completion_tokens: int = 4096


ProviderConfig = Annotated[
    Union[CloudMultimodalConfig, LocalServerConfig, CloudChatConfig],
    Field(discriminator="kind"),
]

_provider_adapter: TypeAdapter = TypeAdapter(ProviderConfig)


def parse_provider_config(raw: dict) -> CloudMultimodalConfig | LocalServerConfig | CloudChatConfig:
    """Validate a plain dict (e.g. from an IPC call) into a ProviderConfig variant."""
    try:
        return _provider_adapter.validate_python(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid provider config: {exc}") from exc


# ── Pydantic Models ──

class GeminiSettings(BaseModel):
    model: str = "gemini-2.0-flash"


class OllamaSettings(BaseModel):
    model: str = "llama3.2"
    base_url: str = "http://localhost:11434"
    temperature: float = 0.7
    top_p: float = 0.9


class OpenAISettings(BaseModel):
    model: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    temperature: float = 0.7
    max_completion_tokens: int = 4096


class LLMConfig(BaseModel):
    provider: str = "gemini"
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    ollama: OllamaSettings = Field(default_factory=OllamaSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)


class WhisperSettings(BaseModel):
    model: str = "whisper-1"
    api_base: str = "https://api.openai.com/v1"
    language: str = ""


class STTConfig(BaseModel):
    provider: str = "whisper"
    whisper: WhisperSettings = Field(default_factory=WhisperSettings)


class WeaviateSettings(BaseModel):
    url: str = ""
    collection: str = "ProcurementContext"
    content_field: str = "summary"
    label_field: str = "name"
    # property name -> label shown in the rendered context block
    extra_fields: dict[str, str] = Field(default_factory=dict)
    limit: int = 5


class KontextSettings(BaseModel):
    api_url: str = "https://api.kontext.dev"
    user_id: str = ""
    top_k: int = 5


class ContextConfig(BaseModel):
    provider: str = "none"  # none | weaviate | kontext
    max_chars: int = 4000
    weaviate: WeaviateSettings = Field(default_factory=WeaviateSettings)
    kontext: KontextSettings = Field(default_factory=KontextSettings)


class HttpConfig(BaseModel):
    timeout: float = 60.0
    verify_ssl: bool = True


class PromptConfig(BaseModel):
    system_prompt: str = (
        "You are a negotiation and procurement assistant. Give fast, evidence-driven, "
        "actionable support. Be concise and operational."
    )
    extract_instruction: str = (
        "Analyze these images and extract the situation they show as JSON:\n"
        "{\n"
        '  "problem_statement": "A clear statement of the problem or situation depicted in the images.",\n'
        '  "context": "Relevant background or context from the images.",\n'
        '  "suggested_responses": ["First possible answer or action", "Second possible answer or action"],\n'
        '  "reasoning": "Why these suggestions are appropriate."\n'
        "}\n"
        "Important: Return ONLY the JSON object, without any markdown formatting or code blocks."
    )
    solution_instruction: str = (
        "Respond in the following JSON format:\n"
        "{\n"
        '  "solution": {\n'
        '    "code": "The main answer here.",\n'
        '    "problem_statement": "Restate the problem or situation.",\n'
        '    "context": "Relevant background/context.",\n'
        '    "suggested_responses": ["First possible answer or action", "Second possible answer or action"],\n'
        '    "reasoning": "Why these suggestions are appropriate."\n'
        "  }\n"
        "}\n"
        "Important: Return ONLY the JSON object, without any markdown formatting or code blocks."
    )
    media_instruction: str = (
        "Describe this content in a short, concise answer. In addition to your main answer, "
        "suggest several possible actions or responses the user could take next. "
        "Do not return a structured JSON object, just answer naturally as you would to a user."
    )
    chat_instruction: str = (
        "Answer in plain text without markdown. Give your answer as a short numbered list "
        "of tactical points the user can act on immediately."
    )


class AppConfig(BaseModel):
    debug: bool = False


class Config(BaseModel):
    """Root configuration model."""

    app: AppConfig = Field(default_factory=AppConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    stt: STTConfig = Field(default_factory=STTConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    prompts: PromptConfig = Field(default_factory=PromptConfig)

    def toggle_llm(self, provider: str) -> None:
        """Switch the configured LLM provider (gemini | ollama | openai)."""
        if provider not in PROVIDER_KINDS:
            raise ConfigError(f"Unknown LLM provider: {provider}. Allowed: {list(PROVIDER_KINDS)}")
        self.llm.provider = provider

    def provider_config(self, provider: str | None = None) -> CloudMultimodalConfig | LocalServerConfig | CloudChatConfig:
        """Build the tagged ProviderConfig for a provider, with credentials from the environment."""
        provider = provider or self.llm.provider
        if provider == "gemini":
            return CloudMultimodalConfig(
                api_key=os.getenv("GEMINI_API_KEY", ""),
                model_name=self.llm.gemini.model,
            )
        if provider == "ollama":
            return LocalServerConfig(
                model_name=os.getenv("OLLAMA_MODEL", self.llm.ollama.model),
                base_url=os.getenv("OLLAMA_URL", self.llm.ollama.base_url),
                temperature=self.llm.ollama.temperature,
                top_p=self.llm.ollama.top_p,
            )
        if provider == "openai":
            return CloudChatConfig(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                model_name=self.llm.openai.model,
                api_base=self.llm.openai.api_base,
                temperature=self.llm.openai.temperature,
                max_completion_tokens=self.llm.openai.max_completion_tokens,
            )
        raise ConfigError(f"Unknown LLM provider: {provider}. Allowed: {list(PROVIDER_KINDS)}")


# ── Config Loader ──

def load_config(path: Path | str | None = None) -> Config:
    """Load configuration from YAML file.

    Environment variable overrides:
      - WINGMAN_CONFIG_PATH: path to config YAML
    A missing default file yields the built-in defaults; an explicit path must exist.
    """
    if path is None:
        env_path = os.getenv("WINGMAN_CONFIG_PATH")
        if env_path is None and not _DEFAULT_CONFIG.exists():
            return Config()
        path = Path(env_path or _DEFAULT_CONFIG)
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return Config(**raw)
