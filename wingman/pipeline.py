"""Main orchestration pipeline. Ties together LLM providers, STT and context retrieval.

Audio flow for text-only providers:
  Audio → STT Transcribe → Context Lookup (best-effort) → LLM Generate (streamed)
Multimodal providers take the audio inline and skip the first two stages.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import httpx

from wingman.config import Config, parse_provider_config
from wingman.errors import ConfigError, GenerationError, TranscriptionError, UnsupportedOperationError
from wingman.providers.base import BaseContext, BaseLLM, BaseSTT
from wingman.providers.factory import create_context, create_llm, create_stt
from wingman.providers.llm.ollama_llm import OllamaLLM
from wingman.schema import (
    AnalysisResult,
    ConnectionStatus,
    ContextLookup,
    InlineMedia,
    Message,
    ModelDetection,
    StructuredSolution,
    TextPart,
    dump_problem_info,
)
from wingman.utils.logging import latency_tracker
from wingman.utils.media import file_to_inline_media, guess_mime_type
from wingman.utils.parsing import parse_structured_solution
from wingman.utils.stream import ChunkCallback

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AssistantPipeline:
    """Provider-agnostic entry point used by the UI.

    Holds exactly one LLM client at a time. Calls are meant to be issued one
    at a time per instance; concurrent callers must serialize or use separate
    pipelines.
    """

    def __init__(
        self,
        provider_config,
        settings: Config | None = None,
        *,
        stt: BaseSTT | None = None,
        context: BaseContext | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or Config()
        self._transport = transport
        self._stt_override = stt

        if isinstance(provider_config, dict):
            provider_config = parse_provider_config(provider_config)

        self._llm: BaseLLM = create_llm(provider_config, self.settings.http, transport)
        self.stt: BaseSTT = stt or create_stt(self.settings, provider_config, transport)
        self.context: BaseContext | None = context if context is not None else create_context(self.settings, transport)

        logger.info(
            f"[Pipeline] Initialized: provider={self.current_provider}, model={self.current_model}, "
            f"context={self.context.name if self.context else 'off'}"
        )

    @classmethod
    async def create(cls, provider_config, settings: Config | None = None, **kwargs: Any) -> "AssistantPipeline":
        """Construct and run local model auto-detection."""
        pipeline = cls(provider_config, settings, **kwargs)
        await pipeline.initialize()
        return pipeline

    async def initialize(self) -> ModelDetection | None:
        """Probe the local server and swap in an installed model if needed.

        Never raises: a failed probe keeps the configured model and the
        failure surfaces on the first real call.
        """
        if not isinstance(self._llm, OllamaLLM):
            return None
        detection = await self._llm.detect_model()
        if detection.model != self._llm.model:
            self._llm.use_model(detection.model)
        logger.info(
            f"[Pipeline] Ollama model: {self._llm.model}"
            + (f" (degraded: {detection.degraded_reason})" if not detection.is_ok else "")
        )
        return detection

    # ── Provider state ──

    @property
    def llm(self) -> BaseLLM:
        return self._llm

    @property
    def config(self):
        """Effective provider config, including any auto-selected model."""
        return self._llm.config

    @property
    def current_provider(self) -> str:
        return self._llm.name

    @property
    def current_model(self) -> str:
        return self._llm.model

    def is_using_ollama(self) -> bool:
        return isinstance(self._llm, OllamaLLM)

    def is_using_openai(self) -> bool:
        return self._llm.name == "openai"

    async def switch_provider(self, new_config) -> None:
        """Install a new provider, or raise and keep the current one."""
        if isinstance(new_config, dict):
            new_config = parse_provider_config(new_config)

        llm = create_llm(new_config, self.settings.http, self._transport)
        if isinstance(llm, OllamaLLM):
            detection = await llm.detect_model()
            if not detection.is_ok:
                raise ConfigError(
                    f"Cannot switch to Ollama at {llm.base_url}: {detection.degraded_reason}"
                )
            llm.use_model(detection.model)
        stt = self._stt_override or create_stt(self.settings, llm.config, self._transport)

        previous = self.current_provider
        self._llm = llm
        self.stt = stt
        logger.info(f"[Pipeline] Switched provider: {previous} → {self.current_provider} ({self.current_model})")

    async def list_available_models(self) -> list[str]:
        if not isinstance(self._llm, OllamaLLM):
            return []
        try:
            return await self._llm.list_models()
        except GenerationError as e:
            logger.error(f"[Pipeline] Error fetching Ollama models: {e}")
            return []

    async def test_connection(self) -> ConnectionStatus:
        try:
            return await self._llm.test_connection()
        except Exception as e:
            return ConnectionStatus(success=False, error=str(e))

    # ── Structured output ──

    async def extract_structured_problem(self, image_paths: list[str | Path]) -> StructuredSolution:
        """Extract the situation shown in screenshots as a StructuredSolution."""
        self._require_images("extract_structured_problem")
        images = [self._image_media(p) for p in image_paths]
        messages = [
            self._system_message(),
            Message(role="user", content=[TextPart(self.settings.prompts.extract_instruction), *images]),
        ]
        text = await self._generate(messages, "llm_extract")
        return parse_structured_solution(text)

    async def generate_structured_solution(self, problem_info: Any) -> StructuredSolution:
        prompt = (
            f"Given this problem or situation:\n{dump_problem_info(problem_info)}\n\n"
            f"{self.settings.prompts.solution_instruction}"
        )
        logger.info("[Pipeline] Calling LLM for solution...")
        text = await self._generate([self._system_message(), Message(role="user", content=prompt)], "llm_solution")
        solution = parse_structured_solution(text)
        logger.debug(f"[Pipeline] Parsed solution: {solution.model_dump()}")
        return solution

    async def debug_structured_solution(
        self,
        problem_info: Any,
        current_answer: str,
        image_paths: list[str | Path],
    ) -> StructuredSolution:
        self._require_images("debug_structured_solution")
        images = [self._image_media(p) for p in image_paths]
        prompt = (
            "Given:\n"
            f"1. The original problem or situation: {dump_problem_info(problem_info)}\n"
            f"2. The current response or approach: {current_answer}\n"
            "3. The debug information in the provided images\n\n"
            "Analyze the debug information and provide feedback.\n"
            f"{self.settings.prompts.solution_instruction}"
        )
        messages = [
            self._system_message(),
            Message(role="user", content=[TextPart(prompt), *images]),
        ]
        text = await self._generate(messages, "llm_debug")
        return parse_structured_solution(text)

    # ── Free-form analysis ──

    async def analyze_audio_file(
        self,
        path: str | Path,
        on_stream_chunk: ChunkCallback | None = None,
        mime_type: str | None = None,
    ) -> AnalysisResult:
        timestamp = _now_ms()
        mime = mime_type or guess_mime_type(path, default="audio/mpeg")
        if self._llm.accepts_audio:
            return await self._analyze_inline_audio(file_to_inline_media(path, mime), timestamp)

        with latency_tracker("stt_transcribe", logger):
            transcript = await self._transcribe(self.stt.transcribe_file(path, mime))
        return await self._answer_transcript(transcript, on_stream_chunk, timestamp)

    async def analyze_audio_base64(
        self,
        data: str,
        mime_type: str,
        on_stream_chunk: ChunkCallback | None = None,
    ) -> AnalysisResult:
        timestamp = _now_ms()
        if self._llm.accepts_audio:
            return await self._analyze_inline_audio(InlineMedia(data=data, mime_type=mime_type), timestamp)

        with latency_tracker("stt_transcribe", logger):
            transcript = await self._transcribe(self.stt.transcribe_base64(data, mime_type))
        return await self._answer_transcript(transcript, on_stream_chunk, timestamp)

    async def analyze_image_file(self, image_path: str | Path) -> AnalysisResult:
        timestamp = _now_ms()
        self._require_images("analyze_image_file")
        messages = [
            self._system_message(),
            Message(
                role="user",
                content=[
                    TextPart(f"{self.settings.prompts.media_instruction} Be concise and brief."),
                    self._image_media(image_path),
                ],
            ),
        ]
        text = await self._generate(messages, "llm_image")
        return AnalysisResult(text=text, timestamp=timestamp)

    async def chat(self, message: str) -> str:
        prompt = f"{message}\n\n{self.settings.prompts.chat_instruction}"
        return await self._generate(
            [self._system_message(), Message(role="user", content=prompt)],
            "llm_chat",
        )

    # ── Internals ──

    async def _analyze_inline_audio(self, audio: InlineMedia, timestamp: int) -> AnalysisResult:
        messages = [
            self._system_message(),
            Message(role="user", content=[TextPart(self.settings.prompts.media_instruction), audio]),
        ]
        text = await self._generate(messages, "llm_audio")
        return AnalysisResult(text=text, timestamp=timestamp)

    async def _transcribe(self, pending) -> str:
        try:
            transcript = await pending
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(f"Failed to transcribe audio: {e}") from e
        logger.info(f"[Pipeline] Transcription: \"{transcript}\"")
        return transcript

    async def _answer_transcript(
        self,
        transcript: str,
        on_stream_chunk: ChunkCallback | None,
        timestamp: int,
    ) -> AnalysisResult:
        with latency_tracker("context_lookup", logger):
            lookup = await self._lookup_context(transcript)

        user_prompt = f"The following is a transcription of an audio clip:\n\n\"{transcript}\"\n\n"
        context_text = lookup.result.render(self.settings.context.max_chars) if lookup.is_ok else ""
        if context_text.strip():
            user_prompt += f"Relevant Context from Knowledge Base:\n{context_text}\n\n"
            logger.info("[Pipeline] Using knowledge base context in prompt")
        else:
            logger.info(f"[Pipeline] No knowledge base context available ({lookup.degraded_reason or 'no matches'})")
        user_prompt += f"{self.settings.prompts.media_instruction} Be concise."

        streaming = on_stream_chunk is not None and self._llm.supports_streaming
        text = await self._generate(
            [self._system_message(), Message(role="user", content=user_prompt)],
            "llm_generate",
            stream=streaming,
            on_chunk=on_stream_chunk if streaming else None,
        )
        return AnalysisResult(text=text, timestamp=timestamp)

    async def _lookup_context(self, query: str) -> ContextLookup:
        if self.context is None:
            return ContextLookup.degraded("context retrieval disabled")
        if not query.strip():
            return ContextLookup.degraded("empty transcript")
        try:
            return await self.context.fetch_context(query)
        except Exception as e:
            logger.error(f"[Pipeline] Context lookup failed, continuing without context: {e}")
            return ContextLookup.degraded(str(e))

    async def _generate(
        self,
        messages: list[Message],
        stage: str,
        *,
        stream: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        with latency_tracker(stage, logger):
            text = await self._llm.complete(messages, stream=stream, on_chunk=on_chunk)
        logger.info(f"[Pipeline] {stage}: {len(text)} chars from {self.current_provider}")
        return text

    def _system_message(self) -> Message:
        return Message(role="system", content=self.settings.prompts.system_prompt)

    def _image_media(self, path: str | Path) -> InlineMedia:
        return file_to_inline_media(path, guess_mime_type(path, default="image/png"))

    def _require_images(self, operation: str) -> None:
        if not self._llm.accepts_images:
            raise UnsupportedOperationError(
                f"{operation} needs an image-capable provider; {self.current_provider} is text-only"
            )
