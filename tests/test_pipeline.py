from __future__ import annotations

import base64
import json
import os
import tempfile

import httpx
import pytest

from wingman.config import CloudChatConfig, CloudMultimodalConfig, LocalServerConfig
from wingman.errors import (
    ConfigError,
    GenerationError,
    ParseError,
    TranscriptionError,
    UnsupportedOperationError,
)
from wingman.pipeline import AssistantPipeline
from wingman.providers.base import BaseContext
from wingman.schema import ContextLookup, ContextResult, Passage

from conftest import FakeGeminiClient, sse_body

_CHAT = "/v1/chat/completions"
_WHISPER = "/v1/audio/transcriptions"

_SOLUTION_JSON = json.dumps({
    "solution": {
        "code": "Offer a 2-year commitment for 5% off.",
        "problem_statement": "Renewal quote is 12% higher.",
        "context": "Volumes grew 30%.",
        "suggested_responses": ["Ask for volume tiers", "Anchor at last year's price"],
        "reasoning": "Volume growth is leverage.",
    }
})


class StaticContext(BaseContext):
    name = "static"

    def __init__(self, lookup: ContextLookup) -> None:
        super().__init__({})
        self.lookup = lookup
        self.queries: list[str] = []

    async def fetch_context(self, query: str) -> ContextLookup:
        self.queries.append(query)
        return self.lookup


class ExplodingContext(BaseContext):
    name = "exploding"

    async def fetch_context(self, query: str) -> ContextLookup:
        raise RuntimeError("vector store on fire")


@pytest.fixture
def staging_dir(tmp_path, monkeypatch):
    staging = tmp_path / "staging"
    staging.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(staging))
    return staging


def _tags(router, *names: str) -> None:
    router.add("GET", "/api/tags", httpx.Response(200, json={"models": [{"name": n} for n in names]}))


def _gemini(settings, reply="ok") -> AssistantPipeline:
    pipeline = AssistantPipeline(CloudMultimodalConfig(api_key="g-test"), settings)
    pipeline.llm._client = FakeGeminiClient(reply)
    return pipeline


def _png(tmp_path, name: str):
    path = tmp_path / name
    path.write_bytes(b"\x89PNG\r\n\x1a\nfake")
    return path


# ── Construction ──

def test_cloud_chat_without_key_is_config_error(settings) -> None:
    with pytest.raises(ConfigError):
        AssistantPipeline(CloudChatConfig(api_key=""), settings)


def test_gemini_without_key_is_config_error(settings) -> None:
    with pytest.raises(ConfigError):
        AssistantPipeline(CloudMultimodalConfig(), settings)


def test_dict_config_is_accepted(settings) -> None:
    pipeline = AssistantPipeline({"kind": "cloud_chat", "api_key": "sk-test", "model_name": "gpt-4o-mini"}, settings)

    assert pipeline.current_provider == "openai"
    assert pipeline.current_model == "gpt-4o-mini"
    assert pipeline.is_using_openai()
    assert not pipeline.is_using_ollama()


@pytest.mark.asyncio
async def test_local_construction_substitutes_first_available_model(settings, router) -> None:
    _tags(router, "a", "b")

    pipeline = await AssistantPipeline.create(LocalServerConfig(model_name="c"), settings, transport=router.transport)

    assert pipeline.current_model == "a"
    assert pipeline.config.model_name == "a"


@pytest.mark.asyncio
async def test_local_construction_survives_failed_probe_and_fails_lazily(settings, router) -> None:
    pipeline = await AssistantPipeline.create(LocalServerConfig(model_name="c"), settings, transport=router.transport)

    assert pipeline.current_model == "c"
    with pytest.raises(GenerationError) as exc_info:
        await pipeline.chat("hello")
    assert exc_info.value.status_code == 404


# ── Switching ──

@pytest.mark.asyncio
async def test_switch_and_switch_back_restores_config(settings) -> None:
    original = CloudMultimodalConfig(api_key="g-test", model_name="gemini-2.0-flash")
    pipeline = AssistantPipeline(original, settings)

    await pipeline.switch_provider(CloudChatConfig(api_key="sk-test", model_name="gpt-4o"))
    assert pipeline.current_provider == "openai"

    await pipeline.switch_provider(original)
    assert pipeline.current_provider == "gemini"
    assert pipeline.config == original


@pytest.mark.asyncio
async def test_switch_back_to_auto_detected_local_model(settings, router) -> None:
    _tags(router, "a", "b")
    pipeline = await AssistantPipeline.create(LocalServerConfig(model_name="c"), settings, transport=router.transport)
    saved = pipeline.config

    await pipeline.switch_provider(CloudChatConfig(api_key="sk-test"))
    await pipeline.switch_provider(saved)

    assert pipeline.config == saved
    assert pipeline.current_model == "a"


@pytest.mark.asyncio
async def test_failed_local_switch_keeps_previous_provider(settings, router) -> None:
    pipeline = AssistantPipeline(CloudChatConfig(api_key="sk-test"), settings, transport=router.transport)

    with pytest.raises(ConfigError):
        await pipeline.switch_provider(LocalServerConfig(model_name="llama3.2"))

    assert pipeline.current_provider == "openai"
    assert pipeline.current_model == "gpt-4o"


@pytest.mark.asyncio
async def test_switch_without_key_keeps_previous_provider(settings) -> None:
    pipeline = _gemini(settings)

    with pytest.raises(ConfigError):
        await pipeline.switch_provider(CloudChatConfig())

    assert pipeline.current_provider == "gemini"


@pytest.mark.asyncio
async def test_list_available_models(settings, router) -> None:
    assert await _gemini(settings).list_available_models() == []

    _tags(router, "llama3.2:latest", "qwen2.5")
    local = await AssistantPipeline.create(LocalServerConfig(model_name="qwen2.5"), settings, transport=router.transport)
    assert await local.list_available_models() == ["llama3.2:latest", "qwen2.5"]


@pytest.mark.asyncio
async def test_list_available_models_never_fails(settings, router) -> None:
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)

    assert await pipeline.list_available_models() == []


@pytest.mark.asyncio
async def test_test_connection_never_raises(settings) -> None:
    status = await _gemini(settings, RuntimeError("invalid key")).test_connection()

    assert status.success is False
    assert "invalid key" in status.error
    assert status.to_dict() == {"success": False, "error": status.error}


# ── Structured output ──

@pytest.mark.asyncio
async def test_generate_solution_on_local_server(settings, router) -> None:
    router.add(
        "POST",
        "/api/generate",
        httpx.Response(200, json={"response": f"```json\n{_SOLUTION_JSON}\n```", "done": True}),
    )
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)

    solution = await pipeline.generate_structured_solution({"problem_statement": "Renewal quote up 12%"})

    assert solution.code == "Offer a 2-year commitment for 5% off."
    assert solution.suggested_responses[0] == "Ask for volume tiers"
    prompt = router.json_body("/api/generate")["prompt"]
    assert prompt.startswith(settings.prompts.system_prompt)
    assert '"problem_statement": "Renewal quote up 12%"' in prompt


@pytest.mark.asyncio
async def test_generate_solution_on_chat_completions(settings, router) -> None:
    half = len(_SOLUTION_JSON) // 2
    router.add("POST", _CHAT, httpx.Response(200, content=sse_body(_SOLUTION_JSON[:half], _SOLUTION_JSON[half:])))
    pipeline = AssistantPipeline(CloudChatConfig(api_key="sk-test"), settings, transport=router.transport)

    solution = await pipeline.generate_structured_solution({"q": 1})

    assert solution.reasoning == "Volume growth is leverage."
    messages = router.json_body(_CHAT)["messages"]
    assert [m["role"] for m in messages] == ["system", "user"]


@pytest.mark.asyncio
async def test_generate_solution_with_non_json_reply_is_parse_error(settings) -> None:
    pipeline = _gemini(settings, "I think you should push back on price.")

    with pytest.raises(ParseError):
        await pipeline.generate_structured_solution({"q": 1})


@pytest.mark.asyncio
async def test_extract_problem_sends_all_images_in_one_call(settings, tmp_path) -> None:
    reply = json.dumps({
        "problem_statement": "Supplier email demands a surcharge.",
        "context": "Contract has a fixed-price clause.",
        "suggested_responses": ["Cite the clause"],
        "reasoning": "Contract terms apply.",
    })
    pipeline = _gemini(settings, reply)
    images = [_png(tmp_path, "one.png"), _png(tmp_path, "two.png")]

    problem = await pipeline.extract_structured_problem(images)

    assert problem.problem_statement == "Supplier email demands a surcharge."
    calls = pipeline.llm._client.calls
    assert len(calls) == 1
    parts = calls[0]["contents"][0].parts
    assert "JSON" in parts[0].text
    assert [p.inline_data.mime_type for p in parts[1:]] == ["image/png", "image/png"]


@pytest.mark.asyncio
async def test_extract_problem_needs_image_capable_provider(settings, router, tmp_path) -> None:
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)

    with pytest.raises(UnsupportedOperationError):
        await pipeline.extract_structured_problem([_png(tmp_path, "one.png")])
    assert router.requests == []


@pytest.mark.asyncio
async def test_debug_solution_folds_answer_and_images(settings, tmp_path) -> None:
    pipeline = _gemini(settings, _SOLUTION_JSON)

    solution = await pipeline.debug_structured_solution(
        {"problem_statement": "p"},
        "Accept the 12% increase",
        [_png(tmp_path, "debug.png")],
    )

    assert solution.problem_statement == "Renewal quote is 12% higher."
    parts = pipeline.llm._client.calls[0]["contents"][0].parts
    assert "Accept the 12% increase" in parts[0].text
    assert len(parts) == 2


# ── Audio ──

@pytest.mark.asyncio
async def test_audio_on_chat_provider_transcribes_enriches_and_streams(settings, router, staging_dir) -> None:
    router.add("POST", _WHISPER, httpx.Response(200, json={"text": "they want net 90 terms"}))
    router.add("POST", _CHAT, httpx.Response(200, content=sse_body("1. Counter with net 45. ", "2. Trade for volume.")))
    context = StaticContext(ContextLookup.ok(ContextResult(
        answer_text="Standard terms are net 60.",
        passages=[Passage(body_text="Payment terms policy", source_label="policy.pdf", relevance_score=0.82)],
    )))
    pipeline = AssistantPipeline(
        CloudChatConfig(api_key="sk-test"), settings, context=context, transport=router.transport,
    )
    chunks: list[str] = []

    result = await pipeline.analyze_audio_base64(
        base64.b64encode(b"webm-bytes").decode(), "audio/webm", on_stream_chunk=chunks.append,
    )

    assert chunks == ["1. Counter with net 45. ", "2. Trade for volume."]
    assert result.text == "1. Counter with net 45. 2. Trade for volume."
    assert isinstance(result.timestamp, int) and result.timestamp > 0
    assert context.queries == ["they want net 90 terms"]
    user_prompt = router.json_body(_CHAT)["messages"][1]["content"]
    assert '"they want net 90 terms"' in user_prompt
    assert "Relevant Context from Knowledge Base:\nAnswer: Standard terms are net 60." in user_prompt
    assert "Source: policy.pdf" in user_prompt
    assert os.listdir(staging_dir) == []


@pytest.mark.asyncio
async def test_audio_transcription_failure_stops_before_generation(settings, router, staging_dir) -> None:
    router.add("POST", _WHISPER, httpx.Response(500, json={"error": {"message": "whisper down"}}))
    pipeline = AssistantPipeline(CloudChatConfig(api_key="sk-test"), settings, transport=router.transport)

    with pytest.raises(TranscriptionError) as exc_info:
        await pipeline.analyze_audio_base64(base64.b64encode(b"x").decode(), "audio/mpeg")

    assert exc_info.value.status_code == 500
    assert router.calls(_CHAT) == []
    assert os.listdir(staging_dir) == []


@pytest.mark.asyncio
async def test_audio_context_failure_is_swallowed(settings, router, tmp_path) -> None:
    router.add("POST", _WHISPER, httpx.Response(200, json={"text": "price is too high"}))
    router.add("POST", _CHAT, httpx.Response(200, content=sse_body("Ask for a breakdown.")))
    pipeline = AssistantPipeline(
        CloudChatConfig(api_key="sk-test"), settings, context=ExplodingContext({}), transport=router.transport,
    )
    clip = tmp_path / "clip.mp3"
    clip.write_bytes(b"ID3-audio")

    result = await pipeline.analyze_audio_file(clip)

    assert result.text == "Ask for a breakdown."
    assert "Relevant Context" not in router.json_body(_CHAT)["messages"][1]["content"]


@pytest.mark.asyncio
async def test_audio_on_multimodal_provider_goes_inline(settings, router) -> None:
    context = StaticContext(ContextLookup.ok(ContextResult(answer_text="unused")))
    pipeline = AssistantPipeline(
        CloudMultimodalConfig(api_key="g-test"), settings, context=context, transport=router.transport,
    )
    pipeline.llm._client = FakeGeminiClient("They are anchoring high.")
    chunks: list[str] = []

    result = await pipeline.analyze_audio_base64(
        base64.b64encode(b"webm").decode(), "audio/webm", on_stream_chunk=chunks.append,
    )

    assert result.text == "They are anchoring high."
    assert router.requests == []
    assert context.queries == []
    assert chunks == []
    parts = pipeline.llm._client.calls[0]["contents"][0].parts
    assert parts[1].inline_data.mime_type == "audio/webm"
    assert parts[1].inline_data.data == b"webm"


@pytest.mark.asyncio
async def test_audio_on_local_server_uses_blocking_call(settings, router, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-whisper")
    router.add("POST", _WHISPER, httpx.Response(200, json={"text": "can we get free shipping"}))
    router.add("POST", "/api/generate", httpx.Response(200, json={"response": "1. Bundle it.", "done": True}))
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)
    clip = tmp_path / "clip.mp3"
    clip.write_bytes(b"ID3-audio")
    chunks: list[str] = []

    result = await pipeline.analyze_audio_file(clip, on_stream_chunk=chunks.append)

    assert result.text == "1. Bundle it."
    assert chunks == []
    assert router.calls(_WHISPER)[0].headers["Authorization"] == "Bearer sk-whisper"
    assert "can we get free shipping" in router.json_body("/api/generate")["prompt"]


# ── Image and chat ──

@pytest.mark.asyncio
async def test_analyze_image_is_unsupported_on_local_server(settings, router, tmp_path) -> None:
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)

    with pytest.raises(UnsupportedOperationError):
        await pipeline.analyze_image_file(_png(tmp_path, "shot.png"))


@pytest.mark.asyncio
async def test_analyze_image_on_chat_provider(settings, router, tmp_path) -> None:
    router.add("POST", _CHAT, httpx.Response(200, content=sse_body("A quote table.")))
    pipeline = AssistantPipeline(CloudChatConfig(api_key="sk-test"), settings, transport=router.transport)

    result = await pipeline.analyze_image_file(_png(tmp_path, "shot.png"))

    assert result.text == "A quote table."
    content = router.json_body(_CHAT)["messages"][1]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_chat_appends_formatting_instruction(settings, router) -> None:
    router.add("POST", "/api/generate", httpx.Response(200, json={"response": "1. Walk away.", "done": True}))
    pipeline = AssistantPipeline(LocalServerConfig(), settings, transport=router.transport)

    reply = await pipeline.chat("Supplier refuses any discount")

    assert reply == "1. Walk away."
    prompt = router.json_body("/api/generate")["prompt"]
    assert prompt.endswith(f"Supplier refuses any discount\n\n{settings.prompts.chat_instruction}")
