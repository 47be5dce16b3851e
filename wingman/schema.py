"""Plain data types passed between the pipeline, provider clients and callers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Literal, Union

from pydantic import BaseModel, Field


# ── Prompt ──

@dataclass(slots=True)
class TextPart:
    text: str


@dataclass(slots=True)
class InlineMedia:
    """Binary content embedded in a prompt as base64 text + MIME type."""

    data: str
    mime_type: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


Part = Union[TextPart, InlineMedia]


@dataclass(slots=True)
class Message:
    role: Literal["system", "user"]
    content: str | list[Part]

    def parts(self) -> list[Part]:
        """Content normalized to a list of parts."""
        if isinstance(self.content, str):
            return [TextPart(self.content)]
        return list(self.content)

    def text(self) -> str:
        """Concatenated text of all text parts (media parts are skipped)."""
        return "\n\n".join(p.text for p in self.parts() if isinstance(p, TextPart))

    def media(self) -> list[InlineMedia]:
        return [p for p in self.parts() if isinstance(p, InlineMedia)]


# ── Structured output ──

class StructuredSolution(BaseModel):
    """Fixed JSON schema requested from providers for solution-shaped replies."""

    code: str = ""
    problem_statement: str = ""
    context: str = ""
    suggested_responses: list[str] = Field(default_factory=list)
    reasoning: str = ""

    model_config = {"extra": "allow"}


# ── Context retrieval ──

@dataclass(slots=True)
class Passage:
    body_text: str
    source_label: str | None = None
    relevance_score: float | None = None

    def render(self, index: int) -> str:
        header = f"[Result {index}"
        if self.relevance_score is not None:
            header += f" - Relevance: {self.relevance_score:.3f}"
        header += "]"
        lines = [header]
        if self.source_label:
            lines.append(f"Source: {self.source_label}")
        lines.append(self.body_text)
        return "\n".join(lines)


@dataclass(slots=True)
class ContextResult:
    answer_text: str | None = None
    passages: list[Passage] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.answer_text and not self.passages

    def render(self, max_chars: int = 4000) -> str:
        """Fold the answer and ranked passages into one bounded text block."""
        blocks: list[str] = []
        if self.answer_text:
            blocks.append(f"Answer: {self.answer_text.strip()}")
        for idx, passage in enumerate(self.passages, start=1):
            blocks.append(passage.render(idx))
        text = "\n\n".join(blocks)
        if len(text) > max_chars:
            text = text[: max(0, max_chars - 3)].rstrip() + "..."
        return text


@dataclass(slots=True)
class ContextLookup:
    """Outcome of a best-effort context query: Ok(result) or Degraded(reason)."""

    result: ContextResult
    degraded_reason: str | None = None

    @classmethod
    def ok(cls, result: ContextResult) -> "ContextLookup":
        return cls(result=result)

    @classmethod
    def degraded(cls, reason: str) -> "ContextLookup":
        return cls(result=ContextResult(), degraded_reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.degraded_reason is None


@dataclass(slots=True)
class ModelDetection:
    """Outcome of local model auto-detection: the model to use, plus why it degraded (if it did)."""

    model: str
    available: list[str] = field(default_factory=list)
    degraded_reason: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.degraded_reason is None


# ── Streaming ──

@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str


@dataclass(slots=True, frozen=True)
class Done:
    pass


StreamEvent = Union[TextDelta, Done]


# ── Results ──

@dataclass(slots=True)
class AnalysisResult:
    text: str
    timestamp: int

    def to_dict(self) -> dict:
        return {"text": self.text, "timestamp": self.timestamp}


@dataclass(slots=True)
class ConnectionStatus:
    success: bool
    error: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"success": self.success}
        if self.error is not None:
            out["error"] = self.error
        return out


def dump_problem_info(problem_info: object) -> str:
    """Serialize caller-supplied problem data for embedding into a prompt."""
    if isinstance(problem_info, BaseModel):
        problem_info = problem_info.model_dump()
    return json.dumps(problem_info, indent=2, ensure_ascii=False, default=str)
