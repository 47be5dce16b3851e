"""Typed error taxonomy for the assistant core.

Only context lookups and local model auto-detection degrade silently;
everything here propagates to the caller and is never retried.
"""

from __future__ import annotations

from typing import Any


class AssistantError(Exception):
    """Base class for assistant-level failures."""


class ConfigError(AssistantError):
    """Missing credentials or an invalid provider selection (construction/switch time)."""


class GenerationError(AssistantError):
    """Transport failure or non-2xx reply from an LLM provider."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ParseError(AssistantError):
    """Structured-output reply that is not a valid JSON object of the expected shape."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class TranscriptionError(AssistantError):
    """Speech-to-text backend failure."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnsupportedOperationError(AssistantError):
    """The active provider cannot perform the requested operation."""
