"""JSON envelope cleanup and validation for structured-output replies."""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from wingman.errors import ParseError
from wingman.schema import StructuredSolution

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*(?:\r?\n)?")
_FENCE_CLOSE = re.compile(r"\s*```$")


def clean_json_response(text: str) -> str:
    """Strip an optional markdown code fence and surrounding whitespace."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_json_object(text: str) -> dict:
    """Parse a cleaned reply as a JSON object, raising ParseError otherwise."""
    cleaned = clean_json_response(text or "")
    if not cleaned:
        raise ParseError("Model returned empty output", raw_text=text or "")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning(f"[Parsing] JSON decode failed. Raw text: {cleaned[:200]}...")
        raise ParseError(f"Model did not return valid JSON: {exc}", raw_text=cleaned) from exc
    if not isinstance(parsed, dict):
        raise ParseError("Model returned JSON that is not an object", raw_text=cleaned)
    return parsed


def parse_structured_solution(text: str) -> StructuredSolution:
    """Parse a reply into a StructuredSolution, unwrapping a top-level "solution" key."""
    parsed = parse_json_object(text)
    payload = parsed.get("solution", parsed)
    if not isinstance(payload, dict):
        raise ParseError('"solution" is not a JSON object', raw_text=text)
    try:
        return StructuredSolution.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(f"Reply does not match the solution schema: {exc}", raw_text=text) from exc
