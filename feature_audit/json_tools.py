"""Helpers for pulling a JSON task array out of LLM outputs."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Tuple

from .errors import ExtractError

CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences from text."""
    return CODE_FENCE_RE.sub("", text).strip()


def extract_json_array(raw: str) -> Any:
    """Parse the span from the first "[" to the last "]" as strict JSON."""
    text = strip_code_fences(raw or "")
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise ExtractError("no bracketed array found")
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ExtractError(f"malformed JSON: {e}") from e


def try_extract_json_array(raw: str) -> Tuple[Optional[Any], Optional[ExtractError]]:
    """Return (value, None) on success or (None, error) on failure."""
    try:
        return extract_json_array(raw), None
    except ExtractError as e:
        return None, e


def preview(text: str, limit: int = 200) -> str:
    """Single-line preview of raw model output for logs."""
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
