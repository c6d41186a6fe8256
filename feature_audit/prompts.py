"""Render the per-chunk audit prompt."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from .errors import ConfigError


def tasks_to_json(tasks: List[Dict[str, Any]]) -> str:
    """Compact JSON for the task accumulator, as embedded in prompts."""
    return json.dumps(tasks, ensure_ascii=False, separators=(",", ":"))


def build_audit_prompt(
    template: str,
    *,
    chunk: str,
    chunk_index: int,
    chunk_total: int,
    tasks: List[Dict[str, Any]],
) -> str:
    """Fill the audit template for chunk_index (0-based) of chunk_total."""
    try:
        return template.format(
            chunk_number=chunk_index + 1,
            chunk_total=chunk_total,
            chunk=chunk,
            tasks_json=tasks_to_json(tasks),
        )
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(f"Invalid audit prompt template: {e}") from e
