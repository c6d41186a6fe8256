"""Sequential fold of code chunks through the LLM, carrying task statuses."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from .errors import LLMCallError
from .json_tools import preview, try_extract_json_array
from .prompts import build_audit_prompt
from .tasks import is_task_array

LLMCall = Callable[[str], str]


@dataclass
class ReductionStats:
    """Per-run counters; skipped_chunks and failed_calls hold 0-based indices."""
    chunks_total: int = 0
    chunks_applied: int = 0
    skipped_chunks: List[int] = field(default_factory=list)
    failed_calls: List[int] = field(default_factory=list)

    @property
    def chunks_skipped(self) -> int:
        return len(self.skipped_chunks)

    @property
    def all_calls_failed(self) -> bool:
        return self.chunks_total > 0 and len(self.failed_calls) == self.chunks_total


def reduce_chunks(
    chunks: Sequence[str],
    initial_tasks: Sequence[Dict[str, Any]],
    llm_call: LLMCall,
    *,
    prompt_template: str,
    log: Optional[Callable[[str], None]] = None,
    stats: Optional[ReductionStats] = None,
) -> List[Dict[str, Any]]:
    """Fold chunks in order, replacing the task array after each usable reply.

    Each prompt embeds the array produced by the previous step, so chunk i+1
    is never sent before chunk i has been resolved. A failed call, an
    unparsable reply or a reply that is not an array of objects leaves the
    array exactly as it was for that step.
    """
    current: List[Dict[str, Any]] = deepcopy(list(initial_tasks))
    total = len(chunks)
    if stats is not None:
        stats.chunks_total = total

    def _skip(idx: int, reason: str) -> None:
        if stats is not None:
            stats.skipped_chunks.append(idx)
        if log is not None:
            log(f"[WARN] chunk {idx + 1}/{total}: {reason}; keeping previous statuses")

    for idx, chunk in enumerate(chunks):
        if log is not None:
            log(f"[CHUNK] processing {idx + 1}/{total} chars={len(chunk)}")
        prompt = build_audit_prompt(
            prompt_template,
            chunk=chunk,
            chunk_index=idx,
            chunk_total=total,
            tasks=current,
        )
        try:
            raw = llm_call(prompt)
        except (LLMCallError, httpx.HTTPError, OSError) as e:
            if stats is not None:
                stats.failed_calls.append(idx)
            _skip(idx, f"LLM call failed: {type(e).__name__}: {e}")
            continue

        parsed, error = try_extract_json_array(raw)
        if error is not None:
            _skip(idx, f"{error}; raw={preview(raw)!r}")
            continue
        if not is_task_array(parsed):
            _skip(idx, f"reply is not an array of task objects; raw={preview(raw)!r}")
            continue

        current = parsed
        if stats is not None:
            stats.chunks_applied += 1

    return current
