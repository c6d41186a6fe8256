"""Audit orchestration and CLI entry point."""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from .chunking import pack_chunks
from .config import AuditSettings, load_settings
from .errors import AuditError, LLMCallError, RepoUrlError, TaskShapeError
from .github_client import fetch_repo_files
from .reducer import LLMCall, ReductionStats, reduce_chunks
from .tasks import status_counts, validate_tasks
from .watsonx_client import get_access_token, make_llm_call


def _format_duration(seconds: float) -> str:
    """Format elapsed seconds into a compact, human-readable string."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m{secs:04.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h{int(minutes):02d}m{secs:04.1f}s"


def _format_counts(counts: Dict[str, int]) -> str:
    return ", ".join(f"{key}={value}" for key, value in counts.items())


def run_audit(
    repo_url: str,
    tasks: List[Dict[str, Any]],
    settings: AuditSettings,
    *,
    http_client: Optional[httpx.Client] = None,
    llm_call: Optional[LLMCall] = None,
    max_chunk_chars: Optional[int] = None,
    log: Optional[Callable[[str], None]] = None,
    stats: Optional[ReductionStats] = None,
) -> List[Dict[str, Any]]:
    """Fetch the repo, pack it into chunks and fold them through the LLM.

    Raises FetchError or TokenError when the audit cannot run at all, and
    LLMCallError when every chunk's generation call failed; nothing partial
    is returned in those cases.
    """
    if stats is None:
        stats = ReductionStats()
    tasks = validate_tasks(tasks)
    started = time.monotonic()

    files = fetch_repo_files(repo_url, settings, client=http_client, log=log)
    chunks = pack_chunks(files, max_chunk_chars or settings.max_chunk_chars)
    if log is not None:
        log(f"[CHUNK] split {len(files)} files into {len(chunks)} chunks")
        log(f"[TIME] fetch={_format_duration(time.monotonic() - started)}")

    if llm_call is None:
        token = get_access_token(settings, client=http_client)
        llm_call = make_llm_call(settings, token, client=http_client, log=log)

    fold_started = time.monotonic()
    results = reduce_chunks(
        chunks,
        tasks,
        llm_call,
        prompt_template=settings.audit_prompt,
        log=log,
        stats=stats,
    )
    if stats.all_calls_failed:
        raise LLMCallError(f"LLM unavailable for all {stats.chunks_total} chunks")
    if log is not None:
        log(f"[TIME] audit={_format_duration(time.monotonic() - fold_started)}")
        log(f"[OK] final statuses: {_format_counts(status_counts(results))}")
    return results


def main(argv: Optional[List[str]] = None) -> int:
    """Run a single audit from the command line."""
    ap = argparse.ArgumentParser(description="Audit a GitHub repository against feature tasks using watsonx.ai")
    ap.add_argument("--repo", required=True, help="Repository URL, e.g. https://github.com/owner/repo")
    ap.add_argument("--tasks", required=True, help="Path to a JSON file holding the task array")
    ap.add_argument("--out", default="", help="Write the updated task array here (default: stdout)")
    ap.add_argument("--config", default="", help="YAML config path (default: $FEATURE_AUDIT_CONFIG or bundled)")
    ap.add_argument("--max-chunk-chars", type=int, default=0, help="Override the max chunk size in characters")
    ap.add_argument("--verbose", action="store_true", help="Log per-file fetch details")
    args = ap.parse_args(argv)

    def _log(msg: str, *, stderr: bool = False) -> None:
        stream = sys.stderr if stderr else sys.stdout
        print(msg, file=stream)

    def _progress(msg: str) -> None:
        if msg.startswith("[FETCH] file ") and not args.verbose:
            return
        _log(msg, stderr=True)

    if args.max_chunk_chars < 0:
        _log("[ERROR] --max-chunk-chars must be >= 0", stderr=True)
        return 2

    tasks_path = Path(args.tasks).expanduser().resolve()
    if not tasks_path.exists():
        _log(f'[ERROR] Tasks file not found: "{tasks_path}"', stderr=True)
        return 2
    try:
        tasks = validate_tasks(json.loads(tasks_path.read_text(encoding="utf-8")))
    except (ValueError, TaskShapeError) as e:
        _log(f'[ERROR] Invalid tasks file "{tasks_path}": {e}', stderr=True)
        return 2

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except AuditError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2

    stats = ReductionStats()
    try:
        results = run_audit(
            args.repo,
            tasks,
            settings,
            max_chunk_chars=args.max_chunk_chars or None,
            log=_progress,
            stats=stats,
        )
    except RepoUrlError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2
    except AuditError as e:
        _log(f"[ERROR] {type(e).__name__}: {e}", stderr=True)
        return 1

    _log(
        f"[OK] chunks={stats.chunks_total} applied={stats.chunks_applied} skipped={stats.chunks_skipped}",
        stderr=True,
    )
    text = json.dumps(results, ensure_ascii=False, indent=2)
    if args.out:
        out_path = Path(args.out).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
        _log(f"[OK] wrote {out_path}", stderr=True)
    else:
        _log(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
