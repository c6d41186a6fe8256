"""HTTP endpoint that runs an audit per request.

Endpoints:
    GET  /health              - Health check
    POST /api/audit-features  - {"github_url": str, "tasks": [...]} -> updated tasks
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type
from urllib.parse import urlparse

from .config import AuditSettings, load_settings
from .errors import AuditError, RepoUrlError, TaskShapeError
from .runner import run_audit
from .tasks import validate_tasks

AUDIT_PATH = "/api/audit-features"

AuditFn = Callable[..., List[Dict[str, Any]]]


def _stderr_log(msg: str) -> None:
    print(msg, file=sys.stderr)


def _repo_url_from_body(body: Dict[str, Any]) -> str:
    url = body.get("github_url") or body.get("repository_identifier")
    if not isinstance(url, str) or not url.strip():
        raise RepoUrlError('"github_url" (or "repository_identifier") is required')
    return url.strip()


def make_handler(
    settings: AuditSettings,
    *,
    audit_fn: AuditFn = run_audit,
    log: Callable[[str], None] = _stderr_log,
) -> Type[BaseHTTPRequestHandler]:
    """Build a request handler class bound to settings and an audit function."""

    class AuditHandler(BaseHTTPRequestHandler):
        def _send_json(self, data: Any, status: int = 200) -> None:
            payload = json.dumps(data, ensure_ascii=False).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        def _read_json(self) -> Any:
            content_length = int(self.headers.get("Content-Length", 0) or 0)
            if content_length <= 0:
                return {}
            body = self.rfile.read(content_length)
            return json.loads(body.decode("utf-8"))

        def do_GET(self) -> None:
            if urlparse(self.path).path == "/health":
                self._send_json({"status": "ok"})
            else:
                self._send_json({"error": "Not found"}, 404)

        def do_POST(self) -> None:
            if urlparse(self.path).path != AUDIT_PATH:
                self._send_json({"error": "Not found"}, 404)
                return

            try:
                body = self._read_json()
                if not isinstance(body, dict):
                    raise ValueError("request body must be a JSON object")
                repo_url = _repo_url_from_body(body)
                tasks = validate_tasks(body.get("tasks"))
            except (ValueError, RepoUrlError, TaskShapeError) as e:
                log(f"[ERROR] bad request: {e}")
                self._send_json({"error": str(e)}, 400)
                return

            try:
                results = audit_fn(repo_url, tasks, settings, log=log)
            except RepoUrlError as e:
                log(f"[ERROR] bad request: {e}")
                self._send_json({"error": str(e)}, 400)
                return
            except AuditError as e:
                log(f"[ERROR] audit failed: {type(e).__name__}: {e}")
                self._send_json({"error": str(e)}, 500)
                return
            except Exception as e:
                log(f"[ERROR] unexpected failure: {type(e).__name__}: {e}")
                self._send_json({"error": str(e) or type(e).__name__}, 500)
                return

            log("[OK] audit complete")
            self._send_json(results)

        def log_message(self, format: str, *args: Any) -> None:
            log(f"[HTTP] {self.address_string()} - {format % args}")

    return AuditHandler


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Feature audit HTTP server")
    ap.add_argument("--config", default="", help="YAML config path (default: $FEATURE_AUDIT_CONFIG or bundled)")
    ap.add_argument("--host", default="", help="Bind host (default: from config)")
    ap.add_argument("--port", type=int, default=0, help="Bind port (default: $PORT or config)")
    args = ap.parse_args(argv)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except AuditError as e:
        _stderr_log(f"[ERROR] {e}")
        return 2

    host = args.host or settings.server_host
    port = args.port or int(os.environ.get("PORT") or settings.server_port)

    server = ThreadingHTTPServer((host, port), make_handler(settings))
    _stderr_log(f"[OK] server running at http://{host}:{port}{AUDIT_PATH}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        _stderr_log("\n[STOP] interrupted")
    finally:
        server.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
