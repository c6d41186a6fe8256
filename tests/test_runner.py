"""End-to-end audit runs with faked GitHub and watsonx endpoints."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import httpx
import pytest

from feature_audit import runner
from feature_audit.errors import FetchError, LLMCallError, TokenError
from feature_audit.reducer import ReductionStats
from feature_audit.runner import _format_duration, run_audit

from .conftest import make_task

TREE = [
    {"path": "src/a.js", "type": "blob"},
    {"path": "src/b.py", "type": "blob"},
    {"path": "yarn.lock", "type": "blob"},
]
RAW = {"src/a.js": "console.log('started');", "src/b.py": "print('hi')"}
FINAL = [
    {
        "task_id": "t1",
        "task": "Has logging",
        "status": "implemented",
        "evidence": "found console logging in file A",
    }
]


def repo_handler(extra=None):
    def _handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        if host == "api.github.com" and path == "/repos/octo/demo/git/trees/main":
            return httpx.Response(200, json={"tree": TREE})
        if host == "raw.githubusercontent.com" and path.startswith("/octo/demo/main/"):
            rel = path[len("/octo/demo/main/"):]
            if rel in RAW:
                return httpx.Response(200, text=RAW[rel])
        if extra is not None:
            response = extra(request)
            if response is not None:
                return response
        return httpx.Response(404)

    return _handler


class TestRunAudit:
    def test_two_small_files_single_chunk(self, settings, mock_client):
        prompts: List[str] = []

        def llm(prompt: str) -> str:
            prompts.append(prompt)
            return json.dumps(FINAL)

        stats = ReductionStats()
        result = run_audit(
            "https://github.com/octo/demo",
            [make_task("t1", "Has logging")],
            settings,
            http_client=mock_client(repo_handler()),
            llm_call=llm,
            stats=stats,
        )
        assert result == FINAL
        assert len(prompts) == 1
        assert stats.chunks_total == 1
        assert "// File: src/a.js\nconsole.log('started');\n\n// File: src/b.py\nprint('hi')\n\n" in prompts[0]
        assert "yarn.lock" not in prompts[0]

    def test_small_chunk_limit_makes_one_call_per_chunk(self, settings, mock_client):
        calls: List[str] = []

        def llm(prompt: str) -> str:
            calls.append(prompt)
            return "no json"

        tasks = [make_task("t1", "Has logging")]
        result = run_audit(
            "octo/demo",
            tasks,
            settings,
            http_client=mock_client(repo_handler()),
            llm_call=llm,
            max_chunk_chars=40,
        )
        assert result == tasks
        assert len(calls) == 3

    def test_uses_watsonx_when_no_llm_given(self, settings, mock_client):
        seen: List[str] = []

        def watsonx(request: httpx.Request):
            if request.url.host == "iam.cloud.ibm.com":
                seen.append("token")
                return httpx.Response(200, json={"access_token": "tok"})
            if request.url.path == "/ml/v1/text/generation":
                seen.append(request.headers["Authorization"])
                text = "Sure!\n```json\n" + json.dumps(FINAL) + "\n```"
                return httpx.Response(200, json={"results": [{"generated_text": text}]})
            return None

        result = run_audit(
            "https://github.com/octo/demo",
            [make_task("t1", "Has logging")],
            settings,
            http_client=mock_client(repo_handler(watsonx)),
        )
        assert result == FINAL
        assert seen == ["token", "Bearer tok"]

    def test_token_failure_is_fatal(self, settings, mock_client):
        def watsonx(request: httpx.Request):
            if request.url.host == "iam.cloud.ibm.com":
                return httpx.Response(401, json={"errorMessage": "bad key"})
            return None

        with pytest.raises(TokenError):
            run_audit(
                "https://github.com/octo/demo",
                [make_task("t1", "Has logging")],
                settings,
                http_client=mock_client(repo_handler(watsonx)),
            )

    def test_generation_down_for_every_chunk_is_fatal(self, settings, mock_client):
        calls: List[str] = []

        def watsonx(request: httpx.Request):
            if request.url.host == "iam.cloud.ibm.com":
                return httpx.Response(200, json={"access_token": "tok"})
            if request.url.path == "/ml/v1/text/generation":
                calls.append("generate")
                return httpx.Response(503, json={"errors": [{"code": "service_unavailable"}]})
            return None

        with pytest.raises(LLMCallError, match="all 3 chunks"):
            run_audit(
                "https://github.com/octo/demo",
                [make_task("t1", "Has logging")],
                settings,
                http_client=mock_client(repo_handler(watsonx)),
                max_chunk_chars=40,
            )
        assert len(calls) == 3

    def test_some_calls_failing_still_returns_results(self, settings, mock_client):
        replies = [LLMCallError("503"), json.dumps(FINAL), TimeoutError("slow")]

        def llm(prompt: str) -> str:
            reply = replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply

        stats = ReductionStats()
        result = run_audit(
            "octo/demo",
            [make_task("t1", "Has logging")],
            settings,
            http_client=mock_client(repo_handler()),
            llm_call=llm,
            max_chunk_chars=40,
            stats=stats,
        )
        assert result == FINAL
        assert stats.failed_calls == [0, 2]

    def test_fetch_failure_is_fatal(self, settings, mock_client):
        def llm(prompt: str) -> str:
            raise AssertionError("LLM must not be called")

        client = mock_client(lambda request: httpx.Response(404))
        with pytest.raises(FetchError):
            run_audit("https://github.com/octo/demo", [], settings, http_client=client, llm_call=llm)


class TestMain:
    def test_writes_results(self, tmp_path: Path, monkeypatch, settings):
        tasks_path = tmp_path / "tasks.json"
        tasks_path.write_text(json.dumps([make_task("t1", "Has logging")]), encoding="utf-8")
        out_path = tmp_path / "out" / "result.json"

        def fake_run_audit(repo_url, tasks, settings_, **kwargs):
            assert repo_url == "https://github.com/octo/demo"
            return FINAL

        monkeypatch.setattr(runner, "load_settings", lambda path=None: settings)
        monkeypatch.setattr(runner, "run_audit", fake_run_audit)
        code = runner.main([
            "--repo", "https://github.com/octo/demo",
            "--tasks", str(tasks_path),
            "--out", str(out_path),
        ])
        assert code == 0
        assert json.loads(out_path.read_text(encoding="utf-8")) == FINAL

    def test_missing_tasks_file(self, tmp_path: Path):
        code = runner.main(["--repo", "octo/demo", "--tasks", str(tmp_path / "nope.json")])
        assert code == 2

    def test_bad_tasks_shape(self, tmp_path: Path):
        tasks_path = tmp_path / "tasks.json"
        tasks_path.write_text(json.dumps({"task_id": "t1"}), encoding="utf-8")
        assert runner.main(["--repo", "octo/demo", "--tasks", str(tasks_path)]) == 2

    def test_fatal_audit_error(self, tmp_path: Path, monkeypatch, settings):
        tasks_path = tmp_path / "tasks.json"
        tasks_path.write_text("[]", encoding="utf-8")

        def failing(*args, **kwargs):
            raise FetchError("Could not fetch repository structure")

        monkeypatch.setattr(runner, "load_settings", lambda path=None: settings)
        monkeypatch.setattr(runner, "run_audit", failing)
        assert runner.main(["--repo", "octo/demo", "--tasks", str(tasks_path)]) == 1


def test_format_duration():
    assert _format_duration(0.25) == "250ms"
    assert _format_duration(3.5) == "3.50s"
    assert _format_duration(61) == "1m01.0s"
