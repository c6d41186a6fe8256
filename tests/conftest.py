from __future__ import annotations

from typing import Dict, List

import httpx
import pytest

from feature_audit.config import load_settings

TEST_ENV = {
    "IBM_CLOUD_API_KEY": "test-api-key",
    "IBM_WATSON_PROJECT_ID": "proj-123",
}


@pytest.fixture
def settings():
    return load_settings(env=TEST_ENV)


@pytest.fixture
def mock_client():
    clients: List[httpx.Client] = []

    def _make(handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


def make_task(task_id: str, task: str, status: str = "not_implemented", evidence: str = "") -> Dict[str, str]:
    return {"task_id": task_id, "task": task, "status": status, "evidence": evidence}
