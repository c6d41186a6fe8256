"""IBM watsonx.ai token exchange and text-generation helpers."""

from __future__ import annotations

from typing import Callable, Optional

import httpx

from .config import AuditSettings
from .errors import LLMCallError, TokenError

IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"


def get_access_token(
    settings: AuditSettings,
    *,
    client: Optional[httpx.Client] = None,
) -> str:
    """Exchange the IBM Cloud API key for a short-lived bearer token."""
    if not settings.api_key:
        raise TokenError("IBM_CLOUD_API_KEY is not set")
    if not settings.project_id:
        raise TokenError("IBM_WATSON_PROJECT_ID is not set")
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=settings.http_timeout_s)
    try:
        r = client.post(
            settings.iam_token_url,
            data={"grant_type": IAM_GRANT_TYPE, "apikey": settings.api_key},
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
        )
        r.raise_for_status()
        token = r.json().get("access_token")
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        raise TokenError(f"IAM token exchange failed: {e}") from e
    finally:
        if own_client:
            client.close()
    if not isinstance(token, str) or not token:
        raise TokenError("IAM token response has no access_token")
    return token


def watsonx_generate(
    prompt: str,
    *,
    token: str,
    settings: AuditSettings,
    client: Optional[httpx.Client] = None,
    log: Optional[Callable[[str], None]] = None,
    label: str = "request",
) -> str:
    """Send a single generation request and return results[0].generated_text."""
    if log is not None:
        prompt_bytes = len(prompt.encode("utf-8", errors="ignore"))
        log(
            f"[LLM] {label} model={settings.model_id} prompt_chars={len(prompt)} "
            f"prompt_bytes={prompt_bytes}"
        )
    payload = {
        "input": prompt,
        "parameters": dict(settings.generation_parameters),
        "model_id": settings.model_id,
        "project_id": settings.project_id,
    }
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Bearer {token}",
    }
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=settings.llm_timeout_s)
    try:
        r = client.post(settings.generation_url, json=payload, headers=headers)
        r.raise_for_status()
        text = r.json()["results"][0]["generated_text"]
    except httpx.HTTPError as e:
        raise LLMCallError(f"generation request failed: {e}") from e
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise LLMCallError(f"unexpected generation response: {type(e).__name__}: {e}") from e
    finally:
        if own_client:
            client.close()
    if not isinstance(text, str):
        raise LLMCallError("generated_text is not a string")
    return text


def make_llm_call(
    settings: AuditSettings,
    token: str,
    *,
    client: Optional[httpx.Client] = None,
    log: Optional[Callable[[str], None]] = None,
) -> Callable[[str], str]:
    """Bind token and settings into a prompt -> generated text function."""
    calls = 0

    def _call(prompt: str) -> str:
        nonlocal calls
        calls += 1
        return watsonx_generate(
            prompt,
            token=token,
            settings=settings,
            client=client,
            log=log,
            label=f"audit_chunk#{calls}",
        )

    return _call
