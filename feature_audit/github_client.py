"""GitHub tree listing and raw file fetch with branch fallback."""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .chunking import FileRecord, truncate_content
from .config import AuditSettings
from .errors import FetchError, RepoUrlError

REPO_URL_PREFIX_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*://)?(?:www\.)?github\.com/", re.IGNORECASE)


def parse_repo_url(url: str) -> Tuple[str, str]:
    """Split a github.com URL (or owner/repo shorthand) into owner and repo."""
    text = str(url or "").strip()
    text = REPO_URL_PREFIX_RE.sub("", text)
    parts = [p for p in text.split("/") if p]
    if len(parts) < 2:
        raise RepoUrlError(f'Cannot resolve owner/repo from "{url}"')
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo or ":" in owner:
        raise RepoUrlError(f'Cannot resolve owner/repo from "{url}"')
    return owner, repo


def is_auditable_path(path: str, settings: AuditSettings) -> bool:
    """Allow-listed extension and not a dependency lockfile."""
    low = path.lower()
    if not low.endswith(settings.ext_allowlist):
        return False
    return not any(s in path for s in settings.exclude_substrings)


def _api_headers(settings: AuditSettings) -> Dict[str, str]:
    headers = {"User-Agent": settings.user_agent, "Accept": "application/vnd.github+json"}
    if settings.github_token:
        headers["Authorization"] = f"Bearer {settings.github_token}"
    return headers


def fetch_repo_tree(
    client: httpx.Client,
    owner: str,
    repo: str,
    settings: AuditSettings,
    *,
    log: Optional[Callable[[str], None]] = None,
) -> List[dict]:
    """Return the recursive tree for the first branch that answers."""
    last_error: Optional[Exception] = None
    for branch in settings.branches:
        url = f"{settings.github_api_base}/repos/{owner}/{repo}/git/trees/{branch}"
        try:
            r = client.get(url, params={"recursive": "1"}, headers=_api_headers(settings))
            r.raise_for_status()
            data = r.json()
            tree = data.get("tree") if isinstance(data, dict) else None
            if not isinstance(tree, list):
                raise ValueError("response has no tree list")
            if log is not None:
                log(f"[FETCH] tree {owner}/{repo}@{branch} entries={len(tree)}")
            return tree
        except (httpx.HTTPError, ValueError) as e:
            last_error = e
            if log is not None:
                log(f"[WARN] tree {owner}/{repo}@{branch} failed: {type(e).__name__}: {e}")
    raise FetchError(
        f"Could not fetch repository structure for {owner}/{repo} "
        f"(tried {', '.join(settings.branches)}): {last_error}"
    )


def fetch_file_content(
    client: httpx.Client,
    owner: str,
    repo: str,
    path: str,
    settings: AuditSettings,
    *,
    log: Optional[Callable[[str], None]] = None,
) -> str:
    """Fetch raw file text, or an inline error marker if every branch fails."""
    last_error: Optional[Exception] = None
    headers = {"User-Agent": settings.user_agent}
    for branch in settings.branches:
        url = f"{settings.github_raw_base}/{owner}/{repo}/{branch}/{quote(path)}"
        try:
            r = client.get(url, headers=headers)
            r.raise_for_status()
            return r.text
        except httpx.HTTPError as e:
            last_error = e
    if log is not None:
        log(f"[WARN] file {path} unavailable on all branches: {last_error}")
    return f"// Error fetching {path}: {last_error}"


def fetch_repo_files(
    repo_url: str,
    settings: AuditSettings,
    *,
    client: Optional[httpx.Client] = None,
    log: Optional[Callable[[str], None]] = None,
) -> List[FileRecord]:
    """List, filter and download every auditable file of a repository."""
    owner, repo = parse_repo_url(repo_url)
    if log is not None:
        log(f"[FETCH] repo {owner}/{repo}")

    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=settings.http_timeout_s, follow_redirects=True)
    try:
        tree = fetch_repo_tree(client, owner, repo, settings, log=log)
        paths = [
            str(item.get("path"))
            for item in tree
            if isinstance(item, dict)
            and item.get("type") == "blob"
            and isinstance(item.get("path"), str)
            and is_auditable_path(item["path"], settings)
        ]
        if log is not None:
            log(f"[FETCH] {len(paths)} relevant files")

        records: List[FileRecord] = []
        for path in paths:
            if log is not None:
                log(f"[FETCH] file {path}")
            content = fetch_file_content(client, owner, repo, path, settings, log=log)
            records.append(FileRecord(path=path, content=truncate_content(content, settings.max_file_chars)))
        return records
    finally:
        if own_client:
            client.close()
