"""Load and validate the YAML configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError

CONFIG_ENV_VAR = "FEATURE_AUDIT_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "audit_config.yaml"

API_KEY_ENV_VAR = "IBM_CLOUD_API_KEY"
PROJECT_ID_ENV_VAR = "IBM_WATSON_PROJECT_ID"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"


@dataclass(frozen=True)
class AuditSettings:
    """Everything the fetcher, reducer and runner need, secrets included."""
    audit_prompt: str
    ext_allowlist: Tuple[str, ...]
    exclude_substrings: Tuple[str, ...]
    max_file_chars: int
    max_chunk_chars: int
    http_timeout_s: float
    llm_timeout_s: float
    github_api_base: str
    github_raw_base: str
    branches: Tuple[str, ...]
    user_agent: str
    generation_url: str
    iam_token_url: str
    model_id: str
    generation_parameters: Dict[str, Any] = field(default_factory=dict)
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    api_key: Optional[str] = None
    project_id: Optional[str] = None
    github_token: Optional[str] = None
    config_path: Optional[Path] = None


def _load_config(path: Path) -> Dict[str, Any]:
    """Read the YAML config from disk and validate its top-level type."""
    if not path.exists():
        raise ConfigError(f'Config file not found: "{path}"')
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f'Failed to read config "{path}": {e}') from e
    if not isinstance(data, dict):
        raise ConfigError(f'Config file "{path}" must be a YAML mapping at top level')
    return data


def resolve_config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the config path from env override or default."""
    env = os.environ if env is None else env
    override = env.get(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return DEFAULT_CONFIG_PATH


def _require_section(config: Dict[str, Any], name: str, kind: type) -> Any:
    """Fetch a required config section and validate its type."""
    value = config.get(name)
    if not isinstance(value, kind):
        raise ConfigError(f'Config section "{name}" missing or not a {kind.__name__}')
    return value


def _require_str(section: Dict[str, Any], key: str, label: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label}.{key} is missing or not a string")
    return value


def _require_int(section: Dict[str, Any], key: str, label: str) -> int:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{label}.{key} must be a positive int")
    return value


def _normalize_list(value: object, label: str) -> List[str]:
    """Normalize a list of strings from config values."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"Expected a list for {label}")
    return [item for item in value if isinstance(item, str) and item.strip()]


def _secret(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name, "").strip()
    return value or None


def load_settings(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> AuditSettings:
    """Build AuditSettings from a YAML file plus environment secrets."""
    env = os.environ if env is None else env
    config_path = Path(path).expanduser().resolve() if path else resolve_config_path(env)
    config = _load_config(config_path)

    prompts = _require_section(config, "prompts", dict)
    scan = _require_section(config, "scan", dict)
    limits = _require_section(config, "limits", dict)
    github = _require_section(config, "github", dict)
    watsonx = _require_section(config, "watsonx", dict)
    server = config.get("server") or {}
    if not isinstance(server, dict):
        raise ConfigError('Config section "server" must be a mapping')

    exts = [e.lower() for e in _normalize_list(scan.get("ext_allowlist"), "scan.ext_allowlist")]
    if not exts:
        raise ConfigError("scan.ext_allowlist must list at least one extension")
    branches = _normalize_list(github.get("branches"), "github.branches")
    if not branches:
        raise ConfigError("github.branches must list at least one branch")

    parameters = watsonx.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise ConfigError("watsonx.parameters must be a mapping")

    return AuditSettings(
        audit_prompt=_require_str(prompts, "audit_chunk", "prompts"),
        ext_allowlist=tuple(exts),
        exclude_substrings=tuple(_normalize_list(scan.get("exclude_substrings"), "scan.exclude_substrings")),
        max_file_chars=_require_int(limits, "max_file_chars", "limits"),
        max_chunk_chars=_require_int(limits, "max_chunk_chars", "limits"),
        http_timeout_s=float(limits.get("http_timeout_s") or 60),
        llm_timeout_s=float(limits.get("llm_timeout_s") or 300),
        github_api_base=_require_str(github, "api_base", "github").rstrip("/"),
        github_raw_base=_require_str(github, "raw_base", "github").rstrip("/"),
        branches=tuple(branches),
        user_agent=str(github.get("user_agent") or "feature-audit"),
        generation_url=_require_str(watsonx, "generation_url", "watsonx"),
        iam_token_url=_require_str(watsonx, "iam_token_url", "watsonx"),
        model_id=_require_str(watsonx, "model_id", "watsonx"),
        generation_parameters=dict(parameters),
        server_host=str(server.get("host") or "0.0.0.0"),
        server_port=int(server.get("port") or 3000),
        api_key=_secret(env, API_KEY_ENV_VAR),
        project_id=_secret(env, PROJECT_ID_ENV_VAR),
        github_token=_secret(env, GITHUB_TOKEN_ENV_VAR),
        config_path=config_path,
    )
