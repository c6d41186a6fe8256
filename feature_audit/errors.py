"""Error kinds raised across the audit pipeline."""

from __future__ import annotations


class AuditError(RuntimeError):
    """Base class for audit failures."""


class ConfigError(AuditError):
    """Configuration file is missing, unreadable or malformed."""


class FetchError(AuditError):
    """Repository tree could not be fetched on any fallback branch."""


class TokenError(AuditError):
    """The API key could not be exchanged for a bearer token."""


class LLMCallError(AuditError):
    """The generation backend failed or returned an unexpected payload."""


class ChunkParseError(AuditError):
    """Model output for a chunk could not be turned into a task array."""


class ExtractError(ChunkParseError):
    """No JSON array could be isolated or parsed from raw model text."""


class RepoUrlError(ValueError):
    """Repository identifier does not name an owner and a repo."""


class TaskShapeError(ValueError):
    """Caller-supplied tasks are not a list of task objects."""
