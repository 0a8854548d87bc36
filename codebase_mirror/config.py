"""
Configuration read from environment variables.

Everything the mirror needs from its environment is read here, once,
and fails fast with a ConfigurationError naming the missing variable.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Mapping

from codebase_mirror.domain.errors import ConfigurationError

DEFAULT_GRAPHQL_URL         = "https://gitlab.com/api/graphql"
DEFAULT_REQUESTS_PER_MINUTE = 600     # GitLab's documented group-projects quota
DEFAULT_MAX_WORKERS         = 1
DEFAULT_POOL_SIZE           = 5
DEFAULT_LOG_LEVEL           = "INFO"


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True)
class MirrorConfig:
    database_url:        str
    gitlab_token:        str | None
    graphql_url:         str = DEFAULT_GRAPHQL_URL
    requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE
    max_workers:         int = DEFAULT_MAX_WORKERS
    pool_size:           int = DEFAULT_POOL_SIZE
    log_level:           str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MirrorConfig":
        environ = os.environ if environ is None else environ

        database_url = environ.get("DATABASE_URL")
        if not database_url:
            raise ConfigurationError("DATABASE_URL environment variable is required")

        return cls(
            database_url        = database_url,
            gitlab_token        = environ.get("GITLAB_TOKEN") or None,
            graphql_url         = environ.get("GITLAB_GRAPHQL_URL") or DEFAULT_GRAPHQL_URL,
            requests_per_minute = _positive_int(environ, "GITLAB_REQUESTS_PER_MINUTE", DEFAULT_REQUESTS_PER_MINUTE),
            max_workers         = _positive_int(environ, "SYNC_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            pool_size           = _positive_int(environ, "DB_POOL_SIZE", DEFAULT_POOL_SIZE),
            log_level           = (environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )

    def require_token(self, override: str | None = None) -> str:
        token = override or self.gitlab_token
        if not token:
            raise ConfigurationError("GITLAB_TOKEN environment variable (or --auth) is required")
        return token
