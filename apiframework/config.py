"""Application settings loaded from the environment with pydantic-settings.

Environment variables are prefixed with ``APIFRAMEWORK_`` and may also come
from a ``.env`` file in the working directory::

    APIFRAMEWORK_DATABASE_URL=sqlite:////var/lib/app/data.sqlite3
    APIFRAMEWORK_DEFAULT_LIMIT=50
    APIFRAMEWORK_DEBUG_QUERIES=/tmp/queries.log
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

QUERY_LOGGER_NAME = "apiframework.queries"


class Settings(BaseSettings):
    """Settings consumed by the data-access layer."""

    model_config = SettingsConfigDict(
        env_prefix="APIFRAMEWORK_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///:memory:",
        description="URL of the default connection (sqlite, mysql or postgresql scheme)",
    )

    default_limit: int = Field(
        default=100,
        ge=1,
        description="Page size used by entities that do not declare their own limit",
    )

    debug_queries: Optional[str] = Field(
        default=None,
        description="When set, every executed statement is appended to this file",
    )

    def lookup(self, key: str, default: Any = None) -> Any:
        """Resolve a dotted configuration key (e.g. ``debug.queries``)."""
        name = key.replace(".", "_")
        if name in type(self).model_fields:
            return getattr(self, name)
        return default


@lru_cache
def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    return Settings()


_query_log_paths: set[str] = set()


def configure_query_log(path: Optional[str]) -> None:
    """Append every executed statement to `path` (once per path)."""
    if not path or path in _query_log_paths:
        return
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s", "%Y-%m-%d %H:%M:%S"))
    logger = logging.getLogger(QUERY_LOGGER_NAME)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    _query_log_paths.add(path)
