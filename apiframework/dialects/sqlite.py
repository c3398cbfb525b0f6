"""SQLite dialect."""

import logging
import re
import urllib.parse

from typing import ClassVar

from .base import Dialect

logger = logging.getLogger(__name__)


def _regexp(pattern, value) -> bool:
    """Backs the REGEXP operator, which SQLite declares but does not implement."""
    if value is None:
        return False
    return re.search(pattern, str(value)) is not None


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)
    DRIVER: ClassVar[str] = "sqlite3"

    F: ClassVar[dict[str, callable]] = {
        "placeholder": lambda name: f":{name}",
        "group_concat": lambda column: f"GROUP_CONCAT(DISTINCT {column})",
        "regexp": lambda column, placeholder: f"{column} REGEXP {placeholder}",
        "empty_insert": lambda table: f"INSERT INTO {table} DEFAULT VALUES",
        "paging": lambda limit, offset: (
            f"LIMIT {-1 if limit is None else limit} OFFSET {offset}"
            if limit is not None or offset else ""
        ),
    }

    def connect(self, url: str):
        import sqlite3
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname
        logger.info("Connecting to SQLite database %s", path)
        conn = sqlite3.connect(path, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("REGEXP", 2, _regexp, deterministic=True)
        return conn
