"""PostgreSQL dialect."""

import urllib.parse
from typing import ClassVar

from .base import Dialect


def _paging(limit, offset) -> str:
    parts = []
    if limit is not None:
        parts.append(f"LIMIT {limit}")
    if offset:
        parts.append(f"OFFSET {offset}")
    return " ".join(parts)


class PostgresDialect(Dialect):
    """Dialect for PostgreSQL (schemes postgresql, postgres)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("postgresql", "postgres")
    DRIVER: ClassVar[str] = "psycopg2"

    F: ClassVar[dict[str, callable]] = {
        "placeholder": lambda name: f"%({name})s",
        "group_concat": lambda column: f"STRING_AGG(DISTINCT CAST({column} AS TEXT), ',')",
        "regexp": lambda column, placeholder: f"CAST({column} AS TEXT) ~ {placeholder}",
        "empty_insert": lambda table: f"INSERT INTO {table} DEFAULT VALUES",
        "paging": _paging,
    }

    def connect(self, url: str):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        conn = psycopg2.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port,
        )
        conn.autocommit = True
        return conn

    def last_insert_id(self, connection, cursor):
        # psycopg2 cursors only expose OIDs through lastrowid
        with connection.cursor() as lookup:
            lookup.execute("SELECT LASTVAL()")
            return lookup.fetchone()[0]
