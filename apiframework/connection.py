"""Named database connections and the prepare/bind/execute/fetch interface.

Connections are registered by name with connect() and opened lazily, once,
by get_connection(); the handle is then shared by every entity and builder
that asks for the same name. Statements are created per executed query.
"""

import logging
from typing import Any, Callable, Optional, Union

from .config import get_settings
from .dialects import Dialect, get_dialect_for_url

logger = logging.getLogger(__name__)


_urls: dict[str, Union[str, Callable[[], str]]] = {}
_connections: dict[str, "Connection"] = {}


def connect(database_url: Union[str, Callable[[], str]], name: str = "default") -> None:
    """Register a database URL (or a callable returning one) under `name`.

    A connection already opened under that name is closed and will be
    reopened with the new URL on next use.
    """
    if not isinstance(database_url, str) and not callable(database_url):
        raise ValueError("database_url must be a str, or a method returning a str")
    _urls[name] = database_url
    existing = _connections.pop(name, None)
    if existing is not None:
        existing.close()


def _get_url(name: str) -> str:
    try:
        url = _urls[name]
    except KeyError as error:
        if name == "default":
            return get_settings().database_url
        raise ValueError(f"No connection configured with name=`{name}`") from error
    return url() if callable(url) else url


def get_connection(name: str = "default") -> "Connection":
    """Return the shared connection registered under `name`, opening it on first use."""
    connection = _connections.get(name)
    if connection is None:
        connection = Connection.open(_get_url(name))
        _connections[name] = connection
    return connection


class Statement:
    """A prepared statement: bind values by name, execute, then fetch rows."""

    def __init__(self, connection: "Connection", sql: str):
        self.connection = connection
        self.sql = sql
        self.parameters: dict[str, Any] = {}
        self.error: Optional[Exception] = None
        self._cursor = None

    def bind_value(self, name: str, value: Any) -> None:
        self.parameters[name] = value

    def execute(self) -> bool:
        """Run the statement; on driver failure keep the error and return False."""
        cursor = self.connection.raw.cursor()
        try:
            cursor.execute(self.sql, self.parameters)
        except self.connection.dialect.error as error:
            logger.debug("Statement failed: %s", error)
            cursor.close()
            self.error = error
            return False
        if self.connection.last_cursor is not None:
            self.connection.last_cursor.close()
        self._cursor = cursor
        self.connection.last_cursor = cursor
        return True

    def fetch_all(self) -> list[dict[str, Any]]:
        """Return every result row as a dict keyed by column name."""
        if self._cursor is None or self._cursor.description is None:
            return []
        names = [description[0] for description in self._cursor.description]
        return [dict(zip(names, row)) for row in self._cursor.fetchall()]

    def error_info(self) -> Optional[tuple[str, str]]:
        """(error class name, message) of the last failure, or None."""
        if self.error is None:
            return None
        return type(self.error).__name__, str(self.error)

    def row_count(self) -> int:
        """Number of rows affected by the statement."""
        if self._cursor is None:
            return 0
        return max(self._cursor.rowcount, 0)


class Connection:
    """Driver connection paired with its dialect."""

    def __init__(self, raw: Any, dialect: Dialect):
        self.raw = raw
        self.dialect = dialect
        self.last_cursor = None

    @classmethod
    def open(cls, url: str) -> "Connection":
        dialect = get_dialect_for_url(url)
        return cls(dialect.connect(url), dialect)

    def prepare(self, sql: str) -> Statement:
        return Statement(self, sql)

    def last_insert_id(self) -> Optional[Any]:
        """Primary key generated by the last INSERT executed on this connection."""
        if self.last_cursor is None:
            return None
        return self.dialect.last_insert_id(self.raw, self.last_cursor)

    def close(self) -> None:
        self.raw.close()
