"""SQL dialects for the engines a connection URL may name.

The URL scheme picks the dialect; a driver suffix (``postgresql+psycopg2``)
and letter case are ignored.
"""

import urllib.parse

from .base import Dialect
from .sqlite import SqliteDialect
from .mysql import MysqlDialect
from .postgres import PostgresDialect

_DIALECTS_BY_SCHEME: dict[str, type[Dialect]] = {
    scheme: dialect_cls
    for dialect_cls in (SqliteDialect, MysqlDialect, PostgresDialect)
    for scheme in dialect_cls.SUPPORTED_SCHEMA
}


def get_dialect_for_scheme(scheme: str) -> Dialect:
    """Return a Dialect instance for a URL scheme such as 'sqlite' or 'mysql'."""
    normalized = (scheme or "").split("+")[0].lower()
    try:
        return _DIALECTS_BY_SCHEME[normalized]()
    except KeyError as error:
        raise ValueError(f"Unsupported database scheme: {scheme}") from error


def get_dialect_for_url(url: str) -> Dialect:
    return get_dialect_for_scheme(urllib.parse.urlparse(url).scheme)


__all__ = [
    "Dialect",
    "SqliteDialect",
    "MysqlDialect",
    "PostgresDialect",
    "get_dialect_for_scheme",
    "get_dialect_for_url",
]
