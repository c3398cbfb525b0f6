"""MySQL dialect."""

import urllib.parse
from typing import ClassVar

from .base import Dialect

# Largest LIMIT MySQL accepts; it has no "no limit" keyword to pair with OFFSET.
_UNBOUNDED = 18446744073709551615


class MysqlDialect(Dialect):
    """Dialect for MySQL (scheme mysql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mysql",)
    DRIVER: ClassVar[str] = "pymysql"

    F: ClassVar[dict[str, callable]] = {
        "placeholder": lambda name: f"%({name})s",
        "group_concat": lambda column: f"GROUP_CONCAT(DISTINCT {column})",
        "regexp": lambda column, placeholder: f"{column} REGEXP {placeholder}",
        "empty_insert": lambda table: f"INSERT INTO {table} () VALUES ()",
        "paging": lambda limit, offset: (
            f"LIMIT {_UNBOUNDED if limit is None else limit} OFFSET {offset}"
            if limit is not None or offset else ""
        ),
    }

    def connect(self, url: str):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return pymysql.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port or 3306,
            autocommit=True,
        )
