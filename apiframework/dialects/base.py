"""Base Dialect type.

Each engine subclass opens driver connections and provides, in its ``F``
table, the SQL fragments that differ between engines::

    dialect.f.placeholder("where_posts_id")      # ':where_posts_id'
    dialect.f.group_concat("post_tags.tag_id")   # 'GROUP_CONCAT(DISTINCT ...)'
    dialect.f.regexp("posts.title", ":p")        # 'posts.title REGEXP :p'
    dialect.f.paging(10, 20)                     # 'LIMIT 10 OFFSET 20'
"""

import importlib
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Optional

from pydantic import BaseModel


class _Helpers:
    """Attribute access to the callables of a dialect's F table."""

    __slots__ = ("_table",)

    def __init__(self, table: dict[str, Callable[..., str]]) -> None:
        self._table = table

    def __getattr__(self, name: str) -> Callable[..., str]:
        try:
            return self._table[name]
        except KeyError:
            raise AttributeError(name) from None


class Dialect(BaseModel, ABC):
    """Base for database dialects; subclasses implement connect() for a given URL."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('postgresql', 'postgres'))."""

    DRIVER: ClassVar[str] = ""
    """Import name of the DB-API driver module."""

    F: ClassVar[dict[str, Callable[..., str]]] = {}
    """SQL fragment builders: placeholder, group_concat, regexp, paging, empty_insert."""

    @property
    def f(self) -> _Helpers:
        return _Helpers(type(self).F)

    @property
    def error(self) -> type[Exception]:
        """DB-API ``Error`` class of the driver; every driver failure derives from it."""
        return importlib.import_module(self.DRIVER).Error

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Open a raw driver connection for `url` in autocommit mode."""

    def last_insert_id(self, connection: Any, cursor: Any) -> Optional[Any]:
        """Primary key generated by the last INSERT run on `cursor`."""
        return cursor.lastrowid
