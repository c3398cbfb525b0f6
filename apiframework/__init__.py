"""apiframework: fluent query builder and minimal relational mapper for API services."""

from .config import Settings, get_settings
from .connection import connect, get_connection
from .entity import Entity, EntityFactory, Filter, Pagination
from .errors import (
    ApiFrameworkError,
    ExecutionError,
    InvalidArgumentError,
    NotFoundError,
    QueryExecutionError,
    ValidationError,
)
from .query import QueryBuilder
from .relationships import BelongsToMany, HasMany, HasOne, SyncMode

__all__ = [
    "Settings",
    "get_settings",
    "connect",
    "get_connection",
    "Entity",
    "EntityFactory",
    "Filter",
    "Pagination",
    "ApiFrameworkError",
    "ExecutionError",
    "InvalidArgumentError",
    "NotFoundError",
    "QueryExecutionError",
    "ValidationError",
    "QueryBuilder",
    "BelongsToMany",
    "HasMany",
    "HasOne",
    "SyncMode",
]
