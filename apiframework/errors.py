"""Exceptions raised by the data-access layer.

Presentation (HTTP status, message) is left to the caller; each error carries
enough context for it.
"""

from typing import Any, Optional


class ApiFrameworkError(Exception):
    """Base class for every error raised by apiframework."""


class InvalidArgumentError(ApiFrameworkError, ValueError):
    """A required id or attributes mapping was missing before any query ran."""


class ValidationError(ApiFrameworkError):
    """Attributes failed validation; `errors` maps field name to rule name."""

    def __init__(self, errors: dict[str, str], message: str = "Invalid attributes"):
        super().__init__(message)
        self.errors = errors

    def __str__(self):
        details = ", ".join(f"{field}: {rule}" for field, rule in self.errors.items())
        return f"{self.args[0]} ({details})" if details else self.args[0]


class NotFoundError(ApiFrameworkError):
    """The requested record does not exist."""


class ExecutionError(ApiFrameworkError):
    """A write could not be carried out."""


class QueryExecutionError(ExecutionError):
    """The backend rejected or failed a statement."""

    def __init__(self, message: str, sql: str, error_info: Optional[Any] = None):
        super().__init__(message)
        self.sql = sql
        self.error_info = error_info

    def __str__(self):
        result = f"{self.args[0]}\n{self.sql}"
        if self.error_info:
            result += f"\n{self.error_info}"
        return result
