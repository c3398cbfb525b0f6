"""Fluent query builder over a QueryState.

Mutators only change the pending state and return the builder so calls can
be chained. Terminal operations (fetch_all, fetch_one, count, insert,
insert_returning_id, update, delete) run the statement through the Executor
and always leave the builder with a fresh QueryState, whether they succeed
or raise, so one builder can serve unrelated calls::

    rows = (
        builder.use_table("posts")
        .select_columns(["id", "title"])
        .join("users", "user_id", "=", "id")
        .where("name", "alice", table="users")
        .order_by("posts.id DESC")
        .limit(5)
        .fetch_all()
    )
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from .config import Settings
from .connection import Connection, get_connection
from .errors import InvalidArgumentError
from .executor import Executor, qualify
from .state import Comparison, Join, Membership, Pattern, QueryState, Range

OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=",
    "LIKE", "NOT LIKE", "IS", "IS NOT",
})
JOIN_KINDS = frozenset({"LEFT", "RIGHT", "INNER"})
_ORDER = re.compile(r"^[A-Za-z_][\w.]*(\s+(ASC|DESC))?$", re.IGNORECASE)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class QueryBuilder:
    """Builds one statement at a time against a connection."""

    def __init__(
        self,
        connection: Optional[Connection] = None,
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
    ):
        if executor is None:
            executor = Executor(connection or get_connection(), settings)
        self.executor = executor
        self.state = QueryState()

    def reset(self) -> QueryBuilder:
        """Discard the pending statement."""
        self.state = QueryState()
        return self

    @property
    def last_query(self) -> Optional[str]:
        """SQL of the last statement run by this builder."""
        return self.executor.last_query

    @property
    def affected_rows(self) -> int:
        return self.executor.affected_rows

    # --- mutators ---

    def select_columns(self, columns: Iterable[str]) -> QueryBuilder:
        """Replace the output columns; unqualified names belong to the builder's table."""
        if isinstance(columns, (list, tuple)):
            self.state.columns = list(columns)
        return self

    def add_column(self, column: str) -> QueryBuilder:
        self.state.columns.append(column)
        return self

    def use_table(self, table: str) -> QueryBuilder:
        self.state.table = table
        return self

    def join(
        self,
        table: str,
        left_key: str,
        operator: str,
        right_key: str,
        kind: str = "LEFT",
    ) -> QueryBuilder:
        """Join `table` on ``<current table>.left_key operator <table>.right_key``."""
        kind = kind.upper()
        if kind not in JOIN_KINDS:
            raise InvalidArgumentError(f"Unsupported join kind: {kind}")
        if operator not in OPERATORS:
            raise InvalidArgumentError(f"Unsupported operator: {operator}")
        self.state.joins.append(
            Join(table=table, left_key=left_key, operator=operator, right_key=right_key, kind=kind)
        )
        return self

    def where(self, column: str, value: Any, operator: str = "=", table: Optional[str] = None) -> QueryBuilder:
        operator = operator.upper()
        if operator not in OPERATORS:
            raise InvalidArgumentError(f"Unsupported operator: {operator}")
        self.state.comparisons.append(
            Comparison(table=table or self.state.table, column=column, operator=operator, value=value)
        )
        return self

    def where_in(self, column: str, values: Iterable[Any], table: Optional[str] = None) -> QueryBuilder:
        self.state.memberships.append(
            Membership(table=table or self.state.table, column=column, values=list(values))
        )
        return self

    def where_between(self, column: str, low: Any, high: Any, table: Optional[str] = None) -> QueryBuilder:
        """BETWEEN low AND high; a single bound becomes ``>`` or ``<``, none adds nothing."""
        table = table or self.state.table
        if not _is_blank(low) and not _is_blank(high):
            self.state.ranges.append(Range(table=table, column=column, low=low, high=high))
        elif not _is_blank(low):
            self.where(column, low, ">", table)
        elif not _is_blank(high):
            self.where(column, high, "<", table)
        return self

    def where_matches(self, column: str, regex: str, table: Optional[str] = None) -> QueryBuilder:
        self.state.patterns.append(Pattern(table=table or self.state.table, column=column, regex=regex))
        return self

    def group_by(self, column: Optional[str]) -> QueryBuilder:
        if not _is_blank(column):
            self.state.group_by = column.strip()
        return self

    def order_by(self, order: Optional[str]) -> QueryBuilder:
        """Append ``column [ASC|DESC]`` expressions (comma separated); blank input is ignored."""
        if _is_blank(order):
            return self
        for part in order.split(","):
            part = " ".join(part.split())
            if not _ORDER.match(part):
                raise InvalidArgumentError(f"Invalid order: {part!r}")
            self.state.order_by.append(part)
        return self

    def offset(self, offset: int) -> QueryBuilder:
        self.state.offset = int(offset)
        return self

    def limit(self, limit: Optional[int]) -> QueryBuilder:
        """Set LIMIT; None removes it."""
        self.state.limit = None if limit is None else int(limit)
        return self

    def set_fields(self, fields: Mapping[str, Any]) -> QueryBuilder:
        self.state.fields = dict(fields)
        return self

    # --- terminal operations ---

    def fetch_all(self) -> list[dict[str, Any]]:
        """Run the SELECT and return its rows (empty list when none match)."""
        try:
            return self.executor.select(self.state)
        finally:
            self.reset()

    def fetch_one(self) -> Optional[dict[str, Any]]:
        """First row of fetch_all(), or None."""
        rows = self.fetch_all()
        return rows[0] if rows else None

    def count(self, column: str, distinct: bool = False) -> int:
        """COUNT of `column` over the staged conditions, ignoring paging.

        A grouped statement returns the number of groups.
        """
        expression = f"{'DISTINCT ' if distinct else ''}{qualify(self.state.table, column)}"
        self.state.columns = [f"COUNT({expression}) AS count"]
        self.state.order_by = []
        self.state.limit = None
        self.state.offset = 0
        grouped = self.state.group_by is not None
        rows = self.fetch_all()
        if grouped:
            return len(rows)
        return int(rows[0]["count"]) if rows else 0

    def insert(self, fields: Mapping[str, Any]) -> bool:
        try:
            self.set_fields(fields)
            return self.executor.insert(self.state)
        finally:
            self.reset()

    def insert_returning_id(self, fields: Mapping[str, Any]) -> Any:
        """Insert a row and return its generated primary key."""
        try:
            self.set_fields(fields)
            return self.executor.insert_returning_id(self.state)
        finally:
            self.reset()

    def update(self, fields: Mapping[str, Any]) -> int:
        """UPDATE the rows matching the staged conditions; returns the affected row count."""
        try:
            if not fields:
                raise InvalidArgumentError("No fields to update")
            self.set_fields(fields)
            return self.executor.update(self.state)
        finally:
            self.reset()

    def delete(self) -> int:
        """DELETE the rows matching the staged conditions; returns the affected row count."""
        try:
            return self.executor.delete(self.state)
        finally:
            self.reset()
