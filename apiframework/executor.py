"""Statement compilation and execution for QueryState.

compile_* functions turn a QueryState into ``(sql, parameters)``; bind names
are derived from the table-qualified column so that the same column name in
two joined tables never collides. Executor runs the result through a
Connection and maps rows to dicts.
"""

import logging
import re
from typing import Any, Optional

from .config import QUERY_LOGGER_NAME, Settings, configure_query_log
from .connection import Connection, Statement
from .dialects import Dialect
from .errors import QueryExecutionError
from .state import QueryState, Join

query_logger = logging.getLogger(QUERY_LOGGER_NAME)

_NON_WORD = re.compile(r"\W+")


def qualify(table: str, column: str) -> str:
    """Prefix `column` with `table` unless it already names a table or is an expression."""
    if "." in column or "(" in column:
        return column
    return f"{table}.{column}"


class _Parameters:
    """Bind names and values of one statement; names are unique within it."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self.values: dict[str, Any] = {}

    def bind(self, name: str, value: Any) -> str:
        """Register `value` under a name derived from `name`, return its placeholder."""
        key = _NON_WORD.sub("_", name).strip("_")
        unique = key
        suffix = 1
        while unique in self.values:
            suffix += 1
            unique = f"{key}_{suffix}"
        self.values[unique] = value
        return self.dialect.f.placeholder(unique)


def _sql_join(table: str, join: Join) -> str:
    left = qualify(table, join.left_key)
    right = qualify(join.table, join.right_key)
    return f"{join.kind} JOIN {join.table} ON {left} {join.operator} {right}"


def _sql_where(state: QueryState, parameters: _Parameters) -> str:
    """WHERE clause ANDing comparisons, memberships, ranges then patterns; '' if none."""
    if not state.has_conditions:
        return ""
    conditions = []
    for comparison in state.comparisons:
        column = qualify(comparison.table, comparison.column)
        placeholder = parameters.bind(f"where_{column}", comparison.value)
        conditions.append(f"{column} {comparison.operator} {placeholder}")
    for membership in state.memberships:
        column = qualify(membership.table, membership.column)
        if not membership.values:
            conditions.append("1 = 0")
            continue
        placeholders = [
            parameters.bind(f"where_{column}_{index}", value)
            for index, value in enumerate(membership.values)
        ]
        conditions.append(f"{column} IN ({', '.join(placeholders)})")
    for range_ in state.ranges:
        column = qualify(range_.table, range_.column)
        low = parameters.bind(f"where_{column}_low", range_.low)
        high = parameters.bind(f"where_{column}_high", range_.high)
        conditions.append(f"{column} BETWEEN {low} AND {high}")
    for pattern in state.patterns:
        column = qualify(pattern.table, pattern.column)
        placeholder = parameters.bind(f"where_{column}_pattern", pattern.regex)
        conditions.append(parameters.dialect.f.regexp(column, placeholder))
    return "WHERE " + "\nAND ".join(conditions)


def compile_select(state: QueryState, dialect: Dialect) -> tuple[str, dict[str, Any]]:
    """SELECT/FROM, JOINs, WHERE, GROUP BY, ORDER BY, LIMIT/OFFSET, in that order."""
    parameters = _Parameters(dialect)
    columns = ", ".join(qualify(state.table, column) for column in state.columns)
    lines = [f"SELECT {columns or state.table + '.*'} FROM {state.table}"]
    lines.extend(_sql_join(state.table, join) for join in state.joins)
    where = _sql_where(state, parameters)
    if where:
        lines.append(where)
    if state.group_by:
        lines.append(f"GROUP BY {qualify(state.table, state.group_by)}")
    if state.order_by:
        lines.append("ORDER BY " + ", ".join(state.order_by))
    paging = dialect.f.paging(state.limit, state.offset)
    if paging:
        lines.append(paging)
    return "\n".join(lines), parameters.values


def compile_insert(state: QueryState, dialect: Dialect) -> tuple[str, dict[str, Any]]:
    parameters = _Parameters(dialect)
    if not state.fields:
        return dialect.f.empty_insert(state.table), parameters.values
    placeholders = [parameters.bind(f"value_{name}", value) for name, value in state.fields.items()]
    sql = (
        f"INSERT INTO {state.table} ({', '.join(state.fields)})\n"
        f"VALUES ({', '.join(placeholders)})"
    )
    return sql, parameters.values


def compile_update(state: QueryState, dialect: Dialect) -> tuple[str, dict[str, Any]]:
    parameters = _Parameters(dialect)
    assignments = [
        f"{name} = {parameters.bind(f'value_{name}', value)}"
        for name, value in state.fields.items()
    ]
    sql = f"UPDATE {state.table}\nSET " + ", ".join(assignments)
    where = _sql_where(state, parameters)
    if where:
        sql += "\n" + where
    return sql, parameters.values


def compile_delete(state: QueryState, dialect: Dialect) -> tuple[str, dict[str, Any]]:
    parameters = _Parameters(dialect)
    sql = f"DELETE FROM {state.table}"
    where = _sql_where(state, parameters)
    if where:
        sql += "\n" + where
    return sql, parameters.values


class Executor:
    """Runs compiled statements on a connection and remembers the last one."""

    def __init__(self, connection: Connection, settings: Optional[Settings] = None):
        self.connection = connection
        self.last_query: Optional[str] = None
        self.last_statement: Optional[Statement] = None
        if settings is not None:
            configure_query_log(settings.debug_queries)

    @property
    def dialect(self) -> Dialect:
        return self.connection.dialect

    @property
    def affected_rows(self) -> int:
        """Number of rows affected by the last statement."""
        if self.last_statement is None:
            return 0
        return self.last_statement.row_count()

    def run(self, sql: str, parameters: dict[str, Any], message: str = "Error executing statement") -> Statement:
        """Prepare, bind and execute `sql`; raise QueryExecutionError when the backend fails it."""
        self.last_query = sql
        query_logger.debug("%s %s", " ".join(sql.split()), parameters)
        statement = self.connection.prepare(sql)
        for name, value in parameters.items():
            statement.bind_value(name, value)
        self.last_statement = statement
        if not statement.execute():
            raise QueryExecutionError(message, sql, statement.error_info()) from statement.error
        return statement

    def select(self, state: QueryState) -> list[dict[str, Any]]:
        sql, parameters = compile_select(state, self.dialect)
        return self.run(sql, parameters, "Error reading from database").fetch_all()

    def insert(self, state: QueryState) -> bool:
        sql, parameters = compile_insert(state, self.dialect)
        self.run(sql, parameters, "Error writing to database")
        return True

    def insert_returning_id(self, state: QueryState) -> Any:
        sql, parameters = compile_insert(state, self.dialect)
        self.run(sql, parameters, "Error writing to database")
        inserted_id = self.connection.last_insert_id()
        if inserted_id is None:
            raise QueryExecutionError("Inserted row has no generated id", sql)
        return inserted_id

    def update(self, state: QueryState) -> int:
        sql, parameters = compile_update(state, self.dialect)
        return self.run(sql, parameters, "Error writing to database").row_count()

    def delete(self, state: QueryState) -> int:
        sql, parameters = compile_delete(state, self.dialect)
        return self.run(sql, parameters, "Error deleting from database").row_count()
