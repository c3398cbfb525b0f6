"""Mutable description of a pending statement.

A QueryState is assembled by QueryBuilder mutators, turned into SQL by the
executor, then replaced by a fresh QueryState once the statement ran.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

DEFAULT_LIMIT = 10


class Join(BaseModel):
    """``<kind> JOIN <table> ON <root>.<left_key> <operator> <table>.<right_key>``"""

    table: str
    left_key: str
    operator: str = "="
    right_key: str
    kind: str = "LEFT"


class Comparison(BaseModel):
    """``<table>.<column> <operator> value``"""

    table: str
    column: str
    operator: str = "="
    value: Any = None


class Membership(BaseModel):
    """``<table>.<column> IN (values)``"""

    table: str
    column: str
    values: list[Any] = Field(default_factory=list)


class Range(BaseModel):
    """``<table>.<column> BETWEEN low AND high``"""

    table: str
    column: str
    low: Any
    high: Any


class Pattern(BaseModel):
    """``<table>.<column> REGEXP regex``"""

    table: str
    column: str
    regex: str


class QueryState(BaseModel):
    """Table, columns, joins, conditions, grouping, ordering, paging and write fields."""

    table: str = ""
    columns: list[str] = Field(default_factory=list)
    joins: list[Join] = Field(default_factory=list)
    comparisons: list[Comparison] = Field(default_factory=list)
    memberships: list[Membership] = Field(default_factory=list)
    ranges: list[Range] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    group_by: Optional[str] = None
    order_by: list[str] = Field(default_factory=list)
    offset: int = 0
    limit: Optional[int] = DEFAULT_LIMIT
    """Maximum number of rows; None means unbounded."""
    fields: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_conditions(self) -> bool:
        return bool(self.comparisons or self.memberships or self.ranges or self.patterns)
