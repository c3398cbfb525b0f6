"""Relationship declarations and their resolution around a primary fetch.

Three kinds are supported, told apart by their ``kind`` tag:

- HasOne: joined into the primary SELECT; related columns are selected as
  ``_<alias>_<column>`` and nested under ``alias`` after the fetch.
- BelongsToMany: the pivot is joined into the primary SELECT, its foreign
  key aggregated into ``concat_<alias>`` and the rows grouped by primary key;
  the aggregate is split into a list of ids under ``alias``.
- HasMany: one extra batched ``IN`` query per relationship after the primary
  fetch, through another entity or straight against a table; children are
  grouped by foreign key and attached under ``alias``.
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from .errors import NotFoundError

if TYPE_CHECKING:
    from .entity import Entity

logger = logging.getLogger(__name__)

CONCAT_PREFIX = "concat_"
CONCAT_SEPARATOR = ","


class RelationshipKind(str, enum.Enum):
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    BELONGS_TO_MANY = "belongs_to_many"


class SyncMode(str, enum.Enum):
    """How a has-many child collection is reconciled on write."""

    INSERT = "insert"
    UPDATE = "update"
    OVERWRITE = "overwrite"


class HasOne(BaseModel):
    """One related row, joined on ``<entity table>.local_key = <table>.foreign_key``."""

    model_config = {"frozen": True}

    kind: Literal[RelationshipKind.HAS_ONE] = RelationshipKind.HAS_ONE
    alias: str
    table: str
    local_key: str
    foreign_key: str
    columns: tuple[str, ...] = ()

    @property
    def prefix(self) -> str:
        return f"_{self.alias}_"


class HasMany(BaseModel):
    """Child rows whose `foreign_key` equals the parent's `local_key`.

    Children are read through the entity registered as `entity`, or straight
    from `table`. `limit` and `order_by` apply within each parent's group.
    """

    model_config = {"frozen": True}

    kind: Literal[RelationshipKind.HAS_MANY] = RelationshipKind.HAS_MANY
    alias: str
    foreign_key: str
    local_key: str = "id"
    table: Optional[str] = None
    entity: Optional[str] = None
    primary_key: str = "id"
    """Child primary key, used for direct table writes."""
    columns: tuple[str, ...] = ()
    limit: Optional[int] = None
    order_by: str = ""
    sync: frozenset[SyncMode] = frozenset()

    @model_validator(mode="after")
    def _check_source(self) -> HasMany:
        if (self.table is None) == (self.entity is None):
            raise ValueError(f"HasMany {self.alias!r} needs exactly one of `table` or `entity`")
        return self


class BelongsToMany(BaseModel):
    """Related ids stored in `pivot` as (local_key → parent, foreign_key → related)."""

    model_config = {"frozen": True}

    kind: Literal[RelationshipKind.BELONGS_TO_MANY] = RelationshipKind.BELONGS_TO_MANY
    alias: str
    pivot: str
    local_key: str
    foreign_key: str
    sync: bool = False


Relationship = Annotated[Union[HasOne, HasMany, BelongsToMany], Field(discriminator="kind")]


def _parse_id(token: str) -> Any:
    token = token.strip()
    return int(token) if token.lstrip("-").isdigit() else token


def _same_key(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class RelationshipResolver:
    """Applies an entity's relationship declarations to its builder and rows."""

    def __init__(self, entity: Entity):
        self.entity = entity

    @property
    def schema(self):
        return self.entity.schema

    # --- before the primary fetch ---

    def prepare(self) -> None:
        """Merge HasOne and BelongsToMany joins into the pending primary SELECT."""
        self.join_has_one()
        self.join_belongs_to_many()

    def join_has_one(self) -> None:
        builder = self.entity.builder
        for relationship in self.schema.has_one:
            builder.join(relationship.table, relationship.local_key, "=", relationship.foreign_key)
            for column in relationship.columns:
                builder.add_column(f"{relationship.table}.{column} AS {relationship.prefix}{column}")

    def join_belongs_to_many(self) -> None:
        if not self.schema.belongs_to_many:
            return
        builder = self.entity.builder
        dialect = builder.executor.dialect
        builder.group_by(f"{self.schema.table}.{self.schema.primary_key}")
        for relationship in self.schema.belongs_to_many:
            builder.join(relationship.pivot, self.schema.primary_key, "=", relationship.local_key)
            aggregate = dialect.f.group_concat(f"{relationship.pivot}.{relationship.foreign_key}")
            builder.add_column(f"{aggregate} AS {CONCAT_PREFIX}{relationship.alias}")

    # --- after the primary fetch ---

    def attach_has_many(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Fetch each HasMany relationship in one batched query and attach the groups."""
        if not rows:
            return rows
        for relationship in self.schema.has_many:
            ids = list(dict.fromkeys(
                row[relationship.local_key] for row in rows
                if row.get(relationship.local_key) is not None
            ))
            groups = self._fetch_children(relationship, ids) if ids else {}
            for row in rows:
                key = row.get(relationship.local_key)
                row[relationship.alias] = groups.get(None if key is None else str(key), [])
        return rows

    def _fetch_children(self, relationship: HasMany, ids: list[Any]) -> dict[str, list[dict[str, Any]]]:
        if relationship.entity is not None:
            child = self.entity.make_related(relationship.entity)
            # grouping needs the foreign key even when the child restricts its columns
            if child.selected_columns and relationship.foreign_key not in child.selected_columns:
                child.columns([*child.selected_columns, relationship.foreign_key])
            children = (
                child.where_in(relationship.foreign_key, ids)
                .limit(None)
                .order_by(relationship.order_by)
                .get()
            )
        else:
            children = (
                self.entity.builder.use_table(relationship.table)
                .select_columns([relationship.foreign_key, *(relationship.columns or ("*",))])
                .where_in(relationship.foreign_key, ids, relationship.table)
                .limit(None)
                .order_by(relationship.order_by)
                .fetch_all()
            )
        logger.debug("Resolved %d %s children for %d parents", len(children), relationship.alias, len(ids))
        groups: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for child in children:
            key = child[relationship.foreign_key]
            if relationship.foreign_key not in relationship.columns:
                del child[relationship.foreign_key]
            group = groups[str(key)]
            if relationship.limit is None or len(group) < relationship.limit:
                group.append(child)
        return groups

    def format_belongs_to_many(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Replace each ``concat_<alias>`` aggregate with the list of ids it holds."""
        for relationship in self.schema.belongs_to_many:
            column = CONCAT_PREFIX + relationship.alias
            for row in rows:
                if column not in row:
                    continue
                value = row.pop(column)
                row[relationship.alias] = (
                    [_parse_id(token) for token in str(value).split(CONCAT_SEPARATOR)]
                    if value not in (None, "") else []
                )
        return rows

    def format_has_one(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Nest ``_<alias>_<column>`` keys under ``alias``; a join miss gives None."""
        for relationship in self.schema.has_one:
            prefix = relationship.prefix
            for row in rows:
                keys = [key for key in row if key.startswith(prefix)]
                if not keys:
                    continue
                nested = {key[len(prefix):]: row.pop(key) for key in keys}
                row[relationship.alias] = nested if any(v is not None for v in nested.values()) else None
        return rows

    # --- writes ---

    def sync_belongs_to_many(self, parent_id: Any, attributes: dict[str, Any]) -> None:
        """Make each synced pivot hold exactly the ids given under its alias."""
        builder = self.entity.builder
        for relationship in self.schema.belongs_to_many:
            values = attributes.get(relationship.alias)
            if not relationship.sync or not isinstance(values, (list, tuple)):
                continue
            builder.use_table(relationship.pivot).where(
                relationship.local_key, parent_id, "=", relationship.pivot
            ).delete()
            for value in dict.fromkeys(values):
                builder.use_table(relationship.pivot).insert(
                    {relationship.local_key: parent_id, relationship.foreign_key: value}
                )

    def upsert_has_many(self, parent_id: Any, attributes: dict[str, Any]) -> None:
        """Reconcile each synced HasMany collection given under its alias."""
        for relationship in self.schema.has_many:
            children = attributes.get(relationship.alias)
            if not relationship.sync or not isinstance(children, (list, tuple)):
                continue
            if relationship.entity is not None:
                self._upsert_through_entity(relationship, parent_id, children)
            else:
                self._upsert_through_table(relationship, parent_id, children)

    def _upsert_through_entity(self, relationship: HasMany, parent_id: Any, children: list[dict]) -> None:
        child_entity = self.entity.make_related(relationship.entity)
        primary_key = child_entity.schema.primary_key
        if SyncMode.OVERWRITE in relationship.sync:
            kept = {str(child[primary_key]) for child in children if child.get(primary_key) is not None}
            existing = (
                child_entity.where(relationship.foreign_key, parent_id)
                .limit(None)
                .get()
            )
            for row in existing:
                if str(row[primary_key]) not in kept:
                    child_entity.destroy(row[primary_key])
        for child in children:
            child = {**child, relationship.foreign_key: parent_id}
            child_id = child.get(primary_key)
            if child_id is None:
                if SyncMode.INSERT in relationship.sync:
                    child_entity.create(child)
                continue
            if SyncMode.UPDATE not in relationship.sync:
                continue
            try:
                current = child_entity.find(child_id)
            except NotFoundError:
                logger.debug("Skipping missing %s child %s", relationship.alias, child_id)
                continue
            if _same_key(current.get(relationship.foreign_key), parent_id):
                child_entity.update(child_id, child)
            else:
                logger.debug("Skipping %s child %s owned by another parent", relationship.alias, child_id)

    def _upsert_through_table(self, relationship: HasMany, parent_id: Any, children: list[dict]) -> None:
        builder = self.entity.builder
        table = relationship.table
        primary_key = relationship.primary_key
        if SyncMode.OVERWRITE in relationship.sync:
            kept = {str(child[primary_key]) for child in children if child.get(primary_key) is not None}
            existing = (
                builder.use_table(table)
                .select_columns([primary_key])
                .where(relationship.foreign_key, parent_id, "=", table)
                .limit(None)
                .fetch_all()
            )
            stale = [row[primary_key] for row in existing if str(row[primary_key]) not in kept]
            if stale:
                builder.use_table(table).where_in(primary_key, stale, table).delete()
        for child in children:
            fields = {key: value for key, value in child.items() if key in relationship.columns}
            fields[relationship.foreign_key] = parent_id
            child_id = child.get(primary_key)
            if child_id is None:
                if SyncMode.INSERT in relationship.sync:
                    builder.use_table(table).insert(fields)
                continue
            if SyncMode.UPDATE not in relationship.sync:
                continue
            current = (
                builder.use_table(table)
                .where(primary_key, child_id, "=", table)
                .limit(1)
                .fetch_one()
            )
            if current is not None and _same_key(current.get(relationship.foreign_key), parent_id):
                builder.use_table(table).where(primary_key, child_id, "=", table).update(fields)
            else:
                logger.debug("Skipping %s child %s not owned by %s", relationship.alias, child_id, parent_id)
