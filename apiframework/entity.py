"""Entity: schema declaration plus CRUD orchestration over a QueryBuilder.

An entity subclass declares its table and schema as class attributes; the
EntityMeta metaclass freezes them into an EntitySchema when the class is
created, rejecting inconsistent declarations right away::

    class Post(Entity, table="posts"):
        fillable = ("title", "body", "user_id")
        validate = {"title": ["required"]}
        filters = {"title": ("title", "contains"), "tags": ("tags",)}
        relationships = (
            HasOne(alias="author", table="users", local_key="user_id",
                   foreign_key="id", columns=("name",)),
            BelongsToMany(alias="tags", pivot="post_tags", local_key="post_id",
                          foreign_key="tag_id", sync=True),
            HasMany(alias="comments", entity="Comment", foreign_key="post_id",
                    sync={"insert", "update", "overwrite"}),
        )

Each instance owns one QueryBuilder and must not be shared between
concurrent callers. Writes are not wrapped in a transaction: when a step of
create() or update() fails, the steps before it stay committed.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Mapping, Optional

from pydantic import BaseModel, model_validator

from .config import Settings, get_settings
from .connection import Connection, get_connection
from .errors import ExecutionError, InvalidArgumentError, NotFoundError, ValidationError
from .query import QueryBuilder
from .relationships import BelongsToMany, HasMany, HasOne, Relationship, RelationshipResolver
from .validation import DEFAULT_RULES, validation_errors

logger = logging.getLogger(__name__)

CONTAINS_OPERATORS = frozenset({"contains", "like"})


class Filter(BaseModel):
    """Maps a search key to a column, a comparison operator and optionally a table.

    Also accepts a ``(column, operator, table)`` sequence or a bare column name.
    """

    model_config = {"frozen": True}

    column: str
    operator: str = "="
    table: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"column": data}
        if isinstance(data, (list, tuple)):
            return dict(zip(("column", "operator", "table"), data))
        return data


class Pagination(BaseModel):
    offset: int = 0
    limit: Optional[int] = None


class EntitySchema(BaseModel):
    """Frozen schema of an entity type."""

    model_config = {"frozen": True}

    table: str
    primary_key: str = "id"
    fillable: frozenset[str] = frozenset()
    ruleset: dict[str, tuple[str, ...]] = {}
    """Field name to rule names, declared as `validate` on the entity."""
    rules: dict[str, str] = {}
    filters: dict[str, Filter] = {}
    relationships: tuple[Relationship, ...] = ()
    default_columns: tuple[str, ...] = ()
    default_limit: Optional[int] = None
    default_order: str = ""

    @model_validator(mode="after")
    def _check_aliases(self) -> EntitySchema:
        aliases = [relationship.alias for relationship in self.relationships]
        duplicates = sorted({alias for alias in aliases if aliases.count(alias) > 1})
        if duplicates:
            raise ValueError(f"Relationship aliases declared twice on {self.table}: {', '.join(duplicates)}")
        prefixes = [relationship.prefix for relationship in self.has_one]
        for prefix in prefixes:
            for other in prefixes:
                if other != prefix and other.startswith(prefix):
                    raise ValueError(
                        f"HasOne column prefixes {prefix!r} and {other!r} collide on {self.table}"
                    )
        return self

    @property
    def has_one(self) -> list[HasOne]:
        return [r for r in self.relationships if isinstance(r, HasOne)]

    @property
    def has_many(self) -> list[HasMany]:
        return [r for r in self.relationships if isinstance(r, HasMany)]

    @property
    def belongs_to_many(self) -> list[BelongsToMany]:
        return [r for r in self.relationships if isinstance(r, BelongsToMany)]

    @property
    def aliases(self) -> frozenset[str]:
        return frozenset(relationship.alias for relationship in self.relationships)

    @property
    def patterns(self) -> dict[str, str]:
        """Validation patterns: defaults overridden by the entity's own rules."""
        return {**DEFAULT_RULES, **self.rules}


_DECLARATIONS = (
    "primary_key",
    "fillable",
    "rules",
    "filters",
    "relationships",
    "default_columns",
    "default_limit",
    "default_order",
)


class EntityMeta(type):
    """Metaclass for Entity: builds the frozen EntitySchema from class declarations."""

    def __new__(mcs, name, bases, namespace, table: Optional[str] = None, **kwargs):
        result = super().__new__(mcs, name, bases, namespace, **kwargs)
        if table is not None:
            result.table = table
        if result.table:
            result.schema = EntitySchema(
                table=result.table,
                ruleset=result.validate,
                **{declaration: getattr(result, declaration) for declaration in _DECLARATIONS},
            )
        else:
            result.schema = None
        return result


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


class Entity(metaclass=EntityMeta):
    """Base class for entity types; subclasses declare a table and their schema."""

    table: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"
    fillable: ClassVar[tuple[str, ...]] = ()
    validate: ClassVar[dict[str, list[str]]] = {}
    rules: ClassVar[dict[str, str]] = {}
    filters: ClassVar[dict[str, Any]] = {}
    relationships: ClassVar[tuple[Any, ...]] = ()
    default_columns: ClassVar[tuple[str, ...]] = ()
    default_limit: ClassVar[Optional[int]] = None
    default_order: ClassVar[str] = ""
    schema: ClassVar[Optional[EntitySchema]] = None

    def __init__(
        self,
        connection: Optional[Connection] = None,
        factory: Optional[EntityFactory] = None,
        settings: Optional[Settings] = None,
    ):
        if self.schema is None:
            raise TypeError(f"{type(self).__name__} does not declare a table")
        self.settings = settings or get_settings()
        self.connection = connection or get_connection()
        self.factory = factory
        self.builder = QueryBuilder(self.connection, self.settings)
        self.resolver = RelationshipResolver(self)
        self._pagination: Optional[Pagination] = None
        self._reset_paging()

    def _reset_paging(self) -> None:
        self._offset = 0
        self._limit = self.schema.default_limit or self.settings.default_limit
        self._order = self.schema.default_order
        self._columns = list(self.schema.default_columns)

    def make_related(self, name: str) -> Entity:
        """Instance of the entity registered as `name` in this entity's factory."""
        if self.factory is None:
            raise InvalidArgumentError(
                f"{type(self).__name__} needs an EntityFactory to resolve entity {name!r}"
            )
        return self.factory.make(name)

    # --- chainable query helpers ---

    def offset(self, offset: Any) -> Entity:
        value = _as_int(offset)
        if value is not None:
            self._offset = value
        return self

    def limit(self, limit: Any) -> Entity:
        """Set the page size; None fetches every matching row."""
        if limit is None:
            self._limit = None
        elif _as_int(limit) is not None:
            self._limit = _as_int(limit)
        return self

    def order_by(self, order: Any) -> Entity:
        if isinstance(order, str) and order.strip():
            self._order = order
        return self

    @property
    def selected_columns(self) -> list[str]:
        """Columns the next get() selects; empty means all."""
        return list(self._columns)

    def columns(self, columns: Any) -> Entity:
        if isinstance(columns, (list, tuple)):
            self._columns = list(columns)
        return self

    def where(self, column: str, value: Any, operator: str = "=", table: Optional[str] = None) -> Entity:
        self.builder.where(column, value, operator, table or self.schema.table)
        return self

    def where_in(self, column: str, values: Any, table: Optional[str] = None) -> Entity:
        self.builder.where_in(column, values, table or self.schema.table)
        return self

    def pagination(self) -> Pagination:
        """Offset and limit used by the last get(), or the pending ones before any get()."""
        if self._pagination is not None:
            return self._pagination
        return Pagination(offset=self._offset, limit=self._limit)

    def search(self, filters: Mapping[str, Any]) -> Entity:
        """Stage paging and declared filters; unknown filter keys are ignored."""
        if not isinstance(filters, Mapping):
            raise InvalidArgumentError("Undefined search filters")
        if filters.get("limit") is not None:
            self.limit(filters["limit"])
        if filters.get("offset") is not None:
            self.offset(filters["offset"])
        if filters.get("order") is not None:
            self.order_by(filters["order"])
        pivots = {relationship.alias: relationship for relationship in self.schema.belongs_to_many}
        for key, value in filters.items():
            declared = self.schema.filters.get(key)
            if declared is None:
                continue
            relationship = pivots.get(declared.column)
            if relationship is not None:
                values = value if isinstance(value, (list, tuple, set)) else [value]
                self.builder.where_in(relationship.foreign_key, values, relationship.pivot)
                continue
            operator = declared.operator
            if operator.lower() in CONTAINS_OPERATORS:
                operator, value = "LIKE", f"%{value}%"
            self.builder.where(declared.column, value, operator, declared.table or self.schema.table)
        return self

    # --- reads ---

    def get(self) -> list[dict[str, Any]]:
        """Fetch the matching records with their relationships resolved."""
        try:
            self.before_get()
            self.builder.use_table(self.schema.table).limit(self._limit).offset(self._offset)
            self.builder.order_by(self._order).select_columns(self._columns or ["*"])
            self.resolver.prepare()
            rows = self.builder.fetch_all()
            self.resolver.attach_has_many(rows)
            self.resolver.format_belongs_to_many(rows)
            self.resolver.format_has_one(rows)
            return self.after_get(rows)
        finally:
            self._pagination = Pagination(offset=self._offset, limit=self._limit)
            self._reset_paging()
            self.builder.reset()

    def first(self) -> Optional[dict[str, Any]]:
        rows = self.get()
        return rows[0] if rows else None

    def count(self) -> int:
        """Number of distinct records matching the staged conditions."""
        try:
            self.builder.use_table(self.schema.table)
            self.resolver.prepare()
            return self.builder.count(self.schema.primary_key, distinct=True)
        finally:
            self.builder.reset()

    def find(self, id: Any) -> dict[str, Any]:
        if id is None:
            raise InvalidArgumentError("Undefined ID")
        self.builder.where(self.schema.primary_key, id, "=", self.schema.table)
        rows = self.get()
        if not rows:
            raise NotFoundError(f"{type(self).__name__} {id} not found")
        return rows[0]

    # --- writes ---

    def validation_errors(
        self, attributes: Mapping[str, Any], rules: Optional[Mapping[str, list[str]]] = None
    ) -> dict[str, str]:
        return validation_errors(
            attributes,
            self.schema.ruleset if rules is None else rules,
            self.schema.patterns,
        )

    def _writable_fields(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Fillable attributes, without relationship payloads; raises ValidationError."""
        fields = {
            name: value for name, value in attributes.items()
            if name in self.schema.fillable and name not in self.schema.aliases
        }
        errors = self.validation_errors(fields)
        if errors:
            raise ValidationError(errors)
        return fields

    def create(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(attributes, Mapping):
            raise InvalidArgumentError("Undefined attributes")
        attributes = self.before_create(dict(attributes))
        fields = self._writable_fields(attributes)
        id = self.builder.use_table(self.schema.table).insert_returning_id(fields)
        logger.debug("Created %s %s", type(self).__name__, id)
        self.resolver.sync_belongs_to_many(id, attributes)
        self.resolver.upsert_has_many(id, attributes)
        record = self.find(id)
        return self.after_create(id, attributes, record)

    def update(self, id: Any, attributes: Mapping[str, Any]) -> dict[str, Any]:
        if id is None:
            raise InvalidArgumentError("Undefined ID")
        if not isinstance(attributes, Mapping):
            raise InvalidArgumentError("Undefined attributes")
        attributes = self.before_update(id, dict(attributes))
        fields = self._writable_fields(attributes)
        if fields:
            self.builder.use_table(self.schema.table).where(
                self.schema.primary_key, id, "=", self.schema.table
            ).update(fields)
            logger.debug("Updated %s %s", type(self).__name__, id)
        self.resolver.sync_belongs_to_many(id, attributes)
        self.resolver.upsert_has_many(id, attributes)
        record = self.find(id)
        return self.after_update(id, attributes, record)

    def destroy(self, id: Any) -> Any:
        if id is None:
            raise InvalidArgumentError("Undefined ID")
        self.before_destroy(id)
        affected = (
            self.builder.use_table(self.schema.table)
            .where(self.schema.primary_key, id, "=", self.schema.table)
            .limit(1)
            .delete()
        )
        if not affected:
            raise ExecutionError(f"Could not destroy {type(self).__name__} {id}")
        logger.debug("Destroyed %s %s", type(self).__name__, id)
        self.after_destroy(id)
        return id

    # --- hooks ---

    def before_get(self) -> None:
        """Runs before get() builds its query; may stage extra conditions."""

    def after_get(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return rows

    def before_create(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return attributes

    def after_create(self, id: Any, attributes: dict[str, Any], record: dict[str, Any]) -> dict[str, Any]:
        return record

    def before_update(self, id: Any, attributes: dict[str, Any]) -> dict[str, Any]:
        return attributes

    def after_update(self, id: Any, attributes: dict[str, Any], record: dict[str, Any]) -> dict[str, Any]:
        return record

    def before_destroy(self, id: Any) -> None:
        pass

    def after_destroy(self, id: Any) -> None:
        pass


class EntityFactory:
    """Builds entity instances by registered type name, sharing one connection."""

    def __init__(self, connection: Optional[Connection] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.connection = connection or get_connection()
        self._entities: dict[str, type[Entity]] = {}

    def register(self, *entity_classes: type[Entity]) -> EntityFactory:
        for entity_class in entity_classes:
            self._entities[entity_class.__name__] = entity_class
        return self

    def make(self, name: str) -> Entity:
        try:
            entity_class = self._entities[name]
        except KeyError as error:
            raise InvalidArgumentError(f"No entity registered as {name!r}") from error
        return entity_class(self.connection, factory=self, settings=self.settings)
