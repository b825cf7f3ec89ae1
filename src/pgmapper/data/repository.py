"""Repository: a data mapper between entity objects and table rows.

Example:
    users = mapper.get_repository(User)
    alice = users.save(users.create({"name": "Alice"}))
    users.find(where={"name": "Alice"}, order={"id": "DESC"})
    users.delete({"name": "Alice"})
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

from pgmapper.core.driver import StoreDriver
from pgmapper.core.types import (
    DeleteResult,
    InsertResult,
    Row,
    SortDirection,
    UpdateResult,
)
from pgmapper.data.query import Criteria, EntityQuery
from pgmapper.exceptions import EmptyInsertError, MissingPrimaryKeyError, UnsafeDeleteError
from pgmapper.metadata.fields import MISSING, ColumnField
from pgmapper.metadata.models import ColumnDescriptor, EntityDescriptor
from pgmapper.metadata.registry import MetadataRegistry
from pgmapper.schema.ddl import build_table

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCALAR_TYPES = (
    str,
    bytes,
    int,
    float,
    bool,
    Decimal,
    date,
    datetime,
    time,
    timedelta,
    uuid.UUID,
    Enum,
)


def _merge_columns(
    base: list[ColumnDescriptor], extra: list[ColumnDescriptor]
) -> list[ColumnDescriptor]:
    names = {column.name for column in base}
    return list(base) + [column for column in extra if column.name not in names]


def _read_attribute(entity: Any, key: str) -> Any:
    """Value of ``key`` on an entity object or mapping, or MISSING."""
    if isinstance(entity, Mapping):
        return entity.get(key, MISSING)
    if key in vars(entity):
        return vars(entity)[key]
    marker = getattr(type(entity), key, None)
    if isinstance(marker, ColumnField) and marker.has_default:
        return getattr(entity, key)
    return MISSING


class Repository(Generic[T]):
    """CRUD operations for one entity.

    A repository for a single-table-inheritance child reads and writes the
    root's table, restricted to rows carrying the child's discriminator
    value. A repository for the root sees the rows of every child and loads
    each one as its child class; child objects it is asked to save or insert
    are written through the child's repository.
    """

    def __init__(
        self,
        driver: StoreDriver,
        registry: MetadataRegistry,
        entity: type[T] | str,
    ) -> None:
        """Initialize the repository.

        Args:
            driver: Store driver
            registry: Registry the entity is declared in
            entity: Entity class or name
        """
        self._driver = driver
        self._registry = registry
        self._descriptor = registry.require(entity)
        self._cls = registry.entity_class(self._descriptor.name)

        root = registry.sti_root(self._descriptor)
        discriminator: tuple[str, str] | None = None
        if root is not None and root.discriminator_column:
            self._columns = registry.visible_columns(self._descriptor)
            self._entity_columns = self._columns
            table_descriptor = EntityDescriptor(
                name=self._descriptor.name,
                table_name=root.table_name,
                columns=_merge_columns(root.physical_columns(), self._columns),
            )
            discriminator = (root.discriminator_column, self._discriminator_value(self._descriptor))
        elif self._descriptor.is_sti_root:
            # Queries and updates may name any child column stored in the root table
            self._entity_columns = list(self._descriptor.columns)
            self._columns = _merge_columns(self._entity_columns, self._descriptor.sti_child_columns)
            table_descriptor = self._descriptor
        else:
            self._columns = list(self._descriptor.columns)
            self._entity_columns = self._columns
            table_descriptor = self._descriptor

        self._discriminator = discriminator
        self._children: dict[str, Repository[Any]] = {}
        self._query = EntityQuery(
            self._descriptor.name,
            build_table(table_descriptor),
            self._columns,
            discriminator,
        )

    @staticmethod
    def _discriminator_value(descriptor: EntityDescriptor) -> str:
        return descriptor.discriminator_value or descriptor.name

    @property
    def descriptor(self) -> EntityDescriptor:
        return self._descriptor

    @property
    def columns(self) -> list[ColumnDescriptor]:
        """Columns visible through this repository."""
        return list(self._columns)

    def _primary(self) -> ColumnDescriptor | None:
        for column in self._columns:
            if column.primary:
                return column
        return None

    # === Mapping ===

    def create(self, row: Mapping[str, Any] | None = None) -> Any:
        """Build an entity from a row (physical or property keys).

        A repository for an STI root returns instances of the child class
        whose discriminator value the row carries.
        """
        cls, columns = self._cls, self._entity_columns
        if row is not None and self._descriptor.is_sti_root:
            cls, columns = self._polymorphic_target(row)

        if cls is None:
            entity: Any = {}
            for column in columns:
                if row is not None and column.name in row:
                    entity[column.name] = row[column.name]
            return entity

        entity = cls()
        if row is None:
            return entity
        for column in columns:
            if column.name in row:
                setattr(entity, column.property_name, row[column.name])
            elif column.property_name in row:
                setattr(entity, column.property_name, row[column.property_name])
        return entity

    def _polymorphic_target(self, row: Mapping[str, Any]) -> tuple[type | None, list[ColumnDescriptor]]:
        column = self._descriptor.discriminator_column
        value = row.get(column) if column else None
        if value is None or value == self._discriminator_value(self._descriptor):
            return self._cls, self._entity_columns
        for child in self._registry.sti_children(self._descriptor):
            if self._discriminator_value(child) == value:
                child_cls = self._registry.entity_class(child.name)
                return child_cls, self._registry.visible_columns(child)
        logger.warning(
            f"Unknown discriminator value {value!r} in table {self._descriptor.table_name}; "
            f"loading as {self._descriptor.name}"
        )
        return self._cls, self._entity_columns

    def _child_repository(self, entity: Any) -> Repository[Any] | None:
        """Repository for the STI child class of ``entity``, when this is its root."""
        if not self._descriptor.is_sti_root or isinstance(entity, Mapping):
            return None
        cls = type(entity)
        if cls is self._cls:
            return None
        child = self._registry.get(cls)
        if child is None or self._registry.sti_root(child) is not self._descriptor:
            return None
        if child.name not in self._children:
            self._children[child.name] = Repository(self._driver, self._registry, cls)
        return self._children[child.name]

    def map_to_db_object(self, entity: Any) -> Row:
        """Collect the column values set on an entity object or mapping."""
        values: Row = {}
        for column in self._columns:
            value = _read_attribute(entity, column.property_name)
            if value is MISSING:
                value = _read_attribute(entity, column.name)
            if value is MISSING:
                continue
            values[column.name] = self._resolve_value(column, value)
        return values

    def _resolve_value(self, column: ColumnDescriptor, value: Any) -> Any:
        """Replace a related object assigned to a FK column with its primary key."""
        if value is None or isinstance(value, _SCALAR_TYPES):
            return value

        relation = next(
            (
                r
                for r in self._descriptor.relations
                if r.owner
                and r.join_column is not None
                and (r.join_column.name == column.name or r.property_name == column.property_name)
            ),
            None,
        )
        if relation is None:
            return value

        target = self._registry.get(relation.target)
        if target is None:
            return value
        candidates = self._registry.visible_columns(target)
        referenced = relation.join_column.referenced_column if relation.join_column else None
        key_column = next((c for c in candidates if c.name == referenced), None)
        if key_column is None:
            key_column = next((c for c in candidates if c.primary), None)
        if key_column is None:
            return value

        resolved = _read_attribute(value, key_column.property_name)
        if resolved is MISSING:
            resolved = _read_attribute(value, key_column.name)
        if resolved is MISSING or resolved is None:
            raise MissingPrimaryKeyError(
                target.name, f"related entity assigned to '{column.property_name}' has no key value"
            )
        return resolved

    def _criteria(self, where: Criteria | None) -> Criteria | None:
        if where is None:
            return None
        groups = [where] if isinstance(where, Mapping) else list(where)
        translated = []
        for group in groups:
            mapped: Row = {}
            for key, value in group.items():
                name = self._query.column_name(key)
                column = next(c for c in self._columns if c.name == name)
                mapped[name] = self._resolve_value(column, value)
            translated.append(mapped)
        return translated[0] if isinstance(where, Mapping) else translated

    def _insert_values(self, values: Row) -> Row:
        data = dict(values)
        for column in self._columns:
            if (column.primary or column.auto_increment) and data.get(column.name, MISSING) is None:
                del data[column.name]
        if self._discriminator is not None:
            column_name, value = self._discriminator
            data[column_name] = value
        elif self._descriptor.is_sti_root and self._descriptor.discriminator_column:
            data[self._descriptor.discriminator_column] = self._discriminator_value(self._descriptor)
        return data

    # === Writes ===

    def save(self, entity: Any) -> Any:
        """Update the entity's row if it has a primary key, otherwise insert it.

        An update that matches no row falls back to an insert. Lists are
        saved element by element; a failure part-way leaves earlier rows
        saved.
        """
        if isinstance(entity, list):
            return [self.save(item) for item in entity]

        child = self._child_repository(entity)
        if child is not None:
            return child.save(entity)

        values = self.map_to_db_object(entity)
        primary = self._primary()
        if primary is not None and values.get(primary.name) is not None:
            key = {primary.name: values[primary.name]}
            changes = {name: value for name, value in values.items() if name != primary.name}
            if changes:
                rows = self._driver.query(self._query.update(changes, key))
            else:
                rows = self._driver.query(self._query.select(key, limit=1))
            if rows:
                return self.create(rows[0])
            logger.debug(
                f"No {self._descriptor.name} row with {primary.name}={values[primary.name]!r}; inserting"
            )

        return self.create(self._insert_row(entity))

    def _insert_row(self, entity: Any) -> Row:
        child = self._child_repository(entity)
        if child is not None:
            return child._insert_row(entity)
        values = self._insert_values(self.map_to_db_object(entity))
        return self._driver.query(self._query.insert(values))[0]

    def insert(self, entity: Any | list[Any]) -> InsertResult:
        """Insert one or more rows without reading existing state.

        Raises:
            EmptyInsertError: If an empty list is given
        """
        entities = entity if isinstance(entity, list) else [entity]
        if not entities:
            raise EmptyInsertError(self._descriptor.name)

        primary = self._primary()
        generated = [c for c in self._columns if c.primary or c.auto_increment]
        result = InsertResult()
        for item in entities:
            row = self._insert_row(item)
            result.raw.append(row)
            if primary is not None:
                result.identifiers.append({primary.property_name: row.get(primary.name)})
            result.generated_maps.append({c.property_name: row.get(c.name) for c in generated})
        return result

    def update(self, criteria: Criteria, partial: Any) -> UpdateResult:
        """Apply ``partial`` to every row matching ``criteria``."""
        data = self.map_to_db_object(partial)
        if not data:
            return UpdateResult(affected=0)
        rows = self._driver.query(self._query.update(data, self._criteria(criteria)))
        return UpdateResult(affected=len(rows), raw=rows)

    def delete(self, criteria: Any) -> DeleteResult:
        """Delete rows by primary-key value or by equality criteria.

        Raises:
            UnsafeDeleteError: If the criteria are empty
            MissingPrimaryKeyError: If a key value is given but the entity has no primary key
        """
        if isinstance(criteria, Mapping) or (
            isinstance(criteria, Sequence) and not isinstance(criteria, (str, bytes))
        ):
            translated = self._criteria(criteria)
            groups = [translated] if isinstance(translated, Mapping) else list(translated or [])
            if not groups or any(not group for group in groups):
                raise UnsafeDeleteError(self._descriptor.name)
        else:
            if criteria is None:
                raise UnsafeDeleteError(self._descriptor.name)
            primary = self._primary()
            if primary is None:
                raise MissingPrimaryKeyError(self._descriptor.name, "entity has no primary key column")
            translated = {primary.name: criteria}

        rows = self._driver.query(self._query.delete(translated))
        return DeleteResult(affected=len(rows), raw=rows)

    def remove(self, entity: Any) -> Any:
        """Delete the row backing ``entity`` and return the entity."""
        primary = self._primary()
        if primary is None:
            raise MissingPrimaryKeyError(self._descriptor.name, "entity has no primary key column")
        key = self.map_to_db_object(entity).get(primary.name)
        if key is None:
            raise MissingPrimaryKeyError(self._descriptor.name)
        self.delete(key)
        return entity

    def clear(self) -> DeleteResult:
        """Delete every row visible through this repository."""
        rows = self._driver.query(self._query.delete(None))
        logger.info(f"Cleared {len(rows)} {self._descriptor.name} row(s)")
        return DeleteResult(affected=len(rows), raw=rows)

    # === Reads ===

    def find(
        self,
        where: Criteria | None = None,
        order: Mapping[str, SortDirection | str] | None = None,
        select: list[str] | None = None,
        take: int | None = None,
        skip: int | None = None,
    ) -> list[Any]:
        """Find entities by equality criteria.

        Args:
            where: Mapping of property to value, or a list of such mappings
                combined with OR. ``None`` values match NULL.
            order: Mapping of property to ``"ASC"`` or ``"DESC"``
            select: Properties to load (all when omitted)
            take: Maximum number of rows
            skip: Number of rows to skip

        Raises:
            ColumnNotFoundError: If a property name is unknown
        """
        order_by = {self._query.column_name(key): value for key, value in (order or {}).items()}
        columns = [self._query.column_name(key) for key in select] if select else None
        statement = self._query.select(
            self._criteria(where),
            order=order_by,
            columns=columns,
            limit=take,
            offset=skip,
        )
        return [self.create(row) for row in self._driver.query(statement)]

    def find_one(
        self,
        where: Criteria | None = None,
        order: Mapping[str, SortDirection | str] | None = None,
        select: list[str] | None = None,
    ) -> Any | None:
        results = self.find(where=where, order=order, select=select, take=1)
        return results[0] if results else None

    def count(self, where: Criteria | None = None) -> int:
        rows = self._driver.query(self._query.count(self._criteria(where)))
        return int(rows[0]["count"]) if rows else 0
