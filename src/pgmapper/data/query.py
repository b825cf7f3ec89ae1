"""Statement building for repositories.

Translates property names to physical column names and builds SQLAlchemy
Core statements against one entity table. Single-table-inheritance children
carry a discriminator predicate that is added to every statement touching
existing rows.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy import Delete, Insert, Select, Table, Update, and_, delete, func, insert, or_, select, update
from sqlalchemy.sql.elements import ColumnElement

from pgmapper.core.types import SortDirection
from pgmapper.exceptions import ColumnNotFoundError
from pgmapper.metadata.models import ColumnDescriptor

# Equality criteria: a mapping, or several mappings combined with OR
Criteria = Mapping[str, Any] | Sequence[Mapping[str, Any]]


class EntityQuery:
    """Builds statements for one entity's table."""

    def __init__(
        self,
        entity_name: str,
        table: Table,
        columns: list[ColumnDescriptor],
        discriminator: tuple[str, str] | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            entity_name: Entity name (for error messages)
            table: SQLAlchemy table holding the rows
            columns: Columns visible through this entity
            discriminator: ``(column, value)`` restricting rows to one STI child
        """
        self._entity_name = entity_name
        self._table = table
        self._columns = columns
        self._discriminator = discriminator
        self._by_property = {c.property_name: c.name for c in columns}
        self._by_name = {c.name: c.name for c in columns}

    # === Name translation ===

    def column_name(self, key: str) -> str:
        """Physical column for a property name (or a physical name).

        Raises:
            ColumnNotFoundError: If no visible column matches
        """
        if key in self._by_property:
            return self._by_property[key]
        if key in self._by_name:
            return self._by_name[key]
        raise ColumnNotFoundError(key, self._entity_name, list(self._by_property))

    # === Predicates ===

    def _equals(self, criteria: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        for name, value in criteria.items():
            column = self._table.c[name]
            conditions.append(column.is_(None) if value is None else column == value)
        return conditions

    def _scope(self, clause: ColumnElement[bool] | None) -> ColumnElement[bool] | None:
        if self._discriminator is None:
            return clause
        column, value = self._discriminator
        scoped = self._table.c[column] == value
        return scoped if clause is None else and_(scoped, clause)

    def where(self, criteria: Criteria | None) -> ColumnElement[bool] | None:
        """Combine physical-name criteria into a WHERE clause.

        Keys within a mapping are ANDed; mappings in a list are ORed. An
        empty mapping matches every row.
        """
        if criteria is None:
            return self._scope(None)
        groups = [criteria] if isinstance(criteria, Mapping) else list(criteria)
        if not groups or any(not group for group in groups):
            return self._scope(None)

        clauses = [and_(*self._equals(group)) for group in groups]
        clause = clauses[0] if len(clauses) == 1 else or_(*clauses)
        return self._scope(clause)

    # === Statements ===

    def select(
        self,
        criteria: Criteria | None = None,
        order: Mapping[str, SortDirection | str] | None = None,
        columns: Iterable[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Select[Any]:
        if columns:
            stmt = select(*[self._table.c[name] for name in columns])
        else:
            stmt = select(self._table)

        clause = self.where(criteria)
        if clause is not None:
            stmt = stmt.where(clause)

        for name, direction in (order or {}).items():
            column = self._table.c[name]
            if SortDirection(str(direction).upper()) == SortDirection.DESC:
                stmt = stmt.order_by(column.desc())
            else:
                stmt = stmt.order_by(column.asc())

        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return stmt

    def count(self, criteria: Criteria | None = None) -> Select[Any]:
        stmt = select(func.count().label("count")).select_from(self._table)
        clause = self.where(criteria)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt

    def insert(self, values: Mapping[str, Any]) -> Insert:
        return insert(self._table).values(dict(values)).returning(*self._table.c)

    def update(self, values: Mapping[str, Any], criteria: Criteria | None) -> Update:
        stmt = update(self._table).values(dict(values))
        clause = self.where(criteria)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt.returning(*self._table.c)

    def delete(self, criteria: Criteria | None) -> Delete:
        stmt = delete(self._table)
        clause = self.where(criteria)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt.returning(*self._table.c)
