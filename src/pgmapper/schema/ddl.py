"""DDL rendering for entity tables.

Tables are described with SQLAlchemy Core and compiled for the PostgreSQL
dialect, so type names, SERIAL handling and identifier quoting come from
SQLAlchemy rather than string concatenation.
"""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import Boolean, Column, Double, Integer, MetaData, Table, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from pgmapper.core.types import ColumnType
from pgmapper.exceptions import ForeignKeyError
from pgmapper.metadata.models import ColumnDescriptor, EntityDescriptor, RelationDescriptor

# Mapping from store column types to SQLAlchemy column types
COLUMN_TYPE_MAP = {
    ColumnType.DOUBLE_PRECISION: lambda: Double(),
    ColumnType.INTEGER: lambda: Integer(),
    ColumnType.BOOLEAN: lambda: Boolean(),
    ColumnType.TEXT: lambda: Text(),
}

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")

_DIALECT = postgresql.dialect()


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def qualified_name(table_name: str, schema: str | None = None) -> str:
    if schema:
        return f"{quote_identifier(schema)}.{quote_identifier(table_name)}"
    return quote_identifier(table_name)


def build_constraint_name(table_name: str, column_name: str) -> str:
    """Quoted FK constraint name, ``<table>_<column>_fkey``."""
    raw = _UNSAFE_NAME_CHARS.sub("_", f"{table_name}_{column_name}_fkey")
    return quote_identifier(raw)


def _build_column(column: ColumnDescriptor) -> Column[Any]:
    is_serial = column.auto_increment and column.type == ColumnType.INTEGER
    return Column(
        column.name,
        COLUMN_TYPE_MAP[column.type](),
        primary_key=column.primary,
        nullable=column.nullable and not column.primary,
        unique=column.unique and not column.primary,
        autoincrement=True if is_serial else False,
        quote=True,
    )


def build_table(
    descriptor: EntityDescriptor,
    metadata: MetaData | None = None,
    schema: str | None = None,
) -> Table:
    """Build the SQLAlchemy table for a descriptor's physical columns."""
    metadata = metadata if metadata is not None else MetaData()
    columns = [_build_column(column) for column in descriptor.physical_columns()]
    return Table(
        descriptor.table_name,
        metadata,
        *columns,
        schema=schema,
        quote=True,
        quote_schema=True if schema else None,
    )


def build_create_table_statement(
    descriptor: EntityDescriptor, schema: str | None = None
) -> str | None:
    """Render ``CREATE TABLE`` for PostgreSQL, or None if there are no columns."""
    if not descriptor.physical_columns():
        return None
    table = build_table(descriptor, schema=schema)
    return str(CreateTable(table).compile(dialect=_DIALECT)).strip()


def build_drop_table_statement(table_name: str, schema: str | None = None) -> str:
    return f"DROP TABLE IF EXISTS {qualified_name(table_name, schema)} CASCADE"


def build_add_foreign_key_statement(
    source: EntityDescriptor,
    relation: RelationDescriptor,
    target: EntityDescriptor,
    schema: str | None = None,
) -> str:
    """Render ``ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY``.

    Args:
        source: Descriptor whose table holds the FK column
        relation: Owning relation carrying the join column
        target: Descriptor of the table that stores the referenced rows

    Raises:
        ForeignKeyError: If the referenced column is missing or not unique
    """
    join_column = relation.join_column
    source_table = source.physical_table_name
    target_table = target.physical_table_name
    if join_column is None:
        raise ForeignKeyError(
            source_table,
            relation.property_name,
            target_table,
            "",
            "relation has no join column",
        )

    referenced = next(
        (c for c in target.physical_columns() if c.name == join_column.referenced_column),
        None,
    )
    if referenced is None:
        raise ForeignKeyError(
            source_table,
            join_column.name,
            target_table,
            join_column.referenced_column,
            "the referenced column does not exist",
        )
    if not referenced.primary and not referenced.unique:
        raise ForeignKeyError(
            source_table,
            join_column.name,
            target_table,
            join_column.referenced_column,
            "the referenced column must be primary or unique",
        )

    return (
        f"ALTER TABLE {qualified_name(source_table, schema)} "
        f"ADD CONSTRAINT {build_constraint_name(source_table, join_column.name)} "
        f"FOREIGN KEY ({quote_identifier(join_column.name)}) "
        f"REFERENCES {qualified_name(target_table, schema)} "
        f"({quote_identifier(join_column.referenced_column)})"
    )
