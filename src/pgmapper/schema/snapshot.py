"""Live schema snapshot read from the PostgreSQL catalogs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import text

from pgmapper.core.driver import StoreDriver

logger = logging.getLogger(__name__)


@dataclass
class ColumnSnapshot:
    """One column as it exists in the store."""

    data_type: str
    nullable: bool
    primary: bool = False
    unique: bool = False
    auto_increment: bool = False


@dataclass(frozen=True)
class ForeignKeySnapshot:
    """One single-column FK edge."""

    column: str
    referenced_table: str
    referenced_column: str


@dataclass
class TableSnapshot:
    columns: dict[str, ColumnSnapshot] = field(default_factory=dict)
    foreign_keys: list[ForeignKeySnapshot] = field(default_factory=list)

    def has_foreign_key(self, foreign_key: ForeignKeySnapshot) -> bool:
        return foreign_key in self.foreign_keys


# Table name -> table snapshot
SchemaSnapshot = dict[str, TableSnapshot]

COLUMNS_QUERY = text(
    """
    SELECT table_name, column_name, data_type, is_nullable, column_default
    FROM information_schema.columns
    WHERE table_schema = :schema
    ORDER BY table_name, ordinal_position
    """
)

KEY_CONSTRAINTS_QUERY = text(
    """
    SELECT
        c.relname AS table_name,
        a.attname AS column_name,
        con.contype AS contype
    FROM pg_constraint con
        JOIN pg_class c ON con.conrelid = c.oid
        JOIN pg_namespace n ON c.relnamespace = n.oid
        JOIN unnest(con.conkey) AS cols(attnum) ON TRUE
        JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = cols.attnum
    WHERE n.nspname = :schema AND con.contype IN ('p', 'u')
    """
)

FOREIGN_KEYS_QUERY = text(
    """
    SELECT
        src.relname AS table_name,
        src_col.attname AS column_name,
        tgt.relname AS foreign_table_name,
        tgt_col.attname AS foreign_column_name
    FROM pg_constraint con
        JOIN pg_class src ON src.oid = con.conrelid
        JOIN pg_class tgt ON tgt.oid = con.confrelid
        JOIN pg_namespace n ON n.oid = src.relnamespace
        JOIN unnest(con.conkey) WITH ORDINALITY AS src_att(attnum, ord) ON TRUE
        JOIN unnest(con.confkey) WITH ORDINALITY AS tgt_att(attnum, ord)
            ON src_att.ord = tgt_att.ord
        JOIN pg_attribute src_col ON src_col.attrelid = src.oid AND src_col.attnum = src_att.attnum
        JOIN pg_attribute tgt_col ON tgt_col.attrelid = tgt.oid AND tgt_col.attnum = tgt_att.attnum
    WHERE con.contype = 'f' AND n.nspname = :schema
    """
)


def load_schema_snapshot(driver: StoreDriver, schema: str = "public") -> SchemaSnapshot:
    """Read tables, columns, key constraints and FK edges of one schema.

    Args:
        driver: Store driver
        schema: PostgreSQL schema (namespace) to inspect

    Returns:
        Mapping of table name to its snapshot
    """
    tables: SchemaSnapshot = {}
    params = {"schema": schema}

    for row in driver.query(COLUMNS_QUERY, params):
        table = tables.setdefault(row["table_name"], TableSnapshot())
        default = row["column_default"]
        table.columns[row["column_name"]] = ColumnSnapshot(
            data_type=str(row["data_type"]).upper(),
            nullable=row["is_nullable"] == "YES",
            auto_increment=default is not None and "nextval(" in str(default).lower(),
        )

    for row in driver.query(KEY_CONSTRAINTS_QUERY, params):
        table = tables.setdefault(row["table_name"], TableSnapshot())
        column = table.columns.get(row["column_name"])
        if column is None:
            continue
        if row["contype"] == "p":
            column.primary = True
            column.unique = True
        elif row["contype"] == "u":
            column.unique = True

    for row in driver.query(FOREIGN_KEYS_QUERY, params):
        table = tables.setdefault(row["table_name"], TableSnapshot())
        foreign_key = ForeignKeySnapshot(
            column=row["column_name"],
            referenced_table=row["foreign_table_name"],
            referenced_column=row["foreign_column_name"],
        )
        if foreign_key not in table.foreign_keys:
            table.foreign_keys.append(foreign_key)

    logger.debug(f"Loaded schema snapshot of '{schema}': {len(tables)} table(s)")
    return tables
