"""Schema snapshot, diff and synchronization."""

from pgmapper.schema.ddl import (
    build_add_foreign_key_statement,
    build_create_table_statement,
    build_drop_table_statement,
    build_table,
)
from pgmapper.schema.diff import TableDiff, diff_table
from pgmapper.schema.snapshot import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    SchemaSnapshot,
    TableSnapshot,
    load_schema_snapshot,
)
from pgmapper.schema.synchronizer import SchemaSynchronizer, prepare_metadata

__all__ = [
    "SchemaSynchronizer",
    "prepare_metadata",
    "TableDiff",
    "diff_table",
    "ColumnSnapshot",
    "ForeignKeySnapshot",
    "SchemaSnapshot",
    "TableSnapshot",
    "load_schema_snapshot",
    "build_table",
    "build_create_table_statement",
    "build_drop_table_statement",
    "build_add_foreign_key_statement",
]
