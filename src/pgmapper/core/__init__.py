"""Core components for pgmapper."""

from pgmapper.core.connection import DatabaseConnection
from pgmapper.core.driver import DatabaseDriver, StoreDriver
from pgmapper.core.types import (
    ColumnType,
    DeleteResult,
    InheritanceType,
    InsertResult,
    RelationKind,
    Row,
    SortDirection,
    SyncResult,
    UpdateResult,
)

__all__ = [
    "DatabaseConnection",
    "DatabaseDriver",
    "StoreDriver",
    "ColumnType",
    "RelationKind",
    "InheritanceType",
    "SortDirection",
    "Row",
    "InsertResult",
    "UpdateResult",
    "DeleteResult",
    "SyncResult",
]
