"""Core types for pgmapper.

Enumerations shared by the metadata model, the schema synchronizer and the
repository layer, plus the JSON-serializable result models returned by
repository and synchronizer operations.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from pgmapper.core.compat import StrEnum

# A row as returned by the store: physical column name -> value
Row = dict[str, Any]


class ColumnType(StrEnum):
    """Store column types supported by pgmapper.

    Values match PostgreSQL's ``information_schema.columns.data_type`` once
    upper-cased, so they can be compared directly against a schema snapshot.
    """

    DOUBLE_PRECISION = "DOUBLE PRECISION"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"
    TEXT = "TEXT"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid column type values."""
        return [t.value for t in cls]


class RelationKind(StrEnum):
    """Relation kinds between entities."""

    ONE_TO_ONE = "one_to_one"  # e.g., User -> Profile
    ONE_TO_MANY = "one_to_many"  # e.g., User -> Orders
    MANY_TO_ONE = "many_to_one"  # e.g., Order -> User
    MANY_TO_MANY = "many_to_many"  # e.g., Actor <-> Movie (join table)

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relation kind values."""
        return [k.value for k in cls]


class InheritanceType(StrEnum):
    """Inheritance mapping strategies."""

    NONE = "none"  # Each concrete entity owns its table
    SINGLE_TABLE = "single_table"  # Root and children share the root's table

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid inheritance strategy values."""
        return [s.value for s in cls]


class SortDirection(StrEnum):
    """Ordering directions accepted by ``Repository.find``."""

    ASC = "ASC"
    DESC = "DESC"


class InsertResult(BaseModel):
    """Result from ``Repository.insert``."""

    identifiers: list[dict[str, Any]] = Field(default_factory=list)
    generated_maps: list[dict[str, Any]] = Field(default_factory=list)
    raw: list[Row] = Field(default_factory=list)


class UpdateResult(BaseModel):
    """Result from ``Repository.update``."""

    affected: int = 0
    raw: list[Row] = Field(default_factory=list)


class DeleteResult(BaseModel):
    """Result from ``Repository.delete``."""

    affected: int = 0
    raw: list[Row] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Diagnostics from a schema synchronization run."""

    kept: list[str] = Field(default_factory=list)
    rebuilt: list[str] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)
    foreign_keys_added: list[str] = Field(default_factory=list)
    statements: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether any DDL statement was issued."""
        return bool(self.statements)
