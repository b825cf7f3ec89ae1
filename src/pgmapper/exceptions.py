"""Custom exceptions for pgmapper.

All exceptions follow the same principles:
- Actionable error messages that tell what went wrong AND how to fix it
- Include context about available options when relevant

Registration-time problems are logged as warnings instead of raised; the
errors below are raised by relation resolution, schema synchronization and
repository operations.
"""

from __future__ import annotations

from typing import Any


class PgMapperError(Exception):
    """Base exception for all pgmapper errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(PgMapperError):
    """Failed to connect to the database."""

    pass


class QueryError(PgMapperError):
    """Statement execution failed."""

    pass


class EntityNotFoundError(PgMapperError):
    """No metadata is registered for the entity."""

    def __init__(self, entity_name: str, available_entities: list[str] | None = None) -> None:
        available = available_entities or []
        if available:
            message = (
                f"No metadata registered for entity '{entity_name}'. "
                f"Registered entities: {', '.join(available)}"
            )
        else:
            message = f"No metadata registered for entity '{entity_name}'. No entities exist yet."

        super().__init__(message, {"entity_name": entity_name, "available_entities": available})
        self.entity_name = entity_name
        self.available_entities = available


class ColumnNotFoundError(PgMapperError):
    """Property or column name does not exist on entity."""

    def __init__(
        self, column_name: str, entity_name: str, available_columns: list[str] | None = None
    ) -> None:
        available = available_columns or []
        if available:
            message = (
                f"Column '{column_name}' not found on '{entity_name}'. "
                f"Available properties: {', '.join(available)}"
            )
        else:
            message = f"Column '{column_name}' not found on '{entity_name}'. No columns defined."

        super().__init__(
            message,
            {
                "column_name": column_name,
                "entity_name": entity_name,
                "available_columns": available,
            },
        )
        self.column_name = column_name
        self.entity_name = entity_name
        self.available_columns = available


# === Relation Errors ===


class TargetNotAvailableError(PgMapperError):
    """Relation target is not registered yet.

    Raised inside deferred relation initializers; the resolver re-queues the
    initializer instead of failing.
    """

    def __init__(self, target: str) -> None:
        message = f"Relation target '{target}' is not registered yet."
        super().__init__(message, {"target": target})
        self.target = target


class RelationResolutionError(PgMapperError):
    """Pending relations could not be resolved within the retry bound."""

    def __init__(self, pending: list[str], max_iterations: int) -> None:
        message = (
            f"Unable to resolve relation metadata after {max_iterations} attempts. "
            f"Unresolved relations: {', '.join(pending)}. "
            "Ensure related entities are registered before synchronization."
        )
        super().__init__(message, {"pending": pending, "max_iterations": max_iterations})
        self.pending = pending
        self.max_iterations = max_iterations


class ForeignKeyError(PgMapperError):
    """Foreign key cannot be created."""

    def __init__(
        self,
        source_table: str,
        column: str,
        target_table: str,
        referenced_column: str,
        reason: str,
    ) -> None:
        message = (
            f"Foreign key from {source_table}.{column} to "
            f"{target_table}.{referenced_column} cannot be created: {reason}"
        )
        super().__init__(
            message,
            {
                "source_table": source_table,
                "column": column,
                "target_table": target_table,
                "referenced_column": referenced_column,
                "reason": reason,
            },
        )
        self.source_table = source_table
        self.column = column
        self.target_table = target_table
        self.referenced_column = referenced_column
        self.reason = reason


# === Repository Errors ===


class UnsafeDeleteError(PgMapperError):
    """Delete was requested without a predicate."""

    def __init__(self, entity_name: str) -> None:
        message = (
            f"Delete on '{entity_name}' requires a non-empty predicate. "
            "Use clear() to delete all rows."
        )
        super().__init__(message, {"entity_name": entity_name})
        self.entity_name = entity_name


class MissingPrimaryKeyError(PgMapperError):
    """Entity has no primary key column or no primary key value."""

    def __init__(self, entity_name: str, reason: str = "no primary key value is set") -> None:
        message = f"Cannot identify '{entity_name}' row: {reason}."
        super().__init__(message, {"entity_name": entity_name, "reason": reason})
        self.entity_name = entity_name
        self.reason = reason


class EmptyInsertError(PgMapperError):
    """Insert was called with zero rows."""

    def __init__(self, entity_name: str) -> None:
        message = f"No data provided for insert into '{entity_name}'."
        super().__init__(message, {"entity_name": entity_name})
        self.entity_name = entity_name
