"""Store driver used by the synchronizer and repositories.

The core never needs more than parameterized statement execution and
tabular result rows keyed by column name.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable

from pgmapper.core.connection import DatabaseConnection
from pgmapper.core.types import Row
from pgmapper.exceptions import QueryError

logger = logging.getLogger(__name__)

Statement = str | Executable


class StoreDriver(ABC):
    """Minimal execution contract against the backing store."""

    @abstractmethod
    def execute(self, statement: Statement, params: dict[str, Any] | None = None) -> None:
        """Execute a statement that returns no rows."""
        ...

    @abstractmethod
    def query(self, statement: Statement, params: dict[str, Any] | None = None) -> list[Row]:
        """Execute a statement and return its rows as dicts."""
        ...

    @abstractmethod
    def end(self) -> None:
        """Release pooled connections."""
        ...


class DatabaseDriver(StoreDriver):
    """SQLAlchemy-backed driver.

    Each call checks out a pooled connection and runs in its own short
    transaction, so consecutive calls are not atomic.
    """

    def __init__(self, connection: DatabaseConnection) -> None:
        """Initialize the driver.

        Args:
            connection: Database connection owning the engine
        """
        self._connection = connection

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> DatabaseDriver:
        """Create a driver with its own connection."""
        return cls(DatabaseConnection(url, echo=echo))

    @property
    def connection(self) -> DatabaseConnection:
        """Get the underlying database connection."""
        return self._connection

    def execute(self, statement: Statement, params: dict[str, Any] | None = None) -> None:
        logger.debug(f"Executing: {statement}")
        try:
            with self._connection.engine.begin() as conn:
                if isinstance(statement, str) and params is None:
                    conn.exec_driver_sql(statement)
                elif params:
                    conn.execute(_as_executable(statement), params)
                else:
                    conn.execute(_as_executable(statement))
        except SQLAlchemyError as e:
            raise QueryError(f"Statement execution failed: {e}", {"sql": str(statement)}) from e

    def query(self, statement: Statement, params: dict[str, Any] | None = None) -> list[Row]:
        logger.debug(f"Querying: {statement}")
        try:
            with self._connection.engine.begin() as conn:
                if params:
                    result = conn.execute(_as_executable(statement), params)
                else:
                    result = conn.execute(_as_executable(statement))
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            raise QueryError(f"Query failed: {e}", {"sql": str(statement)}) from e

    def end(self) -> None:
        self._connection.close()


def _as_executable(statement: Statement) -> Executable:
    """Wrap raw SQL strings in a text() clause."""
    if isinstance(statement, str):
        return text(statement)
    return statement
