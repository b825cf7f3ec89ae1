"""Shared test fixtures for pgmapper."""

import os
from collections.abc import Callable, Generator
from typing import Any

import pytest
from sqlalchemy import MetaData

from pgmapper.core.driver import DatabaseDriver, Statement, StoreDriver
from pgmapper.core.types import Row
from pgmapper.metadata.models import EntityDescriptor
from pgmapper.metadata.registry import MetadataRegistry
from pgmapper.schema.ddl import build_table
from pgmapper.schema.snapshot import (
    ColumnSnapshot,
    ForeignKeySnapshot,
    SchemaSnapshot,
    TableSnapshot,
)


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    try:
        from pgmapper.core.connection import DatabaseConnection

        conn = DatabaseConnection(url)
        result = conn.test_connection()
        conn.close()
        return result
    except Exception:
        return False


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install psycopg[binary])",
)


class RecordingDriver(StoreDriver):
    """Driver that records executed statements and returns canned rows."""

    def __init__(self, rows: list[Row] | None = None) -> None:
        self.statements: list[str] = []
        self.queries: list[str] = []
        self.rows = rows or []
        self.ended = False

    def execute(self, statement: Statement, params: dict[str, Any] | None = None) -> None:
        self.statements.append(str(statement))

    def query(self, statement: Statement, params: dict[str, Any] | None = None) -> list[Row]:
        self.queries.append(str(statement))
        return list(self.rows)

    def end(self) -> None:
        self.ended = True


def _snapshot_of(*descriptors: EntityDescriptor, foreign_keys: bool = True) -> SchemaSnapshot:
    """Build the snapshot a fully synchronized database would report."""
    snapshot: SchemaSnapshot = {}
    for descriptor in descriptors:
        table = TableSnapshot()
        for column in descriptor.physical_columns():
            table.columns[column.name] = ColumnSnapshot(
                data_type=str(column.type),
                nullable=column.nullable,
                primary=column.primary,
                unique=column.unique or column.primary,
                auto_increment=column.auto_increment,
            )
        snapshot[descriptor.table_name] = table

    if foreign_keys:
        for descriptor in descriptors:
            for relation in descriptor.owning_join_relations():
                target = next(d for d in descriptors if d.name == relation.target)
                assert relation.join_column is not None
                snapshot[descriptor.physical_table_name].foreign_keys.append(
                    ForeignKeySnapshot(
                        column=relation.join_column.name,
                        referenced_table=target.physical_table_name,
                        referenced_column=relation.join_column.referenced_column,
                    )
                )
    return snapshot


@pytest.fixture
def snapshot_of() -> Callable[..., SchemaSnapshot]:
    """Build the snapshot a fully synchronized database would report."""
    return _snapshot_of


@pytest.fixture
def registry() -> MetadataRegistry:
    """Create an empty metadata registry."""
    return MetadataRegistry()


@pytest.fixture
def recording_driver() -> RecordingDriver:
    return RecordingDriver()


@pytest.fixture
def sqlite_driver() -> Generator[DatabaseDriver, None, None]:
    """Create a driver over an in-memory SQLite database.

    Repository operations only need portable SQL with RETURNING, so they can
    run without a PostgreSQL server.
    """
    driver = DatabaseDriver.from_url("sqlite:///:memory:")
    yield driver
    driver.end()


def _create_tables(driver: DatabaseDriver, *descriptors: EntityDescriptor) -> None:
    metadata = MetaData()
    for descriptor in descriptors:
        build_table(descriptor, metadata)
    metadata.create_all(driver.connection.engine)


@pytest.fixture
def create_tables(sqlite_driver: DatabaseDriver) -> Callable[..., None]:
    """Create SQLite tables for descriptors from their SQLAlchemy definitions."""

    def create(*descriptors: EntityDescriptor) -> None:
        _create_tables(sqlite_driver, *descriptors)

    return create


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment or use default."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        # Default to local PostgreSQL
        url = "postgresql://localhost/pgmapper_test"

    if not _psycopg_available():
        pytest.skip("psycopg not installed")

    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")

    return url


@pytest.fixture
def pg_driver(postgresql_url: str) -> Generator[DatabaseDriver, None, None]:
    """Create a driver against PostgreSQL with an empty public schema."""
    driver = DatabaseDriver.from_url(postgresql_url)
    _drop_public_tables(driver)
    yield driver
    _drop_public_tables(driver)
    driver.end()


def _drop_public_tables(driver: DatabaseDriver) -> None:
    rows = driver.query("SELECT tablename FROM pg_tables WHERE schemaname = 'public'")
    for row in rows:
        driver.execute(f'DROP TABLE IF EXISTS "{row["tablename"]}" CASCADE')
