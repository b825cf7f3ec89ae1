"""Schema synchronization.

Brings the live PostgreSQL schema in line with the registered metadata:
tables whose structure differs are dropped and recreated, tables left behind
by mapped superclasses are dropped, and missing foreign keys are added.
Synchronization is destructive. Rebuilt tables lose their rows.
"""

from __future__ import annotations

import logging

from pgmapper.core.driver import StoreDriver
from pgmapper.core.types import SyncResult
from pgmapper.exceptions import EntityNotFoundError
from pgmapper.metadata.inheritance import register_sti_child_columns
from pgmapper.metadata.join_tables import collect_join_table_metadata
from pgmapper.metadata.models import EntityDescriptor, RelationDescriptor
from pgmapper.metadata.registry import MetadataRegistry
from pgmapper.schema.ddl import (
    build_add_foreign_key_statement,
    build_create_table_statement,
    build_drop_table_statement,
)
from pgmapper.schema.diff import diff_table
from pgmapper.schema.snapshot import ForeignKeySnapshot, SchemaSnapshot, load_schema_snapshot

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"


def pluralize(name: str) -> str:
    """Naive English plural used to spot tables named after a superclass."""
    lowered = name.lower()
    if lowered.endswith("s"):
        return name + "es"
    if len(lowered) > 1 and lowered.endswith("y") and lowered[-2] not in "aeiou":
        return name[:-1] + "ies"
    return name + "s"


def prepare_metadata(registry: MetadataRegistry) -> list[EntityDescriptor]:
    """Resolve relations, synthesize join tables and fold STI child columns.

    Returns:
        The join-table descriptors
    """
    registry.resolve_pending_relations()
    join_tables = collect_join_table_metadata(registry)
    register_sti_child_columns(registry)
    return join_tables


class SchemaSynchronizer:
    """Applies registered metadata to a live schema."""

    def __init__(
        self,
        registry: MetadataRegistry,
        driver: StoreDriver,
        schema: str = DEFAULT_SCHEMA,
    ) -> None:
        self._registry = registry
        self._driver = driver
        self._schema = schema
        self._ddl_schema = None if schema == DEFAULT_SCHEMA else schema

    def active_descriptors(self) -> list[EntityDescriptor]:
        """Descriptors that own a physical table."""
        entities = [d for d in self._registry.entities() if d.is_active]
        return entities + self._registry.join_tables()

    def synchronize(self) -> SyncResult:
        """Run a full synchronization pass.

        Returns:
            Diagnostics listing kept, rebuilt and dropped tables, added
            foreign keys and every statement issued
        """
        prepare_metadata(self._registry)
        result = SyncResult()
        active = self.active_descriptors()

        snapshot = load_schema_snapshot(self._driver, self._schema)

        rebuild: list[EntityDescriptor] = []
        for descriptor in active:
            if diff_table(descriptor, snapshot).needs_rebuild:
                rebuild.append(descriptor)
            else:
                result.kept.append(descriptor.table_name)

        orphans = self._orphaned_tables(active, snapshot)

        for table_name in result.kept:
            logger.info(f"Keeping table {table_name} (no structural changes detected)")

        for table_name in orphans:
            logger.info(f"Dropping table {table_name} left behind by a mapped superclass")
            self._execute(build_drop_table_statement(table_name, self._ddl_schema), result)
            result.dropped.append(table_name)

        for descriptor in rebuild:
            self._execute(
                build_drop_table_statement(descriptor.table_name, self._ddl_schema), result
            )

        for descriptor in rebuild:
            statement = build_create_table_statement(descriptor, self._ddl_schema)
            if statement is None:
                continue
            self._execute(statement, result)
            result.rebuilt.append(descriptor.table_name)
            logger.info(f"Recreated table {descriptor.table_name}")

        snapshot = load_schema_snapshot(self._driver, self._schema)
        self._add_foreign_keys(active, snapshot, result)
        return result

    # === Steps ===

    def _orphaned_tables(
        self, active: list[EntityDescriptor], snapshot: SchemaSnapshot
    ) -> list[str]:
        owned = {descriptor.table_name for descriptor in active}
        orphans: list[str] = []
        for descriptor in self._registry.entities():
            if not descriptor.is_mapped_superclass:
                continue
            for candidate in (descriptor.table_name, pluralize(descriptor.table_name)):
                if candidate in snapshot and candidate not in owned and candidate not in orphans:
                    orphans.append(candidate)
        return orphans

    def _add_foreign_keys(
        self,
        active: list[EntityDescriptor],
        snapshot: SchemaSnapshot,
        result: SyncResult,
    ) -> None:
        sources = list(active)
        sources.extend(d for d in self._registry.entities() if d.is_sti_child)

        for source in sources:
            for relation in source.owning_join_relations():
                self._add_foreign_key(source, relation, snapshot, result)

    def _physical_descriptor(self, descriptor: EntityDescriptor) -> EntityDescriptor:
        root = self._registry.sti_root(descriptor)
        return root if root is not None else descriptor

    def _add_foreign_key(
        self,
        source: EntityDescriptor,
        relation: RelationDescriptor,
        snapshot: SchemaSnapshot,
        result: SyncResult,
    ) -> None:
        join_column = relation.join_column
        if join_column is None:
            return

        target = self._registry.get(relation.target)
        if target is None:
            raise EntityNotFoundError(relation.target, self._registry.names())

        physical_source = self._physical_descriptor(source)
        physical_target = self._physical_descriptor(target)
        source_table = physical_source.table_name
        foreign_key = ForeignKeySnapshot(
            column=join_column.name,
            referenced_table=physical_target.table_name,
            referenced_column=join_column.referenced_column,
        )

        table = snapshot.get(source_table)
        if table is not None and table.has_foreign_key(foreign_key):
            return

        statement = build_add_foreign_key_statement(
            physical_source, relation, physical_target, self._ddl_schema
        )
        self._execute(statement, result)
        result.foreign_keys_added.append(f"{source_table}.{join_column.name}")
        logger.info(
            f"Added foreign key {source_table}.{join_column.name} -> "
            f"{physical_target.table_name}.{join_column.referenced_column}"
        )

        if table is not None:
            table.foreign_keys.append(foreign_key)

    def _execute(self, statement: str, result: SyncResult) -> None:
        self._driver.execute(statement)
        result.statements.append(statement)
