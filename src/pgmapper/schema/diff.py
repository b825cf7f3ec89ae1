"""Structural comparison of entity descriptors against a schema snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pgmapper.metadata.models import EntityDescriptor
from pgmapper.schema.snapshot import SchemaSnapshot

logger = logging.getLogger(__name__)


@dataclass
class TableDiff:
    """Outcome of comparing one descriptor with the live table."""

    table_name: str
    exists: bool
    reasons: list[str] = field(default_factory=list)

    @property
    def needs_rebuild(self) -> bool:
        return bool(self.reasons)


def _types_match(expected: str, actual: str) -> bool:
    return expected.upper() == actual.upper()


def diff_table(descriptor: EntityDescriptor, snapshot: SchemaSnapshot) -> TableDiff:
    """Compare a descriptor's physical columns with the live table.

    Any difference in column count, names, types, nullability or key flags
    means the table must be rebuilt. A descriptor without columns is never
    materialized and is reported as unchanged.
    """
    table_name = descriptor.table_name
    table = snapshot.get(table_name)
    columns = descriptor.physical_columns()

    if not columns:
        return TableDiff(table_name=table_name, exists=table is not None)

    if table is None:
        logger.info(f"Schema change detected for {table_name}: table does not exist")
        return TableDiff(table_name=table_name, exists=False, reasons=["table does not exist"])

    reasons: list[str] = []
    if len(table.columns) != len(columns):
        reasons.append(
            f"column count differs (expected {len(columns)}, actual {len(table.columns)})"
        )

    for column in columns:
        existing = table.columns.get(column.name)
        if existing is None:
            reasons.append(f"missing column {column.name}")
            continue

        if not _types_match(column.type, existing.data_type):
            reasons.append(
                f"type mismatch on {column.name} (expected {column.type}, actual {existing.data_type})"
            )
        if column.nullable != existing.nullable:
            reasons.append(
                f"nullability mismatch on {column.name} "
                f"(expected {column.nullable}, actual {existing.nullable})"
            )

        expected_unique = True if column.primary else column.unique
        if column.primary != existing.primary:
            reasons.append(
                f"primary flag mismatch on {column.name} "
                f"(expected {column.primary}, actual {existing.primary})"
            )
        if expected_unique != existing.unique:
            reasons.append(
                f"unique flag mismatch on {column.name} "
                f"(expected {expected_unique}, actual {existing.unique})"
            )

    declared = {column.name for column in columns}
    for existing_name in table.columns:
        if existing_name not in declared:
            reasons.append(f"extra column {existing_name}")

    if reasons:
        logger.info(f"Schema change detected for {table_name}: {'; '.join(reasons)}")
    return TableDiff(table_name=table_name, exists=True, reasons=reasons)
