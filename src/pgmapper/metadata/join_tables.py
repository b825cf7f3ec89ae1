"""Join-table synthesis for owning many-to-many relations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pgmapper.core.types import RelationKind
from pgmapper.metadata.models import ColumnDescriptor, EntityDescriptor, JoinColumn, RelationDescriptor

if TYPE_CHECKING:
    from pgmapper.metadata.registry import MetadataRegistry

logger = logging.getLogger(__name__)


def _join_table_column(join_column: JoinColumn) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=join_column.name,
        type=join_column.type,
        nullable=join_column.nullable,
        primary=False,
        unique=bool(join_column.unique),
    )


def _join_table_relation(
    table_name: str, join_column: JoinColumn, target: str
) -> RelationDescriptor:
    return RelationDescriptor(
        kind=RelationKind.MANY_TO_ONE,
        property_name=f"{table_name}_{join_column.name}_fk",
        target=target,
        owner=True,
        join_column=join_column,
    )


def collect_join_table_metadata(registry: MetadataRegistry) -> list[EntityDescriptor]:
    """Synthesize descriptors for every join table named by an owning relation.

    Pending relations are resolved first. Calling this again upserts into
    the same descriptors, so it is idempotent.

    Returns:
        The join-table descriptors, in discovery order
    """
    registry.resolve_pending_relations()

    collected: dict[str, EntityDescriptor] = {}
    for entity in registry.entities():
        if entity.is_mapped_superclass:
            continue
        for relation in entity.relations:
            if relation.kind != RelationKind.MANY_TO_MANY or not relation.owner:
                continue
            join_table = relation.join_table
            if join_table is None:
                continue

            descriptor = registry.ensure_join_table(join_table.name)
            registry.upsert_column(descriptor, _join_table_column(join_table.join_column))
            registry.upsert_column(descriptor, _join_table_column(join_table.inverse_join_column))
            registry.add_or_update_relation(
                descriptor, _join_table_relation(join_table.name, join_table.join_column, entity.name)
            )
            registry.add_or_update_relation(
                descriptor,
                _join_table_relation(join_table.name, join_table.inverse_join_column, relation.target),
            )

            if join_table.name not in collected:
                logger.debug(f"Join table {join_table.name} links {entity.name} and {relation.target}")
            collected[join_table.name] = descriptor

    return list(collected.values())
