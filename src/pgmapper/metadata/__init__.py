"""Entity metadata: descriptors, field markers and the registry."""

from pgmapper.metadata.fields import (
    MISSING,
    column,
    many_to_many,
    many_to_one,
    one_to_many,
    one_to_one,
)
from pgmapper.metadata.inheritance import register_sti_child_columns
from pgmapper.metadata.join_tables import collect_join_table_metadata
from pgmapper.metadata.models import (
    ColumnDescriptor,
    EntityDescriptor,
    JoinColumn,
    JoinTable,
    RelationDescriptor,
)
from pgmapper.metadata.registry import MetadataRegistry

__all__ = [
    "MISSING",
    "MetadataRegistry",
    "ColumnDescriptor",
    "EntityDescriptor",
    "JoinColumn",
    "JoinTable",
    "RelationDescriptor",
    "column",
    "one_to_one",
    "one_to_many",
    "many_to_one",
    "many_to_many",
    "collect_join_table_metadata",
    "register_sti_child_columns",
]
