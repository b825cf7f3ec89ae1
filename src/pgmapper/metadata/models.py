"""Metadata descriptors for entities, columns and relations.

Descriptors are plain pydantic models keyed by stable string names. They
hold no reference to the mapped Python classes; the registry keeps the
name -> class mapping separately.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from pgmapper.core.types import ColumnType, InheritanceType, RelationKind

DISCRIMINATOR_COLUMN_TYPE = ColumnType.TEXT


class ColumnDescriptor(BaseModel):
    """A physical column and the attribute it maps to."""

    name: str = Field(..., description="Physical column name")
    property_name: str = Field(default="", description="Attribute name on the entity")
    type: ColumnType = Field(..., description="Store column type")
    nullable: bool = False
    primary: bool = False
    unique: bool = False
    auto_increment: bool = False

    @model_validator(mode="after")
    def _primary_is_unique_and_required(self) -> ColumnDescriptor:
        if not self.property_name:
            self.property_name = self.name
        if self.primary:
            self.unique = True
            self.nullable = False
        return self


class JoinColumn(BaseModel):
    """Foreign-key column owned by one side of a relation."""

    name: str = Field(..., description="Column name in the owning table")
    referenced_column: str = Field(..., description="Column name in the referenced table")
    type: ColumnType = Field(..., description="Type of the FK column")
    nullable: bool = False
    unique: bool | None = None


class JoinTable(BaseModel):
    """Join table owned by the owning side of a many-to-many relation."""

    name: str
    join_column: JoinColumn
    inverse_join_column: JoinColumn


class RelationDescriptor(BaseModel):
    """One side of an association between two entities."""

    kind: RelationKind
    property_name: str
    target: str = Field(..., description="Target entity name")
    owner: bool = False
    join_column: JoinColumn | None = None
    join_table: JoinTable | None = None
    inverse_property: str | None = None

    @property
    def key(self) -> tuple[str, bool, str]:
        """Identity used to keep relation registration idempotent."""
        return (str(self.kind), self.owner, self.property_name)


class EntityDescriptor(BaseModel):
    """Everything known about one entity (or synthesized join table)."""

    name: str = Field(..., description="Stable entity identifier")
    table_name: str
    columns: list[ColumnDescriptor] = Field(default_factory=list)
    relations: list[RelationDescriptor] = Field(default_factory=list)
    parent: str | None = Field(default=None, description="Parent entity name, if any")
    is_mapped_superclass: bool = False
    is_join_table: bool = False
    inheritance_strategy: InheritanceType = InheritanceType.NONE
    discriminator_column: str | None = None
    discriminator_value: str | None = None
    sti_root_table_name: str | None = None
    sti_child_columns: list[ColumnDescriptor] = Field(default_factory=list)

    @property
    def is_sti_child(self) -> bool:
        return self.sti_root_table_name is not None

    @property
    def is_sti_root(self) -> bool:
        return self.inheritance_strategy == InheritanceType.SINGLE_TABLE and not self.is_sti_child

    @property
    def is_active(self) -> bool:
        """Whether this descriptor owns a physical table."""
        return not self.is_mapped_superclass and not self.is_sti_child

    @property
    def physical_table_name(self) -> str:
        """Table that actually stores this entity's rows."""
        return self.sti_root_table_name or self.table_name

    def get_column(self, name: str) -> ColumnDescriptor | None:
        """Get a declared column by physical name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_for_property(self, property_name: str) -> ColumnDescriptor | None:
        """Get a declared column by property name, falling back to physical name."""
        for column in self.columns:
            if column.property_name == property_name:
                return column
        return self.get_column(property_name)

    def primary_column(self) -> ColumnDescriptor | None:
        for column in self.columns:
            if column.primary:
                return column
        return None

    def discriminator_descriptor(self) -> ColumnDescriptor | None:
        """Synthesized discriminator column for an STI root."""
        if not self.is_sti_root or not self.discriminator_column:
            return None
        if self.get_column(self.discriminator_column) is not None:
            return None
        return ColumnDescriptor(
            name=self.discriminator_column,
            type=DISCRIMINATOR_COLUMN_TYPE,
            nullable=False,
        )

    def physical_columns(self) -> list[ColumnDescriptor]:
        """Columns of the physical table, in creation order.

        For an STI root this is the declared columns, then the discriminator,
        then every column contributed by its children.
        """
        columns = list(self.columns)
        if not self.is_sti_root:
            return columns

        discriminator = self.discriminator_descriptor()
        if discriminator is not None:
            columns.append(discriminator)

        seen = {column.name for column in columns}
        for column in self.sti_child_columns:
            if column.name not in seen:
                columns.append(column)
                seen.add(column.name)
        return columns

    def owning_join_relations(self) -> list[RelationDescriptor]:
        """Owning relations that carry a foreign-key column."""
        return [r for r in self.relations if r.owner and r.join_column is not None]
