"""Metadata registry.

The registry collects entity descriptors as classes are declared, keyed by a
stable string name (the class ``__name__``). It is an explicit object: create
one per model set and hand it to :class:`pgmapper.PgMapper`.

Example:
    registry = MetadataRegistry()

    @registry.entity("users")
    class User:
        id: int = column(primary=True, auto_increment=True)
        name: str = column()
"""

from __future__ import annotations

import inspect
import logging
import sys
import types
import typing
from collections.abc import Callable
from typing import Any, ForwardRef, TypeVar

from pgmapper.core.types import ColumnType, InheritanceType, RelationKind
from pgmapper.exceptions import EntityNotFoundError, TargetNotAvailableError
from pgmapper.metadata.fields import MISSING, ColumnField, RelationField, TargetRef
from pgmapper.metadata.models import (
    ColumnDescriptor,
    EntityDescriptor,
    JoinColumn,
    JoinTable,
    RelationDescriptor,
)
from pgmapper.metadata.relations import RelationResolver

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)

DEFAULT_DISCRIMINATOR_COLUMN = "type"

# Python type -> store types it may be persisted as
TYPE_COMPATIBILITY: dict[type, set[ColumnType]] = {
    int: {ColumnType.INTEGER, ColumnType.DOUBLE_PRECISION},
    float: {ColumnType.DOUBLE_PRECISION},
    bool: {ColumnType.BOOLEAN},
    str: {ColumnType.TEXT},
}

DEFAULT_COLUMN_TYPES: dict[type, ColumnType] = {
    int: ColumnType.INTEGER,
    float: ColumnType.DOUBLE_PRECISION,
    bool: ColumnType.BOOLEAN,
    str: ColumnType.TEXT,
}

_TYPE_NAMES: dict[str, type] = {t.__name__: t for t in TYPE_COMPATIBILITY}

_FLAG_FIELDS = ("primary", "unique", "auto_increment")


def _own_annotations(cls: type) -> dict[str, Any]:
    """Annotations declared directly on ``cls`` (not inherited)."""
    try:
        return dict(inspect.get_annotations(cls))
    except NameError:
        # Lazily evaluated annotations naming a class that does not exist yet
        if sys.version_info < (3, 14):
            raise
        import annotationlib

        return dict(annotationlib.get_annotations(cls, format=annotationlib.Format.FORWARDREF))


def _python_type_from_string(annotation: str) -> type | None:
    text = annotation.strip().strip("'\"")
    if text.startswith("Optional[") and text.endswith("]"):
        text = text[len("Optional[") : -1]
    parts = [part.strip() for part in text.split("|") if part.strip() != "None"]
    if len(parts) != 1:
        return None
    name = parts[0].removeprefix("builtins.")
    return _TYPE_NAMES.get(name)


def annotation_python_type(annotation: Any) -> type | None:
    """Reduce an annotation to one of the scalar types the store knows.

    ``Optional[X]`` and ``X | None`` unwrap to ``X``. Anything else (missing,
    containers, other classes) returns None.
    """
    if annotation is MISSING or annotation is None:
        return None
    if isinstance(annotation, str):
        return _python_type_from_string(annotation)
    if isinstance(annotation, ForwardRef):
        return _python_type_from_string(annotation.__forward_arg__)
    if annotation in TYPE_COMPATIBILITY:
        return annotation

    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return annotation_python_type(args[0])
    return None


def infer_column_type(annotation: Any, specified: ColumnType | None) -> ColumnType | None:
    """Pick the store type for a column, or None if it cannot be determined."""
    python_type = annotation_python_type(annotation)
    if python_type is None:
        return specified
    if specified is None:
        return DEFAULT_COLUMN_TYPES[python_type]
    if specified in TYPE_COMPATIBILITY[python_type]:
        return specified
    return None


class MetadataRegistry:
    """Entity descriptors, their classes and the pending relation queue."""

    def __init__(self) -> None:
        self._entities: dict[str, EntityDescriptor] = {}
        self._classes: dict[str, type] = {}
        self._join_tables: dict[str, EntityDescriptor] = {}
        self._declared: set[str] = set()
        self.resolver = RelationResolver(self)

    # === Lookup ===

    @staticmethod
    def entity_name(entity: type | str) -> str:
        return entity if isinstance(entity, str) else entity.__name__

    def __contains__(self, entity: object) -> bool:
        if not isinstance(entity, (str, type)):
            return False
        return self.get(entity) is not None

    def get(self, entity: type | str) -> EntityDescriptor | None:
        """Get an entity or join-table descriptor by class or name."""
        name = self.entity_name(entity)
        if isinstance(entity, type) and self._classes.get(name) is not entity:
            return None
        return self._entities.get(name) or self._join_tables.get(name)

    def require(self, entity: type | str) -> EntityDescriptor:
        """Like :meth:`get` but raises EntityNotFoundError."""
        descriptor = self.get(entity)
        if descriptor is None:
            raise EntityNotFoundError(self.entity_name(entity), self.names())
        return descriptor

    def entities(self) -> list[EntityDescriptor]:
        """Entity descriptors in declaration order (join tables excluded)."""
        return list(self._entities.values())

    def join_tables(self) -> list[EntityDescriptor]:
        return list(self._join_tables.values())

    def names(self) -> list[str]:
        return list(self._entities) + list(self._join_tables)

    def entity_class(self, entity: str) -> type | None:
        return self._classes.get(entity)

    def sti_root(self, descriptor: EntityDescriptor) -> EntityDescriptor | None:
        """The STI root sharing its table with ``descriptor``, if it is a child."""
        if not descriptor.is_sti_child:
            return None
        roots = [
            d
            for d in self._entities.values()
            if d.is_sti_root and d.table_name == descriptor.sti_root_table_name
        ]
        if len(roots) != 1:
            return None
        return roots[0]

    def sti_children(self, root: EntityDescriptor) -> list[EntityDescriptor]:
        return [
            d
            for d in self._entities.values()
            if d.is_sti_child and d.sti_root_table_name == root.table_name
        ]

    def visible_columns(self, descriptor: EntityDescriptor) -> list[ColumnDescriptor]:
        """Columns an entity's objects carry.

        For an STI child these are the root's columns, then the columns of
        each intermediate ancestor, then its own. Otherwise the entity's
        declared columns.
        """
        chain = [descriptor]
        parent = self.get(descriptor.parent) if descriptor.parent else None
        while parent is not None and parent.is_sti_child:
            chain.append(parent)
            parent = self.get(parent.parent) if parent.parent else None

        root = self.sti_root(descriptor)
        columns = list(root.columns) if root is not None else []
        seen = {column.name for column in columns}
        for ancestor in reversed(chain):
            for column in ancestor.columns:
                if column.name not in seen:
                    columns.append(column)
                    seen.add(column.name)
        return columns

    # === Descriptor maintenance ===

    def ensure(self, entity: type | str) -> EntityDescriptor:
        """Get or create the descriptor for a class or name."""
        name = self.entity_name(entity)
        existing = self._entities.get(name) or self._join_tables.get(name)
        if existing is not None:
            if isinstance(entity, type):
                known = self._classes.setdefault(name, entity)
                if known is not entity:
                    logger.warning(
                        f"Entity name '{name}' is already registered for "
                        f"{known.__module__}.{known.__qualname__}"
                    )
            return existing

        if not isinstance(entity, type):
            descriptor = EntityDescriptor(name=name, table_name=name.lower())
            self._entities[name] = descriptor
            return descriptor

        parent = self._registered_parent(entity)
        if parent is None:
            descriptor = EntityDescriptor(name=name, table_name=name.lower())
        elif parent.inheritance_strategy == InheritanceType.SINGLE_TABLE:
            descriptor = EntityDescriptor(
                name=name,
                table_name=name.lower(),
                relations=[r.model_copy(deep=True) for r in parent.relations],
                parent=parent.name,
                inheritance_strategy=InheritanceType.SINGLE_TABLE,
                discriminator_column=parent.discriminator_column,
                sti_root_table_name=parent.sti_root_table_name or parent.table_name,
            )
        else:
            descriptor = EntityDescriptor(
                name=name,
                table_name=name.lower(),
                columns=[c.model_copy(deep=True) for c in parent.columns],
                relations=[r.model_copy(deep=True) for r in parent.relations],
                parent=parent.name,
            )

        self._entities[name] = descriptor
        self._classes[name] = entity
        logger.debug(f"Registered entity {name}" + (f" (parent {parent.name})" if parent else ""))
        return descriptor

    def ensure_join_table(self, table_name: str) -> EntityDescriptor:
        descriptor = self._join_tables.get(table_name)
        if descriptor is None:
            descriptor = EntityDescriptor(name=table_name, table_name=table_name, is_join_table=True)
            self._join_tables[table_name] = descriptor
        return descriptor

    def _registered_parent(self, cls: type) -> EntityDescriptor | None:
        for base in cls.__mro__[1:]:
            if self._classes.get(base.__name__) is base:
                return self._entities[base.__name__]
        return None

    @staticmethod
    def upsert_column(descriptor: EntityDescriptor, column: ColumnDescriptor) -> ColumnDescriptor:
        """Insert a column or update the one with the same name."""
        existing = descriptor.get_column(column.name)
        if existing is None:
            added = column.model_copy()
            descriptor.columns.append(added)
            return added

        existing.type = column.type
        existing.property_name = column.property_name
        existing.nullable = column.nullable
        for flag in _FLAG_FIELDS:
            if flag in column.model_fields_set:
                setattr(existing, flag, getattr(column, flag))
        if existing.primary:
            existing.unique = True
            existing.nullable = False
        return existing

    @staticmethod
    def add_or_update_relation(
        descriptor: EntityDescriptor, relation: RelationDescriptor
    ) -> RelationDescriptor:
        """Insert a relation or replace the one with the same identity."""
        for index, existing in enumerate(descriptor.relations):
            if existing.key == relation.key:
                descriptor.relations[index] = relation
                return relation
        descriptor.relations.append(relation)
        return relation

    # === Relation targets ===

    def resolve_target(self, target: TargetRef) -> str:
        """Resolve a relation target to a registered entity name.

        Raises:
            TargetNotAvailableError: If the target is not registered yet
        """
        if isinstance(target, str):
            if target in self._entities:
                return target
            raise TargetNotAvailableError(target)

        if isinstance(target, type):
            if self._classes.get(target.__name__) is target:
                return target.__name__
            raise TargetNotAvailableError(target.__qualname__)

        if callable(target):
            try:
                resolved = target()
            except NameError as e:
                raise TargetNotAvailableError(getattr(e, "name", None) or str(e)) from e
            return self.resolve_target(resolved)

        raise TypeError(f"Unsupported relation target: {target!r}")

    def resolve_pending_relations(self) -> int:
        return self.resolver.resolve()

    # === Registration contract ===

    def register_entity(self, cls: type, table_name: str | None = None) -> EntityDescriptor:
        descriptor = self.ensure(cls)
        descriptor.table_name = table_name or cls.__name__.lower()
        return descriptor

    def register_column(
        self,
        cls: type,
        property_name: str,
        field: ColumnField,
        annotation: Any = MISSING,
    ) -> ColumnDescriptor | None:
        """Register a column; returns None when its type cannot be determined."""
        descriptor = self.ensure(cls)
        column_type = infer_column_type(annotation, field.column_type)
        if column_type is None:
            where = f"{cls.__name__}.{property_name}"
            if field.column_type is not None:
                logger.warning(
                    f"Column type {field.column_type} is not compatible with "
                    f"annotation {annotation!r} on {where}; column skipped"
                )
            else:
                logger.warning(
                    f"Cannot determine the column type of {where}; "
                    f"annotate it or pass column_type; column skipped"
                )
            return None

        primary = field.primary
        column = ColumnDescriptor(
            name=field.column_name or property_name,
            property_name=property_name,
            type=column_type,
            nullable=False if primary else bool(field.nullable),
            primary=primary,
            unique=field.unique if field.unique is not None else primary,
            auto_increment=field.auto_increment,
        )
        return self.upsert_column(descriptor, column)

    def register_relation(
        self,
        cls: type,
        kind: RelationKind | str,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None = None,
        join_table: JoinTable | None = None,
        inverse_property: str | None = None,
    ) -> None:
        """Queue a relation for resolution.

        A many-to-one FK column is added immediately, since it does not
        depend on the target.
        """
        descriptor = self.ensure(cls)
        kind = RelationKind(kind)
        if kind == RelationKind.MANY_TO_ONE and join_column is not None:
            self.upsert_column(
                descriptor,
                ColumnDescriptor(
                    name=join_column.name,
                    property_name=property_name,
                    type=join_column.type,
                    nullable=join_column.nullable,
                    unique=bool(join_column.unique),
                ),
            )
        self.resolver.schedule_relation(
            descriptor.name,
            kind,
            property_name,
            target,
            join_column=join_column,
            join_table=join_table,
            inverse_property=inverse_property,
        )

    def register_inheritance(
        self,
        cls: type,
        strategy: InheritanceType | str = InheritanceType.SINGLE_TABLE,
        discriminator_column: str | None = None,
    ) -> EntityDescriptor:
        descriptor = self.ensure(cls)
        strategy = InheritanceType(strategy)
        descriptor.inheritance_strategy = strategy
        if strategy == InheritanceType.SINGLE_TABLE:
            descriptor.discriminator_column = discriminator_column or DEFAULT_DISCRIMINATOR_COLUMN
        return descriptor

    def register_mapped_superclass(self, cls: type) -> EntityDescriptor:
        descriptor = self.ensure(cls)
        descriptor.is_mapped_superclass = True
        return descriptor

    def register_discriminator_value(self, cls: type, value: str) -> EntityDescriptor:
        descriptor = self.ensure(cls)
        descriptor.discriminator_value = value
        return descriptor

    def declare(self, cls: type) -> EntityDescriptor:
        """Register the field markers defined in the class body, once."""
        descriptor = self.ensure(cls)
        if descriptor.name in self._declared:
            return descriptor
        self._declared.add(descriptor.name)

        annotations = _own_annotations(cls)
        for attribute, value in vars(cls).items():
            if isinstance(value, ColumnField):
                self.register_column(cls, attribute, value, annotations.get(attribute, MISSING))
            elif isinstance(value, RelationField):
                self.register_relation(
                    cls,
                    value.kind,
                    attribute,
                    value.target,
                    join_column=value.join_column,
                    join_table=value.join_table,
                    inverse_property=value.inverse_property,
                )
        return descriptor

    # === Decorators ===

    def entity(self, table_name: str | None = None) -> Callable[[T], T]:
        """Mark a class as a persistent entity stored in ``table_name``."""

        def decorator(cls: T) -> T:
            self.declare(cls)
            self.register_entity(cls, table_name)
            return cls

        return decorator

    def inheritance(
        self,
        strategy: InheritanceType | str = InheritanceType.SINGLE_TABLE,
        discriminator_column: str | None = None,
    ) -> Callable[[T], T]:
        """Make a class the root of an inheritance hierarchy."""

        def decorator(cls: T) -> T:
            self.declare(cls)
            self.register_inheritance(cls, strategy, discriminator_column)
            return cls

        return decorator

    def mapped_superclass(self) -> Callable[[T], T]:
        """Share columns and relations with subclasses without a table of its own."""

        def decorator(cls: T) -> T:
            self.declare(cls)
            self.register_mapped_superclass(cls)
            return cls

        return decorator

    def discriminator_value(self, value: str) -> Callable[[T], T]:
        """Set the discriminator value stored for rows of an STI child."""

        def decorator(cls: T) -> T:
            self.declare(cls)
            self.register_discriminator_value(cls, value)
            return cls

        return decorator
