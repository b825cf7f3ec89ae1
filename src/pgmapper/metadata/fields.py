"""Class-body field markers.

Entities declare their persistent attributes with :func:`column` and the
relation helpers. The markers are data descriptors: they record the
attribute name through ``__set_name__`` and store values on the instance.

Example:
    @registry.entity("users")
    class User:
        id: int = column(primary=True, auto_increment=True)
        name: str = column()
        orders: list[Order] = one_to_many(
            "Order",
            join_column=JoinColumn(name="user_id", referenced_column="id", type=ColumnType.INTEGER),
            inverse_property="user",
        )
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Union

from pgmapper.core.types import ColumnType, RelationKind
from pgmapper.metadata.models import JoinColumn, JoinTable


class _MissingType:
    """Marker for "no value and no default"."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _MissingType()

# A relation target: entity name, entity class, or zero-argument factory returning either
TargetRef = Union[str, type, Callable[[], Any]]


class _Field:
    """Shared descriptor behaviour for column and relation markers."""

    def __init__(self) -> None:
        self.property_name: str = ""
        self.owner: type | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.property_name = name
        self.owner = owner

    def default_value(self) -> Any:
        return MISSING

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        values = instance.__dict__
        if self.property_name not in values:
            default = self.default_value()
            if default is MISSING:
                return None
            values[self.property_name] = default
        return values[self.property_name]

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.property_name] = value

    def __delete__(self, instance: Any) -> None:
        instance.__dict__.pop(self.property_name, None)


class ColumnField(_Field):
    """Declares a persistent column on an entity."""

    def __init__(
        self,
        column_name: str | None = None,
        column_type: ColumnType | str | None = None,
        nullable: bool | None = None,
        primary: bool = False,
        unique: bool | None = None,
        auto_increment: bool = False,
        default: Any = MISSING,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__()
        self.column_name = column_name
        self.column_type = ColumnType(column_type) if column_type is not None else None
        self.nullable = nullable
        self.primary = primary
        self.unique = unique
        self.auto_increment = auto_increment
        self.default = default
        self.default_factory = default_factory

    def default_value(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    @property
    def has_default(self) -> bool:
        return self.default_factory is not None or self.default is not MISSING

    def __repr__(self) -> str:
        return f"ColumnField({self.property_name!r}, column_type={self.column_type!r})"


class RelationField(_Field):
    """Declares one side of a relation on an entity."""

    def __init__(
        self,
        kind: RelationKind,
        target: TargetRef,
        join_column: JoinColumn | None = None,
        join_table: JoinTable | None = None,
        inverse_property: str | None = None,
    ) -> None:
        super().__init__()
        self.kind = kind
        self.target = target
        self.join_column = join_column
        self.join_table = join_table
        self.inverse_property = inverse_property

    def default_value(self) -> Any:
        if self.kind in (RelationKind.ONE_TO_MANY, RelationKind.MANY_TO_MANY):
            return []
        return MISSING

    def __repr__(self) -> str:
        return f"RelationField({self.property_name!r}, kind={self.kind!s})"


def _join_column(value: JoinColumn | Mapping[str, Any]) -> JoinColumn:
    if isinstance(value, JoinColumn):
        return value
    return JoinColumn.model_validate(dict(value))


def _join_table(value: JoinTable | Mapping[str, Any]) -> JoinTable:
    if isinstance(value, JoinTable):
        return value
    return JoinTable.model_validate(dict(value))


def column(
    column_name: str | None = None,
    column_type: ColumnType | str | None = None,
    nullable: bool | None = None,
    primary: bool = False,
    unique: bool | None = None,
    auto_increment: bool = False,
    default: Any = MISSING,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a column.

    Args:
        column_name: Physical column name (defaults to the attribute name)
        column_type: Store type; inferred from the annotation when omitted
        nullable: Whether NULL is allowed (always False for primary columns)
        primary: Whether this is the primary key
        unique: Whether values must be unique (defaults to ``primary``)
        auto_increment: Render integer primary keys as SERIAL
        default: Value returned before the attribute is assigned
        default_factory: Callable producing the default value
    """
    return ColumnField(
        column_name=column_name,
        column_type=column_type,
        nullable=nullable,
        primary=primary,
        unique=unique,
        auto_increment=auto_increment,
        default=default,
        default_factory=default_factory,
    )


def one_to_one(
    target: TargetRef,
    join_column: JoinColumn | Mapping[str, Any],
    inverse_property: str | None = None,
) -> Any:
    """Declare the owning side of a one-to-one relation."""
    return RelationField(
        RelationKind.ONE_TO_ONE,
        target,
        join_column=_join_column(join_column),
        inverse_property=inverse_property,
    )


def one_to_many(
    target: TargetRef,
    join_column: JoinColumn | Mapping[str, Any],
    inverse_property: str | None = None,
) -> Any:
    """Declare a one-to-many relation; the FK column lives on the target."""
    return RelationField(
        RelationKind.ONE_TO_MANY,
        target,
        join_column=_join_column(join_column),
        inverse_property=inverse_property,
    )


def many_to_one(
    target: TargetRef,
    join_column: JoinColumn | Mapping[str, Any],
    inverse_property: str | None = None,
) -> Any:
    """Declare the owning side of a many-to-one relation."""
    return RelationField(
        RelationKind.MANY_TO_ONE,
        target,
        join_column=_join_column(join_column),
        inverse_property=inverse_property,
    )


def many_to_many(
    target: TargetRef,
    join_table: JoinTable | Mapping[str, Any] | None = None,
    inverse_property: str | None = None,
) -> Any:
    """Declare a many-to-many relation.

    The side given a ``join_table`` owns the relation.
    """
    return RelationField(
        RelationKind.MANY_TO_MANY,
        target,
        join_table=_join_table(join_table) if join_table is not None else None,
        inverse_property=inverse_property,
    )
