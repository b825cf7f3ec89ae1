"""Tests for the metadata registry and column declarations."""

from __future__ import annotations

import logging
from typing import Optional

import pytest

from pgmapper.core.types import ColumnType, InheritanceType, RelationKind
from pgmapper.exceptions import EntityNotFoundError
from pgmapper.metadata.fields import ColumnField, column, many_to_one
from pgmapper.metadata.models import ColumnDescriptor, JoinColumn, RelationDescriptor
from pgmapper.metadata.registry import MetadataRegistry, annotation_python_type, infer_column_type


class TestTypeInference:
    """Tests for mapping annotations to store types."""

    def test_defaults_per_python_type(self):
        assert infer_column_type(int, None) == ColumnType.INTEGER
        assert infer_column_type(float, None) == ColumnType.DOUBLE_PRECISION
        assert infer_column_type(bool, None) == ColumnType.BOOLEAN
        assert infer_column_type(str, None) == ColumnType.TEXT

    def test_int_may_be_stored_as_double(self):
        assert infer_column_type(int, ColumnType.DOUBLE_PRECISION) == ColumnType.DOUBLE_PRECISION

    def test_incompatible_explicit_type(self):
        assert infer_column_type(str, ColumnType.INTEGER) is None
        assert infer_column_type(float, ColumnType.INTEGER) is None

    def test_unknown_annotation_uses_explicit_type(self):
        assert infer_column_type(dict, ColumnType.TEXT) == ColumnType.TEXT
        assert infer_column_type(dict, None) is None

    def test_optional_unwraps(self):
        assert annotation_python_type(Optional[int]) is int
        assert annotation_python_type(int | None) is int
        assert annotation_python_type("str | None") is str
        assert annotation_python_type("Optional[bool]") is bool
        assert annotation_python_type("int | str") is None
        assert annotation_python_type("list[Order]") is None


class TestColumnRegistration:
    """Tests for declaring columns with the entity decorator."""

    def test_annotated_columns(self, registry: MetadataRegistry):
        @registry.entity("users")
        class User:
            id: int = column(primary=True, auto_increment=True)
            name: str = column()
            email: str = column(column_name="email_address", unique=True)
            score: float = column(nullable=True)
            active: bool = column()

        descriptor = registry.require(User)

        assert descriptor.table_name == "users"
        assert [c.name for c in descriptor.columns] == [
            "id",
            "name",
            "email_address",
            "score",
            "active",
        ]
        primary = descriptor.primary_column()
        assert primary.unique and not primary.nullable and primary.auto_increment
        email = descriptor.get_column("email_address")
        assert email.property_name == "email"
        assert email.unique and not email.nullable
        assert descriptor.get_column("score").type == ColumnType.DOUBLE_PRECISION
        assert descriptor.get_column("score").nullable is True
        assert descriptor.get_column("active").type == ColumnType.BOOLEAN

    def test_default_table_name(self, registry: MetadataRegistry):
        @registry.entity()
        class Product:
            id: int = column(primary=True)

        assert registry.require("Product").table_name == "product"

    def test_incompatible_type_is_dropped(self, registry: MetadataRegistry, caplog):
        with caplog.at_level(logging.WARNING):

            @registry.entity()
            class Item:
                id: int = column(primary=True)
                label: str = column(column_type=ColumnType.INTEGER)

        assert registry.require(Item).get_column("label") is None
        assert "not compatible" in caplog.text

    def test_untyped_column_is_dropped(self, registry: MetadataRegistry, caplog):
        with caplog.at_level(logging.WARNING):

            @registry.entity()
            class Item:
                id: int = column(primary=True)
                payload = column()
                notes = column(column_type="TEXT")

        descriptor = registry.require(Item)
        assert descriptor.get_column("payload") is None
        assert descriptor.get_column("notes").type == ColumnType.TEXT
        assert "Cannot determine the column type of Item.payload" in caplog.text

    def test_primary_is_never_nullable(self, registry: MetadataRegistry):
        @registry.entity()
        class Item:
            code: str = column(primary=True, nullable=True)

        code = registry.require(Item).get_column("code")
        assert code.nullable is False
        assert code.unique is True

    def test_declaration_runs_once(self, registry: MetadataRegistry):
        """Stacked decorators register the class body only once."""

        @registry.discriminator_value("x")
        @registry.entity("items")
        class Item:
            id: int = column(primary=True)
            owner = many_to_one(
                "Item",
                join_column=JoinColumn(name="owner_id", referenced_column="id", type="INTEGER"),
            )

        assert len(registry.resolver) == 1
        assert [c.name for c in registry.require(Item).columns] == ["id", "owner_id"]

    def test_field_defaults(self):
        class Counter:
            hits: int = column(default=0)
            tags: str = column(default_factory=lambda: "none")
            label: str = column()

        counter = Counter()
        assert counter.hits == 0
        assert counter.tags == "none"
        assert counter.label is None
        counter.label = "a"
        assert counter.label == "a"
        assert isinstance(Counter.__dict__["hits"], ColumnField)


class TestDescriptorMaintenance:
    """Tests for ensure, upsert and add-or-update."""

    def test_ensure_is_idempotent(self, registry: MetadataRegistry):
        class Thing:
            pass

        first = registry.ensure(Thing)
        assert registry.ensure(Thing) is first
        assert registry.ensure("Thing") is first
        assert Thing in registry

    def test_require_unknown(self, registry: MetadataRegistry):
        with pytest.raises(EntityNotFoundError):
            registry.require("Ghost")

    def test_upsert_overwrites_and_keeps_unset_flags(self, registry: MetadataRegistry):
        descriptor = registry.ensure("Thing")
        registry.upsert_column(
            descriptor,
            ColumnDescriptor(name="code", type=ColumnType.TEXT, unique=True),
        )
        registry.upsert_column(
            descriptor,
            ColumnDescriptor(name="code", property_name="label", type=ColumnType.INTEGER, nullable=True),
        )

        assert len(descriptor.columns) == 1
        code = descriptor.columns[0]
        assert code.type == ColumnType.INTEGER
        assert code.property_name == "label"
        assert code.nullable is True
        # unique was not given explicitly the second time
        assert code.unique is True

    def test_upsert_primary_forces_unique(self, registry: MetadataRegistry):
        descriptor = registry.ensure("Thing")
        registry.upsert_column(descriptor, ColumnDescriptor(name="id", type=ColumnType.INTEGER, nullable=True))
        registry.upsert_column(descriptor, ColumnDescriptor(name="id", type=ColumnType.INTEGER, primary=True))

        column = descriptor.columns[0]
        assert column.primary and column.unique and not column.nullable

    def test_add_or_update_relation_replaces_by_key(self, registry: MetadataRegistry):
        descriptor = registry.ensure("Thing")
        relation = RelationDescriptor(kind=RelationKind.ONE_TO_MANY, property_name="parts", target="Part")
        registry.add_or_update_relation(descriptor, relation)
        registry.add_or_update_relation(
            descriptor,
            relation.model_copy(update={"inverse_property": "thing"}),
        )
        registry.add_or_update_relation(descriptor, relation.model_copy(update={"owner": True}))

        assert len(descriptor.relations) == 2
        assert descriptor.relations[0].inverse_property == "thing"


class TestInheritanceRegistration:
    """Tests for mapped superclasses and single-table inheritance."""

    def test_mapped_superclass_columns_are_copied(self, registry: MetadataRegistry):
        @registry.mapped_superclass()
        class BaseItem:
            id: int = column(primary=True, auto_increment=True)
            created: str = column()

        @registry.entity("products")
        class Product(BaseItem):
            title: str = column()

        base = registry.require(BaseItem)
        product = registry.require(Product)

        assert base.is_mapped_superclass
        assert not base.is_active
        assert product.parent == "BaseItem"
        assert [c.name for c in product.columns] == ["id", "created", "title"]
        # copies, not shared objects
        assert product.columns[0] is not base.columns[0]

    def test_sti_child(self, registry: MetadataRegistry):
        @registry.entity("vehicles")
        @registry.inheritance(discriminator_column="kind")
        class Vehicle:
            id: int = column(primary=True, auto_increment=True)

        @registry.discriminator_value("car")
        @registry.entity()
        class Car(Vehicle):
            doors: int = column()

        root = registry.require(Vehicle)
        car = registry.require(Car)

        assert root.inheritance_strategy == InheritanceType.SINGLE_TABLE
        assert root.is_sti_root
        assert car.is_sti_child
        assert car.sti_root_table_name == "vehicles"
        assert car.discriminator_column == "kind"
        assert car.discriminator_value == "car"
        assert [c.name for c in car.columns] == ["doors"]
        assert registry.sti_root(car) is root
        assert registry.sti_children(root) == [car]

    def test_default_discriminator_column(self, registry: MetadataRegistry):
        @registry.inheritance()
        class Animal:
            id: int = column(primary=True)

        assert registry.require(Animal).discriminator_column == "type"

    def test_grandchild_shares_root_table(self, registry: MetadataRegistry):
        @registry.entity("vehicles")
        @registry.inheritance()
        class Vehicle:
            id: int = column(primary=True)

        @registry.entity()
        class Car(Vehicle):
            pass

        @registry.entity()
        class SportsCar(Car):
            pass

        assert registry.require(SportsCar).sti_root_table_name == "vehicles"
