"""Tests for comparing descriptors with a schema snapshot."""

from __future__ import annotations

import logging

import pytest

from pgmapper.core.types import ColumnType
from pgmapper.metadata.models import ColumnDescriptor, EntityDescriptor
from pgmapper.schema.diff import diff_table
from pgmapper.schema.snapshot import ColumnSnapshot, TableSnapshot


@pytest.fixture
def users() -> EntityDescriptor:
    return EntityDescriptor(
        name="User",
        table_name="users",
        columns=[
            ColumnDescriptor(name="id", type=ColumnType.INTEGER, primary=True, auto_increment=True),
            ColumnDescriptor(name="email", type=ColumnType.TEXT, unique=True),
            ColumnDescriptor(name="bio", type=ColumnType.TEXT, nullable=True),
        ],
    )


def _table() -> TableSnapshot:
    return TableSnapshot(
        columns={
            "id": ColumnSnapshot("INTEGER", nullable=False, primary=True, unique=True, auto_increment=True),
            "email": ColumnSnapshot("TEXT", nullable=False, unique=True),
            "bio": ColumnSnapshot("TEXT", nullable=True),
        }
    )


class TestDiffTable:
    """Tests for diff_table."""

    def test_matching_table_is_kept(self, users: EntityDescriptor):
        diff = diff_table(users, {"users": _table()})

        assert diff.exists
        assert not diff.needs_rebuild
        assert diff.reasons == []

    def test_missing_table(self, users: EntityDescriptor, caplog):
        with caplog.at_level(logging.INFO):
            diff = diff_table(users, {})

        assert not diff.exists
        assert diff.needs_rebuild
        assert "users: table does not exist" in caplog.text

    def test_type_comparison_ignores_case(self, users: EntityDescriptor):
        table = _table()
        table.columns["email"].data_type = "text"

        assert not diff_table(users, {"users": table}).needs_rebuild

    def test_type_mismatch(self, users: EntityDescriptor):
        table = _table()
        table.columns["bio"].data_type = "CHARACTER VARYING"

        diff = diff_table(users, {"users": table})

        assert diff.reasons == [
            "type mismatch on bio (expected TEXT, actual CHARACTER VARYING)",
        ]

    def test_nullability_mismatch(self, users: EntityDescriptor):
        table = _table()
        table.columns["bio"].nullable = False

        assert diff_table(users, {"users": table}).reasons == [
            "nullability mismatch on bio (expected True, actual False)",
        ]

    def test_unique_mismatch(self, users: EntityDescriptor):
        table = _table()
        table.columns["email"].unique = False

        assert diff_table(users, {"users": table}).reasons == [
            "unique flag mismatch on email (expected True, actual False)",
        ]

    def test_primary_mismatch(self, users: EntityDescriptor):
        table = _table()
        table.columns["id"].primary = False

        assert diff_table(users, {"users": table}).reasons == [
            "primary flag mismatch on id (expected True, actual False)",
        ]

    def test_missing_and_extra_columns(self, users: EntityDescriptor):
        table = _table()
        del table.columns["bio"]
        table.columns["legacy"] = ColumnSnapshot("TEXT", nullable=True)

        reasons = diff_table(users, {"users": table}).reasons

        assert "missing column bio" in reasons
        assert "extra column legacy" in reasons

    def test_column_count(self, users: EntityDescriptor):
        table = _table()
        table.columns["legacy"] = ColumnSnapshot("TEXT", nullable=True)

        reasons = diff_table(users, {"users": table}).reasons

        assert reasons[0] == "column count differs (expected 3, actual 4)"

    def test_auto_increment_is_not_compared(self, users: EntityDescriptor):
        table = _table()
        table.columns["id"].auto_increment = False

        assert not diff_table(users, {"users": table}).needs_rebuild

    def test_descriptor_without_columns_is_unchanged(self):
        empty = EntityDescriptor(name="Empty", table_name="empty")

        diff = diff_table(empty, {})

        assert not diff.needs_rebuild
        assert not diff.exists
