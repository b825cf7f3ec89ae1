"""Tests for join-table synthesis."""

from __future__ import annotations

from pgmapper.core.types import ColumnType, RelationKind
from pgmapper.metadata.fields import column, many_to_many
from pgmapper.metadata.join_tables import collect_join_table_metadata
from pgmapper.metadata.models import JoinColumn, JoinTable
from pgmapper.metadata.registry import MetadataRegistry


def _declare_actors_and_movies(registry: MetadataRegistry) -> None:
    @registry.entity("actors")
    class Actor:
        id: int = column(primary=True, auto_increment=True)
        movies = many_to_many(
            "Movie",
            join_table=JoinTable(
                name="movie_actors",
                join_column=JoinColumn(name="actor_id", referenced_column="id", type=ColumnType.INTEGER),
                inverse_join_column=JoinColumn(
                    name="movie_id", referenced_column="id", type=ColumnType.INTEGER
                ),
            ),
            inverse_property="actors",
        )

    @registry.entity("movies")
    class Movie:
        id: int = column(primary=True, auto_increment=True)
        actors = many_to_many("Actor", inverse_property="movies")


class TestCollectJoinTableMetadata:
    """Tests for collect_join_table_metadata."""

    def test_join_table_descriptor(self, registry: MetadataRegistry):
        _declare_actors_and_movies(registry)

        join_tables = collect_join_table_metadata(registry)

        assert len(join_tables) == 1
        join_table = join_tables[0]
        assert join_table.is_join_table
        assert join_table.table_name == "movie_actors"
        assert [c.name for c in join_table.columns] == ["actor_id", "movie_id"]
        assert all(not c.primary and not c.unique for c in join_table.columns)

        relations = {r.property_name: r for r in join_table.relations}
        assert set(relations) == {"movie_actors_actor_id_fk", "movie_actors_movie_id_fk"}
        assert relations["movie_actors_actor_id_fk"].target == "Actor"
        assert relations["movie_actors_movie_id_fk"].target == "Movie"
        assert all(r.owner and r.kind == RelationKind.MANY_TO_ONE for r in relations.values())

    def test_resolves_pending_relations_first(self, registry: MetadataRegistry):
        _declare_actors_and_movies(registry)
        assert len(registry.resolver) == 2

        collect_join_table_metadata(registry)

        assert len(registry.resolver) == 0

    def test_repeated_calls_are_idempotent(self, registry: MetadataRegistry):
        _declare_actors_and_movies(registry)

        first = collect_join_table_metadata(registry)
        second = collect_join_table_metadata(registry)

        assert first[0] is second[0]
        assert len(second[0].columns) == 2
        assert len(second[0].relations) == 2
        assert registry.join_tables() == second
        assert registry.get("movie_actors") is second[0]

    def test_unique_join_column(self, registry: MetadataRegistry):
        @registry.entity("people")
        class Person:
            id: int = column(primary=True)
            passports = many_to_many(
                "Passport",
                join_table={
                    "name": "person_passports",
                    "join_column": {"name": "person_id", "referenced_column": "id", "type": "INTEGER"},
                    "inverse_join_column": {
                        "name": "passport_id",
                        "referenced_column": "id",
                        "type": "INTEGER",
                        "unique": True,
                    },
                },
            )

        @registry.entity("passports")
        class Passport:
            id: int = column(primary=True)

        join_table = collect_join_table_metadata(registry)[0]

        assert join_table.get_column("person_id").unique is False
        assert join_table.get_column("passport_id").unique is True

    def test_mapped_superclass_relations_are_skipped(self, registry: MetadataRegistry):
        @registry.entity("tags")
        class Tag:
            id: int = column(primary=True)

        @registry.mapped_superclass()
        class Taggable:
            id: int = column(primary=True)
            tags = many_to_many(
                "Tag",
                join_table=JoinTable(
                    name="taggable_tags",
                    join_column=JoinColumn(name="owner_id", referenced_column="id", type=ColumnType.INTEGER),
                    inverse_join_column=JoinColumn(
                        name="tag_id", referenced_column="id", type=ColumnType.INTEGER
                    ),
                ),
            )

        assert collect_join_table_metadata(registry) == []
