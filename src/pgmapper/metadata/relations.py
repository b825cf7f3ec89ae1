"""Deferred relation resolution.

Relations may name entities that are declared later in the module (or in
another module). Each relation declaration is therefore turned into an
initializer closure and parked on a queue. Resolution retries closures whose
target is not available yet until every one succeeds or the retry bound is
exceeded.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING

from pgmapper.core.types import RelationKind
from pgmapper.exceptions import RelationResolutionError, TargetNotAvailableError
from pgmapper.metadata.models import (
    ColumnDescriptor,
    EntityDescriptor,
    JoinColumn,
    JoinTable,
    RelationDescriptor,
)

if TYPE_CHECKING:
    from pgmapper.metadata.fields import TargetRef
    from pgmapper.metadata.registry import MetadataRegistry

logger = logging.getLogger(__name__)

Initializer = Callable[[], None]


def validate_referenced_column(
    target: EntityDescriptor,
    columns: list[ColumnDescriptor],
    join_column: JoinColumn,
    description: str,
) -> bool:
    """Warn when a join column points at a column that cannot back a FK.

    Returns True when the referenced column exists and is primary or unique.
    """
    referenced = next((c for c in columns if c.name == join_column.referenced_column), None)
    if referenced is None:
        logger.warning(
            f"Relation {description}: referenced column '{join_column.referenced_column}' "
            f"does not exist on entity '{target.name}'"
        )
        return False
    if not referenced.primary and not referenced.unique:
        logger.warning(
            f"Relation {description}: referenced column '{join_column.referenced_column}' "
            f"on entity '{target.name}' is neither primary nor unique"
        )
        return False
    return True


class RelationResolver:
    """Queue of relation initializers waiting for their targets."""

    def __init__(self, registry: MetadataRegistry) -> None:
        self._registry = registry
        self._pending: deque[tuple[str, Initializer]] = deque()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[str]:
        """Descriptions of the initializers still waiting."""
        return [description for description, _ in self._pending]

    def schedule(self, description: str, initializer: Initializer) -> None:
        self._pending.append((description, initializer))

    def schedule_relation(
        self,
        source: str,
        kind: RelationKind,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None = None,
        join_table: JoinTable | None = None,
        inverse_property: str | None = None,
    ) -> None:
        """Queue the initializer for one declared relation."""
        handlers = {
            RelationKind.ONE_TO_ONE: self._init_one_to_one,
            RelationKind.ONE_TO_MANY: self._init_one_to_many,
            RelationKind.MANY_TO_ONE: self._init_many_to_one,
            RelationKind.MANY_TO_MANY: self._init_many_to_many,
        }
        handler = handlers[RelationKind(kind)]
        self.schedule(
            f"{source}.{property_name} ({kind})",
            partial(
                handler,
                source,
                property_name,
                target,
                join_column,
                join_table,
                inverse_property,
            ),
        )

    def resolve(self) -> int:
        """Run queued initializers until the queue is empty.

        Returns:
            Number of initializers that completed

        Raises:
            RelationResolutionError: If the retry bound is exceeded
        """
        if not self._pending:
            return 0

        max_iterations = len(self._pending) * 5 + 10
        iterations = 0
        resolved = 0

        while self._pending:
            if iterations > max_iterations:
                raise RelationResolutionError(self.pending, max_iterations)
            iterations += 1

            description, initializer = self._pending.popleft()
            try:
                initializer()
            except TargetNotAvailableError as e:
                logger.debug(f"Deferring relation {description}: {e.message}")
                self._pending.append((description, initializer))
            else:
                resolved += 1

        logger.debug(f"Resolved {resolved} relation(s) in {iterations} iteration(s)")
        return resolved

    # === Initializers ===

    def _validate(self, target: EntityDescriptor, join_column: JoinColumn, description: str) -> bool:
        return validate_referenced_column(
            target, self._registry.visible_columns(target), join_column, description
        )

    def _resolve(self, source: str, target: TargetRef) -> tuple[EntityDescriptor, EntityDescriptor]:
        target_name = self._registry.resolve_target(target)
        return self._registry.ensure(source), self._registry.ensure(target_name)

    def _init_one_to_one(
        self,
        source: str,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None,
        join_table: JoinTable | None,
        inverse_property: str | None,
    ) -> None:
        source_d, target_d = self._resolve(source, target)
        if join_column is None:
            raise ValueError(f"One-to-one relation {source}.{property_name} needs a join column")

        self._registry.upsert_column(
            source_d,
            ColumnDescriptor(
                name=join_column.name,
                property_name=property_name,
                type=join_column.type,
                nullable=join_column.nullable,
                unique=True,
            ),
        )
        self._validate(target_d, join_column, f"{source}.{property_name}")

        self._registry.add_or_update_relation(
            source_d,
            RelationDescriptor(
                kind=RelationKind.ONE_TO_ONE,
                property_name=property_name,
                target=target_d.name,
                owner=True,
                join_column=join_column.model_copy(update={"unique": True}),
                inverse_property=inverse_property,
            ),
        )
        self._registry.add_or_update_relation(
            target_d,
            RelationDescriptor(
                kind=RelationKind.ONE_TO_ONE,
                property_name=inverse_property or property_name,
                target=source_d.name,
                owner=False,
                inverse_property=property_name,
            ),
        )

    def _init_one_to_many(
        self,
        source: str,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None,
        join_table: JoinTable | None,
        inverse_property: str | None,
    ) -> None:
        source_d, target_d = self._resolve(source, target)
        if join_column is None:
            raise ValueError(f"One-to-many relation {source}.{property_name} needs a join column")

        # The FK column and the owning relation share one property name
        owning_property = inverse_property or join_column.name

        self._validate(source_d, join_column, f"{source}.{property_name}")
        self._registry.add_or_update_relation(
            source_d,
            RelationDescriptor(
                kind=RelationKind.ONE_TO_MANY,
                property_name=property_name,
                target=target_d.name,
                owner=False,
                inverse_property=owning_property,
            ),
        )

        # FK column lives on the many side
        self._registry.upsert_column(
            target_d,
            ColumnDescriptor(
                name=join_column.name,
                property_name=owning_property,
                type=join_column.type,
                nullable=join_column.nullable,
                unique=bool(join_column.unique),
            ),
        )
        self._registry.add_or_update_relation(
            target_d,
            RelationDescriptor(
                kind=RelationKind.MANY_TO_ONE,
                property_name=owning_property,
                target=source_d.name,
                owner=True,
                join_column=join_column,
                inverse_property=property_name,
            ),
        )

    def _init_many_to_one(
        self,
        source: str,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None,
        join_table: JoinTable | None,
        inverse_property: str | None,
    ) -> None:
        source_d, target_d = self._resolve(source, target)
        if join_column is None:
            raise ValueError(f"Many-to-one relation {source}.{property_name} needs a join column")

        self._validate(target_d, join_column, f"{source}.{property_name}")
        self._registry.add_or_update_relation(
            source_d,
            RelationDescriptor(
                kind=RelationKind.MANY_TO_ONE,
                property_name=property_name,
                target=target_d.name,
                owner=True,
                join_column=join_column,
                inverse_property=inverse_property,
            ),
        )
        self._registry.add_or_update_relation(
            target_d,
            RelationDescriptor(
                kind=RelationKind.ONE_TO_MANY,
                property_name=inverse_property or property_name,
                target=source_d.name,
                owner=False,
                inverse_property=property_name,
            ),
        )

    def _init_many_to_many(
        self,
        source: str,
        property_name: str,
        target: TargetRef,
        join_column: JoinColumn | None,
        join_table: JoinTable | None,
        inverse_property: str | None,
    ) -> None:
        source_d, target_d = self._resolve(source, target)

        if join_table is None:
            # Inverse side: point the owner back at this property
            self._registry.add_or_update_relation(
                source_d,
                RelationDescriptor(
                    kind=RelationKind.MANY_TO_MANY,
                    property_name=property_name,
                    target=target_d.name,
                    owner=False,
                    inverse_property=inverse_property,
                ),
            )
            for relation in target_d.relations:
                if (
                    relation.kind == RelationKind.MANY_TO_MANY
                    and relation.owner
                    and relation.target == source_d.name
                    and relation.property_name == inverse_property
                ):
                    relation.inverse_property = property_name
            return

        description = f"{source}.{property_name}"
        self._validate(source_d, join_table.join_column, description)
        self._validate(target_d, join_table.inverse_join_column, description)

        self._registry.add_or_update_relation(
            source_d,
            RelationDescriptor(
                kind=RelationKind.MANY_TO_MANY,
                property_name=property_name,
                target=target_d.name,
                owner=True,
                join_table=join_table,
                inverse_property=inverse_property,
            ),
        )
        self._registry.add_or_update_relation(
            target_d,
            RelationDescriptor(
                kind=RelationKind.MANY_TO_MANY,
                property_name=inverse_property or property_name,
                target=source_d.name,
                owner=False,
                inverse_property=property_name,
            ),
        )
