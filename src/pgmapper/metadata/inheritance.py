"""Single-table inheritance: fold child columns into the root table."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pgmapper.metadata.registry import MetadataRegistry

logger = logging.getLogger(__name__)


def register_sti_child_columns(registry: MetadataRegistry) -> int:
    """Copy each STI child's own columns onto its root as nullable columns.

    Returns:
        Number of columns added to roots by this call
    """
    added = 0
    for child in registry.entities():
        if not child.is_sti_child:
            continue
        root = registry.sti_root(child)
        if root is None:
            logger.warning(
                f"No single-table inheritance root owns table '{child.sti_root_table_name}' "
                f"(child entity {child.name})"
            )
            continue

        known = {column.name for column in root.columns}
        known.update(column.name for column in root.sti_child_columns)
        for column in child.columns:
            if column.name in known:
                continue
            root.sti_child_columns.append(
                column.model_copy(
                    update={
                        "nullable": True,
                        "primary": False,
                        "unique": False,
                        "auto_increment": False,
                    }
                )
            )
            known.add(column.name)
            added += 1

    if added:
        logger.debug(f"Folded {added} child column(s) into single-table roots")
    return added
