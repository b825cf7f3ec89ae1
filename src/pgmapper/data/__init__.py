"""Data access: repositories and statement building."""

from pgmapper.data.query import EntityQuery
from pgmapper.data.repository import Repository

__all__ = ["EntityQuery", "Repository"]
