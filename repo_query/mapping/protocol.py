"""Mapper protocol.

Table-store repositories call map_one for single-key reads, map_many for
scans, and to_entity before every write.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class Mapper(Protocol[T]):
    """Base mapper protocol."""

    def map_one(self, entity: Mapping[str, Any]) -> T:
        """Map a single stored entity to a target object."""
        ...

    def map_many(self, entities: list[Mapping[str, Any]]) -> list[T]:
        """Map multiple stored entities to a list of target objects."""
        ...

    def to_entity(self, model: T) -> dict[str, Any]:
        """Map a target object to stored entity properties."""
        ...
