"""Entity keys and key accessors.

A key accessor is resolved once when a repository is constructed and then
used to read the key of any entity instance, so no per-call introspection
of entity types is needed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

from repo_query.core.exceptions import ContractViolationError

KeyAccessor = Callable[[Any], Any]


@runtime_checkable
class HasUniqueIdentifier(Protocol):
    """An entity exposing its key as ``id``."""

    id: Any


@dataclass(frozen=True)
class TableKey:
    """Compound key of a table-store entity."""

    partition: str
    row: str

    def __str__(self) -> str:
        return f"{self.partition}/{self.row}"


def attribute_key(name: str = "id") -> KeyAccessor:
    """Read the key from a single named attribute."""

    def _key(entity: Any) -> Any:
        return getattr(entity, name)

    return _key


def mapped_primary_key(entity_type: type) -> KeyAccessor:
    """Read the key from the primary-key columns of a mapped class.

    Single-column keys are returned as a scalar, composite keys as a tuple
    in column order, matching what ``Session.get`` accepts.
    """
    try:
        mapper = inspect(entity_type)
    except NoInspectionAvailable as e:
        raise ContractViolationError(
            "entity_type", f"{entity_type.__name__} is not a mapped class"
        ) from e

    composite = len(mapper.primary_key) > 1

    def _key(entity: Any) -> Any:
        identity = tuple(mapper.primary_key_from_instance(entity))
        return identity if composite else identity[0]

    return _key


def table_key(entity: Any) -> TableKey:
    return TableKey(entity.partition_key, entity.row_key)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, tuple):
        return not value or any(is_blank(part) for part in value)
    return False


def require_key(key: Any, argument: str = "id") -> Any:
    """Return ``key`` or raise ContractViolationError if it is None or blank."""
    if isinstance(key, TableKey):
        require_key(key.partition, "partition_key")
        require_key(key.row, "row_key")
        return key
    if is_blank(key):
        raise ContractViolationError(argument)
    return key


def require_entity(entity: Any, argument: str = "item") -> Any:
    if entity is None:
        raise ContractViolationError(argument)
    return entity
