"""Table entity to model mapper.

Supports dataclasses, Pydantic models, and plain classes. Stored entities
carry ``PartitionKey`` / ``RowKey`` plus service metadata (timestamp, etag);
models expose them as ``partition_key``, ``row_key``, ``timestamp`` and
``etag``.
"""

from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from repo_query.core.exceptions import ColumnMismatchError

T = TypeVar("T")

PARTITION_KEY = "PartitionKey"
ROW_KEY = "RowKey"

# Stored name -> model field name
_KEY_FIELDS = {PARTITION_KEY: "partition_key", ROW_KEY: "row_key"}
_METADATA_FIELDS = ("timestamp", "etag")


def _is_pydantic_model(cls: type) -> bool:
    return isinstance(cls, type) and issubclass(cls, BaseModel)


def _accepted_fields(cls: type) -> set[str] | None:
    """Constructor argument names, or None if any keyword is accepted."""
    if _is_pydantic_model(cls):
        return set(cls.model_fields)
    if dataclasses.is_dataclass(cls):
        return {f.name for f in dataclasses.fields(cls) if f.init}
    try:
        parameters = inspect.signature(cls).parameters.values()
    except (TypeError, ValueError):
        return None
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in parameters):
        return None
    return {p.name for p in parameters}


class ModelMapper(Generic[T]):
    """Maps stored table entities to ``target_class`` and back.

    Detection order:
    1. Pydantic BaseModel -> model_validate(row) / model_dump()
    2. dataclass -> target_class(**row) / dataclasses.asdict()
    3. Plain class -> target_class(**row) / vars()

    Args:
        target_class: The class to construct from stored entities.
        aliases: Optional stored-name to field-name mapping.
    """

    def __init__(
        self,
        target_class: type[T],
        aliases: dict[str, str] | None = None,
    ) -> None:
        self._target_class = target_class
        self._aliases = aliases or {}
        self._reverse_aliases = {field: stored for stored, field in self._aliases.items()}
        self._is_pydantic = _is_pydantic_model(target_class)
        self._is_dataclass = dataclasses.is_dataclass(target_class)
        self._accepted = _accepted_fields(target_class)

    @property
    def target_class(self) -> type[T]:
        return self._target_class

    def _to_row(self, entity: Mapping[str, Any]) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for key, value in entity.items():
            name = _KEY_FIELDS.get(key, key)
            row[self._aliases.get(name, name)] = value

        metadata = getattr(entity, "metadata", None) or {}
        for name in _METADATA_FIELDS:
            if metadata.get(name) is not None:
                row[name] = metadata[name]

        if self._accepted is not None:
            # Metadata is optional on the model; everything else must match
            row = {
                key: value
                for key, value in row.items()
                if key in self._accepted or key not in _METADATA_FIELDS
            }
        return row

    def map_one(self, entity: Mapping[str, Any]) -> T:
        """Map a single stored entity to a target_class instance."""
        row = self._to_row(entity)

        if self._is_pydantic:
            try:
                return self._target_class.model_validate(row)  # type: ignore[attr-defined, no-any-return]
            except Exception as e:
                raise ColumnMismatchError(self._target_class.__name__, [str(e)]) from e

        # For dataclasses and plain classes, try **kwargs construction
        try:
            return self._target_class(**row)
        except TypeError as e:
            raise ColumnMismatchError(self._target_class.__name__, [str(e)]) from e

    def map_many(self, entities: list[Mapping[str, Any]]) -> list[T]:
        """Map all entities via map_one."""
        return [self.map_one(entity) for entity in entities]

    def to_entity(self, model: T) -> dict[str, Any]:
        """Build the stored property dict for ``model``.

        Service metadata is not written back; None values are omitted.
        """
        if self._is_pydantic:
            values = model.model_dump()  # type: ignore[attr-defined]
        elif self._is_dataclass:
            values = dataclasses.asdict(model)  # type: ignore[call-overload]
        else:
            values = {k: v for k, v in vars(model).items() if not k.startswith("_")}

        entity: dict[str, Any] = {}
        for name, value in values.items():
            if name in _METADATA_FIELDS or value is None:
                continue
            stored = self._reverse_aliases.get(name, name)
            if stored == "partition_key":
                stored = PARTITION_KEY
            elif stored == "row_key":
                stored = ROW_KEY
            entity[stored] = value
        return entity


def etag_of(model: Any) -> str | None:
    return getattr(model, "etag", None)
