"""Repository base classes.

Backend-independent pieces shared by every adapter: argument guards,
query-spec construction, and the messages of translated faults.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from repo_query.core.exceptions import (
    AlreadyExistsError,
    ContractViolationError,
    NotFoundError,
    RepositoryError,
)
from repo_query.core.paths import resolve_includes
from repo_query.core.query import PagingContext, QuerySpec, SortCondition

E = TypeVar("E")


class RepositoryBase(Generic[E]):
    """Base class for backend repositories.

    Subclasses implement the data access methods for one backend, sync or
    async, and use the helpers here so every backend reports faults alike.
    """

    backend_name = "repository"

    def __init__(self, entity_type: type[E]) -> None:
        if entity_type is None:
            raise ContractViolationError("entity_type")
        self.entity_type = entity_type

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    def _query_spec(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> QuerySpec:
        spec = QuerySpec(filter, paging, sort, resolve_includes(includes))
        spec.validate()
        return spec

    @staticmethod
    def _require_batch(entities: Sequence[E] | None) -> list[E]:
        if entities is None or len(entities) == 0:
            raise ContractViolationError("items")
        if any(entity is None for entity in entities):
            raise ContractViolationError("items", "items must not contain None")
        return list(entities)

    def _already_exists(self, key: Any) -> AlreadyExistsError:
        return AlreadyExistsError(
            f"Create failed; object of type {self.entity_name} with primary key {key} "
            "already exists.",
            entity_type=self.entity_name,
            key=key,
        )

    def _not_found(self, action: str, key: Any) -> NotFoundError:
        return NotFoundError(
            f"{action} failed; object of type {self.entity_name} with primary key {key} "
            "does not exist.",
            entity_type=self.entity_name,
            key=key,
        )

    def _batch_not_found(self, action: str, keys: list[Any]) -> RepositoryError:
        return RepositoryError(
            f"{action} failed; objects of type {self.entity_name} with primary keys "
            f"{keys} do not exist.",
            entity_type=self.entity_name,
            key=keys,
        )

    def _lazy_load_failed(self, key: Any) -> RepositoryError:
        return RepositoryError(
            "Retrieve failed; a lazy-loading error occurred retrieving object of type "
            f"{self.entity_name} with primary key {key}.",
            entity_type=self.entity_name,
            key=key,
        )
