"""Object services.

Thin wrappers over a repository that re-raise repository faults as service
faults. Caller-contract, AlreadyExists, NotFound and Validation errors pass
through unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from repo_query.core.exceptions import (
    ContractViolationError,
    NotFoundError,
    RepositoryError,
    ServiceError,
)
from repo_query.core.query import PagingContext, SortCondition

E = TypeVar("E")


@contextmanager
def service_errors(message: str) -> Iterator[None]:
    """Re-raise RepositoryError as ServiceError, chaining the original."""
    try:
        yield
    except RepositoryError as e:
        raise ServiceError(message) from e


def _not_found(entity_name: str, key: Any) -> NotFoundError:
    return NotFoundError(
        f"Delete failed; object of type {entity_name} with primary key {key} does not exist.",
        entity_type=entity_name,
        key=key,
    )


class ObjectService(Generic[E]):
    """Synchronous service over a repository."""

    def __init__(self, repository: Any) -> None:
        if repository is None:
            raise ContractViolationError("repository")
        self.repository = repository

    @property
    def entity_name(self) -> str:
        return self.repository.entity_name

    def count(self, filter: Any = None) -> int:
        with service_errors(f"Error counting objects of type {self.entity_name}."):
            return self.repository.count(filter)

    def exists(self, key: Any) -> bool:
        with service_errors(
            f"Error checking existence of an object of type {self.entity_name} "
            f"with a unique identifier of {key}."
        ):
            return self.repository.exists(key)

    def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        with service_errors(f"Error retrieving objects of type {self.entity_name}."):
            return self.repository.retrieve(filter, paging, sort, includes)

    def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        with service_errors(
            f"Error retrieving an object of type {self.entity_name} "
            f"with a unique identifier of {key}."
        ):
            return self.repository.retrieve_by_key(key, includes)

    def create(self, entity: E) -> E:
        with service_errors(f"Error creating an object of type {self.entity_name}."):
            return self.repository.create(entity)

    def update(self, entity: E) -> None:
        with service_errors(f"Error updating an object of type {self.entity_name}."):
            self.repository.update(entity)

    def delete(self, entity: E) -> None:
        with service_errors(f"Error deleting an object of type {self.entity_name}."):
            self.repository.delete(entity)

    def delete_by_key(self, key: Any) -> None:
        """Delete the object stored under ``key``.

        Raises:
            NotFoundError: If no object has that key.
        """
        with service_errors(f"Error deleting an object of type {self.entity_name}."):
            entity = self.repository.retrieve_by_key(key)
            if entity is None:
                raise _not_found(self.entity_name, key)
            self.repository.delete(entity)

    def create_bulk(self, entities: Sequence[E]) -> list[E]:
        with service_errors(f"Error creating objects of type {self.entity_name}."):
            return self.repository.create_bulk(entities)

    def update_bulk(self, entities: Sequence[E]) -> None:
        with service_errors(f"Error updating objects of type {self.entity_name}."):
            self.repository.update_bulk(entities)

    def delete_bulk(self, entities: Sequence[E]) -> None:
        with service_errors(f"Error deleting objects of type {self.entity_name}."):
            self.repository.delete_bulk(entities)


class AsyncObjectService(Generic[E]):
    """Asynchronous service over an async repository."""

    def __init__(self, repository: Any) -> None:
        if repository is None:
            raise ContractViolationError("repository")
        self.repository = repository

    @property
    def entity_name(self) -> str:
        return self.repository.entity_name

    async def count(self, filter: Any = None) -> int:
        with service_errors(f"Error counting objects of type {self.entity_name}."):
            return await self.repository.count(filter)

    async def exists(self, key: Any) -> bool:
        with service_errors(
            f"Error checking existence of an object of type {self.entity_name} "
            f"with a unique identifier of {key}."
        ):
            return await self.repository.exists(key)

    async def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        with service_errors(f"Error retrieving objects of type {self.entity_name}."):
            return await self.repository.retrieve(filter, paging, sort, includes)

    async def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        with service_errors(
            f"Error retrieving an object of type {self.entity_name} "
            f"with a unique identifier of {key}."
        ):
            return await self.repository.retrieve_by_key(key, includes)

    async def create(self, entity: E) -> E:
        with service_errors(f"Error creating an object of type {self.entity_name}."):
            return await self.repository.create(entity)

    async def update(self, entity: E) -> None:
        with service_errors(f"Error updating an object of type {self.entity_name}."):
            await self.repository.update(entity)

    async def delete(self, entity: E) -> None:
        with service_errors(f"Error deleting an object of type {self.entity_name}."):
            await self.repository.delete(entity)

    async def delete_by_key(self, key: Any) -> None:
        with service_errors(f"Error deleting an object of type {self.entity_name}."):
            entity = await self.repository.retrieve_by_key(key)
            if entity is None:
                raise _not_found(self.entity_name, key)
            await self.repository.delete(entity)

    async def create_bulk(self, entities: Sequence[E]) -> list[E]:
        with service_errors(f"Error creating objects of type {self.entity_name}."):
            return await self.repository.create_bulk(entities)

    async def update_bulk(self, entities: Sequence[E]) -> None:
        with service_errors(f"Error updating objects of type {self.entity_name}."):
            await self.repository.update_bulk(entities)

    async def delete_bulk(self, entities: Sequence[E]) -> None:
        with service_errors(f"Error deleting objects of type {self.entity_name}."):
            await self.repository.delete_bulk(entities)
