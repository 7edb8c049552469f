"""Repository protocols.

Every backend adapter MUST implement these protocols so callers can swap
backends without changing call sites. Sync and async adapters expose the
same method names; async adapters return coroutines.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from repo_query.core.query import PagingContext, SortCondition

E = TypeVar("E")


@runtime_checkable
class ReadOnlyRepository(Protocol[E]):
    """Synchronous read operations."""

    def count(self, filter: Any = None) -> int:
        """Number of entities matching ``filter`` (all entities if None)."""
        ...

    def exists(self, key: Any) -> bool:
        """True if an entity with ``key`` is persisted."""
        ...

    def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        """Entities matching the query, materialised as a list."""
        ...

    def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        """The entity with ``key``, or None."""
        ...


@runtime_checkable
class Repository(ReadOnlyRepository[E], Protocol[E]):
    """Synchronous read and write operations."""

    def create(self, entity: E) -> E:
        """Persist a new entity."""
        ...

    def update(self, entity: E) -> None:
        """Persist changes to an existing entity."""
        ...

    def delete(self, entity: E) -> None:
        """Remove an existing entity."""
        ...


@runtime_checkable
class BulkRepository(Protocol[E]):
    """Synchronous batch writes; the whole batch succeeds or fails."""

    def create_bulk(self, entities: Sequence[E]) -> list[E]:
        ...

    def update_bulk(self, entities: Sequence[E]) -> None:
        ...

    def delete_bulk(self, entities: Sequence[E]) -> None:
        ...


@runtime_checkable
class AsyncReadOnlyRepository(Protocol[E]):
    """Asynchronous read operations."""

    async def count(self, filter: Any = None) -> int:
        """Number of entities matching ``filter`` (all entities if None)."""
        ...

    async def exists(self, key: Any) -> bool:
        """True if an entity with ``key`` is persisted."""
        ...

    async def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        """Entities matching the query, materialised as a list."""
        ...

    async def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        """The entity with ``key``, or None."""
        ...


@runtime_checkable
class AsyncRepository(AsyncReadOnlyRepository[E], Protocol[E]):
    """Asynchronous read and write operations."""

    async def create(self, entity: E) -> E:
        """Persist a new entity."""
        ...

    async def update(self, entity: E) -> None:
        """Persist changes to an existing entity."""
        ...

    async def delete(self, entity: E) -> None:
        """Remove an existing entity."""
        ...


@runtime_checkable
class AsyncBulkRepository(Protocol[E]):
    """Asynchronous batch writes; the whole batch succeeds or fails."""

    async def create_bulk(self, entities: Sequence[E]) -> list[E]:
        ...

    async def update_bulk(self, entities: Sequence[E]) -> None:
        ...

    async def delete_bulk(self, entities: Sequence[E]) -> None:
        ...
