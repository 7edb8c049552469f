"""Shared SQLAlchemy repository machinery.

The two session generations (stateful and merging) differ only in how they
check existence, attach entities for writes, and load a single entity with
its navigations. Everything else lives here: query composition over
``Select`` statements, fault translation, saving, and bulk writes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, inspect, select, tuple_
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    InvalidRequestError,
    NoInspectionAvailable,
    SQLAlchemyError,
)
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import DetachedInstanceError, FlushError, StaleDataError

from repo_query.core.exceptions import (
    ContractViolationError,
    RepositoryError,
    ValidationError,
    check_count,
)
from repo_query.core.keys import KeyAccessor, mapped_primary_key, require_entity, require_key
from repo_query.core.query import PagingContext, SortCondition, compose
from repo_query.core.unit_of_work import unit_of_work_active
from repo_query.repository.base import RepositoryBase

logger = logging.getLogger(__name__)

E = TypeVar("E")


def loader_chain(entity_type: type, path: str) -> Any:
    """Build a ``selectinload`` chain for a dotted navigation path."""
    current = entity_type
    option: Any = None
    for segment in path.split("."):
        relationship = inspect(current).relationships.get(segment)
        if relationship is None:
            raise ContractViolationError(
                "includes", f"{current.__name__} has no navigation property '{segment}'"
            )
        attribute = getattr(current, segment)
        option = selectinload(attribute) if option is None else option.selectinload(attribute)
        current = relationship.mapper.class_
    if option is None:
        raise ContractViolationError("includes", "Include path must not be empty")
    return option


class SqlQueryOperations:
    """QueryOperations over SQLAlchemy ``Select`` statements."""

    def __init__(self, entity_type: type) -> None:
        self._entity_type = entity_type

    def where(self, query: Select[Any], predicate: Any) -> Select[Any]:
        return query.where(predicate)

    def page(self, query: Select[Any], skip: int, take: int) -> Select[Any]:
        return query.offset(skip).limit(take)

    def include(self, query: Select[Any], path: str) -> Select[Any]:
        return query.options(loader_chain(self._entity_type, path))


@contextmanager
def translate_faults(action: str, entity_name: str, key: Any = None) -> Iterator[None]:
    """Re-raise SQLAlchemy faults as repository errors naming the entity and key."""
    try:
        yield
    except DataError as e:
        logger.debug("%s of %s %s rejected by the database: %s", action, entity_name, key, e)
        raise ValidationError(
            f"{action} failed; the database rejected a value of object of type "
            f"{entity_name} with primary key {key}.",
            entity_type=entity_name,
            key=key,
        ) from e
    except (
        DBAPIError, FlushError, StaleDataError, InvalidRequestError, DetachedInstanceError
    ) as e:
        # InvalidRequestError covers ResourceClosedError
        logger.debug("%s of %s %s failed: %s", action, entity_name, key, e)
        raise RepositoryError(
            f"{action} failed; an error occurred processing object of type "
            f"{entity_name} with primary key {key}.",
            entity_type=entity_name,
            key=key,
        ) from e


def save_changes(session: Any) -> None:
    """Flush, then commit unless a unit of work owns the transaction."""
    try:
        session.flush()
        if not unit_of_work_active(session):
            session.commit()
    except SQLAlchemyError:
        if not unit_of_work_active(session):
            session.rollback()
        raise


async def save_changes_async(session: Any) -> None:
    """Flush, then commit unless a unit of work owns the transaction."""
    try:
        await session.flush()
        if not unit_of_work_active(session):
            await session.commit()
    except SQLAlchemyError:
        if not unit_of_work_active(session):
            await session.rollback()
        raise


def navigation_targets(obj: Any, segment: str) -> tuple[bool, Any]:
    """Relationship direction and current value of ``segment`` on ``obj``.

    Returns ``(is_collection, value)``. Raises KeyError if ``segment`` is
    not a navigation property.
    """
    relationship = inspect(type(obj)).relationships[segment]
    return relationship.uselist, getattr(obj, segment)


class _SqlRepositoryMixin(RepositoryBase[E]):
    """Construction and statement building shared by sync and async classes."""

    backend_name = "sqlalchemy"

    def __init__(
        self,
        session: Any,
        entity_type: type[E],
        key_accessor: KeyAccessor | None = None,
    ) -> None:
        super().__init__(entity_type)
        if session is None:
            raise ContractViolationError("session")
        try:
            self._mapper = inspect(entity_type)
        except NoInspectionAvailable as e:
            raise ContractViolationError(
                "entity_type", f"{entity_type.__name__} is not a mapped class"
            ) from e
        self.session = session
        self._key_of = key_accessor or mapped_primary_key(entity_type)
        self._operations = SqlQueryOperations(entity_type)

    def _count_statement(self, filter: Any) -> Select[Any]:
        stmt = select(func.count()).select_from(self.entity_type)
        if filter is not None:
            stmt = stmt.where(filter)
        return stmt

    def _retrieve_statement(
        self,
        filter: Any,
        paging: PagingContext | None,
        sort: SortCondition | None,
        includes: Iterable[Any],
    ) -> Select[Any]:
        spec = self._query_spec(filter, paging, sort, includes)
        return compose(select(self.entity_type), spec, self._operations)

    def _key_columns(self) -> list[Any]:
        return list(self._mapper.primary_key)

    def _persisted_keys_statement(self, keys: list[Any]) -> Select[Any]:
        columns = self._key_columns()
        if len(columns) == 1:
            return select(columns[0]).where(columns[0].in_(keys))
        return select(*columns).where(tuple_(*columns).in_(keys))

    def _batch_keys(self, items: list[E]) -> list[Any]:
        return [require_key(self._key_of(entity)) for entity in items]

    def _missing_keys(self, keys: list[Any], rows: Iterable[Any]) -> list[Any]:
        if len(self._key_columns()) == 1:
            found = {row[0] for row in rows}
        else:
            found = {tuple(row) for row in rows}
        return [key for key in keys if key not in found]

    def _column_names(self) -> list[str]:
        """Non-key column attributes, in mapper order."""
        primary = {column.key for column in self._mapper.primary_key}
        return [
            attr.key
            for attr in self._mapper.column_attrs
            if not any(column.key in primary for column in attr.columns)
        ]


class SqlRepository(_SqlRepositoryMixin[E], ABC, Generic[E]):
    """Synchronous SQLAlchemy repository.

    Subclasses supply the generation-specific hooks ``exists``,
    ``_load_by_key``, ``_attach_for_update`` and ``_attach_for_delete``.
    """

    # --- Read ---

    def count(self, filter: Any = None) -> int:
        with translate_faults("Count", self.entity_name):
            total = self.session.scalar(self._count_statement(filter))
        return check_count(int(total or 0), self.entity_name)

    @abstractmethod
    def exists(self, key: Any) -> bool:
        ...

    def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        stmt = self._retrieve_statement(filter, paging, sort, includes)
        with translate_faults("Retrieve", self.entity_name):
            return list(self.session.scalars(stmt).all())

    def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        require_key(key)
        paths = self._query_spec(includes=includes).includes
        with translate_faults("Retrieve", self.entity_name, key):
            return self._load_by_key(key, paths)

    @abstractmethod
    def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        ...

    # --- Write ---

    def create(self, entity: E) -> E:
        require_entity(entity)
        key = self._key_of(entity)
        with translate_faults("Create", self.entity_name, key):
            if key is not None and self.exists(key):
                raise self._already_exists(key)
            self.session.add(entity)
            save_changes(self.session)
        logger.debug("Created %s %s", self.entity_name, key)
        return entity

    def update(self, entity: E) -> None:
        require_entity(entity)
        key = require_key(self._key_of(entity))
        with translate_faults("Update", self.entity_name, key):
            if not self.exists(key):
                raise self._not_found("Update", key)
            self._attach_for_update(entity)
            save_changes(self.session)
        logger.debug("Updated %s %s", self.entity_name, key)

    def delete(self, entity: E) -> None:
        require_entity(entity)
        key = require_key(self._key_of(entity))
        with translate_faults("Delete", self.entity_name, key):
            if not self.exists(key):
                raise self._not_found("Delete", key)
            self.session.delete(self._attach_for_delete(entity))
            save_changes(self.session)
        logger.debug("Deleted %s %s", self.entity_name, key)

    @abstractmethod
    def _attach_for_update(self, entity: E) -> E:
        ...

    @abstractmethod
    def _attach_for_delete(self, entity: E) -> E:
        ...

    # --- Bulk ---

    def _require_persisted(self, action: str, items: list[E]) -> None:
        """Fail the whole batch if any key is not stored."""
        keys = self._batch_keys(items)
        rows = self.session.execute(self._persisted_keys_statement(keys))
        missing = self._missing_keys(keys, rows)
        if missing:
            raise self._batch_not_found(action, missing)

    def create_bulk(self, entities: Sequence[E]) -> list[E]:
        items = self._require_batch(entities)
        with translate_faults("Create", self.entity_name):
            with self.session.no_autoflush:
                self.session.add_all(items)
            save_changes(self.session)
        logger.debug("Created %d %s objects", len(items), self.entity_name)
        return items

    def update_bulk(self, entities: Sequence[E]) -> None:
        items = self._require_batch(entities)
        with translate_faults("Update", self.entity_name):
            self._require_persisted("Update", items)
            with self.session.no_autoflush:
                for entity in items:
                    self._attach_for_update(entity)
            save_changes(self.session)
        logger.debug("Updated %d %s objects", len(items), self.entity_name)

    def delete_bulk(self, entities: Sequence[E]) -> None:
        items = self._require_batch(entities)
        with translate_faults("Delete", self.entity_name):
            self._require_persisted("Delete", items)
            with self.session.no_autoflush:
                for entity in items:
                    self.session.delete(self._attach_for_delete(entity))
            save_changes(self.session)
        logger.debug("Deleted %d %s objects", len(items), self.entity_name)


class AsyncSqlRepository(_SqlRepositoryMixin[E], ABC, Generic[E]):
    """Asynchronous SQLAlchemy repository over an ``AsyncSession``."""

    # --- Read ---

    async def count(self, filter: Any = None) -> int:
        with translate_faults("Count", self.entity_name):
            total = await self.session.scalar(self._count_statement(filter))
        return check_count(int(total or 0), self.entity_name)

    @abstractmethod
    async def exists(self, key: Any) -> bool:
        ...

    async def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        stmt = self._retrieve_statement(filter, paging, sort, includes)
        with translate_faults("Retrieve", self.entity_name):
            result = await self.session.scalars(stmt)
            return list(result.all())

    async def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        require_key(key)
        paths = self._query_spec(includes=includes).includes
        with translate_faults("Retrieve", self.entity_name, key):
            return await self._load_by_key(key, paths)

    @abstractmethod
    async def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        ...

    # --- Write ---

    async def create(self, entity: E) -> E:
        require_entity(entity)
        key = self._key_of(entity)
        with translate_faults("Create", self.entity_name, key):
            if key is not None and await self.exists(key):
                raise self._already_exists(key)
            self.session.add(entity)
            await save_changes_async(self.session)
        logger.debug("Created %s %s", self.entity_name, key)
        return entity

    async def update(self, entity: E) -> None:
        require_entity(entity)
        key = require_key(self._key_of(entity))
        with translate_faults("Update", self.entity_name, key):
            if not await self.exists(key):
                raise self._not_found("Update", key)
            await self._attach_for_update(entity)
            await save_changes_async(self.session)
        logger.debug("Updated %s %s", self.entity_name, key)

    async def delete(self, entity: E) -> None:
        require_entity(entity)
        key = require_key(self._key_of(entity))
        with translate_faults("Delete", self.entity_name, key):
            if not await self.exists(key):
                raise self._not_found("Delete", key)
            await self.session.delete(await self._attach_for_delete(entity))
            await save_changes_async(self.session)
        logger.debug("Deleted %s %s", self.entity_name, key)

    @abstractmethod
    async def _attach_for_update(self, entity: E) -> E:
        ...

    @abstractmethod
    async def _attach_for_delete(self, entity: E) -> E:
        ...

    # --- Bulk ---

    async def _require_persisted(self, action: str, items: list[E]) -> None:
        keys = self._batch_keys(items)
        rows = await self.session.execute(self._persisted_keys_statement(keys))
        missing = self._missing_keys(keys, rows)
        if missing:
            raise self._batch_not_found(action, missing)

    async def create_bulk(self, entities: Sequence[E]) -> list[E]:
        items = self._require_batch(entities)
        with translate_faults("Create", self.entity_name):
            with self.session.no_autoflush:
                self.session.add_all(items)
            await save_changes_async(self.session)
        logger.debug("Created %d %s objects", len(items), self.entity_name)
        return items

    async def update_bulk(self, entities: Sequence[E]) -> None:
        items = self._require_batch(entities)
        with translate_faults("Update", self.entity_name):
            await self._require_persisted("Update", items)
            with self.session.no_autoflush:
                for entity in items:
                    await self._attach_for_update(entity)
            await save_changes_async(self.session)
        logger.debug("Updated %d %s objects", len(items), self.entity_name)

    async def delete_bulk(self, entities: Sequence[E]) -> None:
        items = self._require_batch(entities)
        with translate_faults("Delete", self.entity_name):
            await self._require_persisted("Delete", items)
            with self.session.no_autoflush:
                for entity in items:
                    await self.session.delete(await self._attach_for_delete(entity))
            await save_changes_async(self.session)
        logger.debug("Deleted %d %s objects", len(items), self.entity_name)
