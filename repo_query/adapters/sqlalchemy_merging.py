"""Merging-session SQLAlchemy repositories.

Existence checks and by-key loads query the conventionally named identifier
attribute, which need not be the mapped primary key. Writes hand the caller's
instance to ``Session.merge``, which copies its state onto the tracked
instance for the same key instead of attaching the caller's object.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy import exists, select

from repo_query.adapters.sqlalchemy_common import (
    AsyncSqlRepository,
    SqlRepository,
    loader_chain,
)
from repo_query.core.exceptions import ContractViolationError
from repo_query.core.keys import KeyAccessor, attribute_key, require_key

E = TypeVar("E")


class _MergingMixin:
    """Identifier-attribute lookups shared by the sync and async classes."""

    entity_type: Any
    _key_of: KeyAccessor

    def _init_identifier(self, id_attribute: str, key_accessor: KeyAccessor | None) -> None:
        column = getattr(self.entity_type, id_attribute, None)
        if column is None:
            raise ContractViolationError(
                "id_attribute", f"{self.entity_type.__name__} has no attribute '{id_attribute}'"
            )
        self._id_column = column
        if key_accessor is None:
            self._key_of = attribute_key(id_attribute)

    def _key_columns(self) -> list[Any]:
        return [self._id_column]

    def _exists_statement(self, key: Any) -> Any:
        return select(exists().where(self._id_column == key))

    def _by_key_statement(self, key: Any, includes: tuple[str, ...]) -> Any:
        options = []
        for path in includes:
            try:
                options.append(loader_chain(self.entity_type, path))
            except ContractViolationError as e:
                raise self._lazy_load_failed(key) from e  # type: ignore[attr-defined]
        return select(self.entity_type).where(self._id_column == key).options(*options)


class MergingRepository(_MergingMixin, SqlRepository[E], Generic[E]):
    """Synchronous repository over a merging ``Session``.

    Args:
        session: The session to use.
        entity_type: Mapped entity class.
        id_attribute: Name of the identifier attribute (default ``id``).
        key_accessor: Optional override for reading an entity's key.
    """

    def __init__(
        self,
        session: Any,
        entity_type: type[E],
        id_attribute: str = "id",
        key_accessor: KeyAccessor | None = None,
    ) -> None:
        super().__init__(session, entity_type, key_accessor)
        self._init_identifier(id_attribute, key_accessor)

    def exists(self, key: Any) -> bool:
        require_key(key)
        return bool(self.session.scalar(self._exists_statement(key)))

    def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        stmt = self._by_key_statement(key, includes)
        return self.session.scalars(stmt).one_or_none()

    def _attach_for_update(self, entity: E) -> E:
        return self.session.merge(entity)

    def _attach_for_delete(self, entity: E) -> E:
        return self.session.merge(entity)


class AsyncMergingRepository(_MergingMixin, AsyncSqlRepository[E], Generic[E]):
    """Asynchronous repository over a merging ``AsyncSession``."""

    def __init__(
        self,
        session: Any,
        entity_type: type[E],
        id_attribute: str = "id",
        key_accessor: KeyAccessor | None = None,
    ) -> None:
        super().__init__(session, entity_type, key_accessor)
        self._init_identifier(id_attribute, key_accessor)

    async def exists(self, key: Any) -> bool:
        require_key(key)
        return bool(await self.session.scalar(self._exists_statement(key)))

    async def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        stmt = self._by_key_statement(key, includes)
        result = await self.session.scalars(stmt)
        return result.one_or_none()

    async def _attach_for_update(self, entity: E) -> E:
        return await self.session.merge(entity)

    async def _attach_for_delete(self, entity: E) -> E:
        return await self.session.merge(entity)
