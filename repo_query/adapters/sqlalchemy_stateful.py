"""Stateful-session SQLAlchemy repositories.

Existence is checked through the session's identity map using the key
accessor resolved at construction. Writes attach the caller's instance to
the session explicitly and mark its columns modified, so an instance built
outside the session (or detached from another one) is saved as given.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import DetachedInstanceError
from sqlalchemy.orm.util import identity_key

from repo_query.adapters.sqlalchemy_common import AsyncSqlRepository, SqlRepository
from repo_query.core.keys import require_key

logger = logging.getLogger(__name__)

E = TypeVar("E")


def _attach(session: Any, entity: Any, columns: list[str]) -> Any:
    state = inspect(entity)
    if state.transient:
        make_transient_to_detached(entity)
    if state.detached:
        session.add(entity)
        for name in columns:
            if name in state.dict:
                flag_modified(entity, name)
    return entity


class StatefulRepository(SqlRepository[E], Generic[E]):
    """Synchronous repository over a stateful ``Session``."""

    def exists(self, key: Any) -> bool:
        require_key(key)
        identity = identity_key(self.entity_type, key)
        already_tracked = identity in self.session.identity_map
        found = self.session.get(self.entity_type, key)
        if found is not None and not already_tracked:
            # Attached only by the existence check
            self.session.expunge(found)
            logger.debug("Expunged %s %s after existence check", self.entity_name, key)
        return found is not None

    def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        entity = self.session.get(self.entity_type, key)
        if entity is None or not includes:
            return entity
        for path in includes:
            self._load_path(entity, key, path)
        return entity

    def _load_path(self, entity: Any, key: Any, path: str) -> None:
        owners = [entity]
        for segment in path.split("."):
            loaded: list[Any] = []
            for owner in owners:
                relationship = inspect(type(owner)).relationships.get(segment)
                if relationship is None:
                    raise self._lazy_load_failed(key)
                try:
                    value = getattr(owner, segment)
                except (DetachedInstanceError, InvalidRequestError) as e:
                    raise self._lazy_load_failed(key) from e
                # Reference first, then collection
                if not relationship.uselist:
                    if value is not None:
                        loaded.append(value)
                else:
                    loaded.extend(value)
            owners = loaded

    def _attach_for_update(self, entity: E) -> E:
        return _attach(self.session, entity, self._column_names())

    def _attach_for_delete(self, entity: E) -> E:
        return _attach(self.session, entity, [])


class AsyncStatefulRepository(AsyncSqlRepository[E], Generic[E]):
    """Asynchronous repository over a stateful ``AsyncSession``."""

    async def exists(self, key: Any) -> bool:
        require_key(key)
        identity = identity_key(self.entity_type, key)
        already_tracked = identity in self.session.identity_map
        found = await self.session.get(self.entity_type, key)
        if found is not None and not already_tracked:
            # Attached only by the existence check
            self.session.expunge(found)
            logger.debug("Expunged %s %s after existence check", self.entity_name, key)
        return found is not None

    async def _load_by_key(self, key: Any, includes: tuple[str, ...]) -> E | None:
        entity = await self.session.get(self.entity_type, key)
        if entity is None or not includes:
            return entity
        for path in includes:
            await self._load_path(entity, key, path)
        return entity

    async def _load_path(self, entity: Any, key: Any, path: str) -> None:
        owners = [entity]
        for segment in path.split("."):
            loaded: list[Any] = []
            for owner in owners:
                relationship = inspect(type(owner)).relationships.get(segment)
                if relationship is None:
                    raise self._lazy_load_failed(key)
                try:
                    await self.session.refresh(owner, [segment])
                except (DetachedInstanceError, InvalidRequestError) as e:
                    raise self._lazy_load_failed(key) from e
                value = getattr(owner, segment)
                if not relationship.uselist:
                    if value is not None:
                        loaded.append(value)
                else:
                    loaded.extend(value)
            owners = loaded

    async def _attach_for_update(self, entity: E) -> E:
        return _attach(self.session, entity, self._column_names())

    async def _attach_for_delete(self, entity: E) -> E:
        return _attach(self.session, entity, [])
