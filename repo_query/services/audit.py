"""Audited object services.

AuditedObjectService decorates an object service and records an
:class:`AuditEvent` after each successful operation. Failures of the
decorated service propagate and are not audited; failures of the audit
sink are logged at WARNING and swallowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from repo_query.core.exceptions import ContractViolationError
from repo_query.core.query import PagingContext, SortCondition

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass
class AuditEvent:
    """One audited operation.

    Attributes:
        event_type: ``"<Entity>:<Operation>"``; ``+`` marks multi-object reads.
        target_type: Qualified name of the entity type.
        user: Current user, if a user context is configured.
        old: State before the operation (updates and deletes).
        new: State after the operation (creates, reads and updates).
        extra: Operation-specific fields such as counts and keys.
    """

    event_type: str
    target_type: str
    user: str | None = None
    old: Any = None
    new: Any = None
    extra: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        """Persist or forward ``event``."""
        ...


@runtime_checkable
class AsyncAuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None:
        """Persist or forward ``event``."""
        ...


class LoggingAuditSink:
    """Writes audit events to a logger at INFO."""

    def __init__(self, name: str = "repo_query.audit") -> None:
        self._logger = logging.getLogger(name)

    def record(self, event: AuditEvent) -> None:
        self._logger.info(
            "%s on %s by %s %s", event.event_type, event.target_type, event.user, event.extra
        )


class _AuditMixin:
    """Event construction shared by the sync and async decorators."""

    entity_type: type

    def _init_audit(
        self,
        service: Any,
        repository: Any,
        sink: Any,
        user_context: Callable[[], str | None] | None,
    ) -> None:
        if service is None:
            raise ContractViolationError("service")
        if repository is None:
            raise ContractViolationError("repository")
        if sink is None:
            raise ContractViolationError("sink")
        self.service = service
        self.repository = repository
        self.sink = sink
        self._user_context = user_context
        self.entity_type = repository.entity_type

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    def _event(self, operation: str, **values: Any) -> AuditEvent:
        user = self._user_context() if self._user_context is not None else None
        return AuditEvent(
            event_type=f"{self.entity_name}:{operation}",
            target_type=f"{self.entity_type.__module__}.{self.entity_type.__qualname__}",
            user=user,
            **values,
        )

    def _audit_failed(self, operation: str, key: Any = None) -> None:
        if key is None:
            logger.warning(
                "Auditing failed for %s of type %s.", operation, self.entity_name, exc_info=True
            )
        else:
            logger.warning(
                "Auditing failed for %s of type %s with ID %s.",
                operation,
                self.entity_name,
                key,
                exc_info=True,
            )


class AuditedObjectService(_AuditMixin, Generic[E]):
    """Audit decorator for ObjectService.

    Args:
        service: The decorated object service.
        repository: Read-only repository used to fetch the state before updates.
        sink: Receives audit events.
        user_context: Returns the current user name.
        key_of: Reads an entity's key for audit messages (default ``id``).
    """

    def __init__(
        self,
        service: Any,
        repository: Any,
        sink: AuditSink,
        user_context: Callable[[], str | None] | None = None,
        key_of: Callable[[Any], Any] | None = None,
    ) -> None:
        self._init_audit(service, repository, sink, user_context)
        self._key_of = key_of or (lambda entity: getattr(entity, "id", None))

    def _record(self, operation: str, key: Any = None, **values: Any) -> None:
        try:
            self.sink.record(self._event(operation, **values))
        except Exception:
            self._audit_failed(operation, key)

    def count(self, filter: Any = None) -> int:
        count = self.service.count(filter)
        self._record("Count", extra={"count": count})
        return count

    def exists(self, key: Any) -> bool:
        exists = self.service.exists(key)
        self._record("Exists", key, extra={"id": key, "exists": exists})
        return exists

    def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        retrieved = self.service.retrieve(filter, paging, sort, includes)
        # Only the number of objects, not the objects themselves
        self._record("Retrieve+", extra={"count": len(retrieved)})
        return retrieved

    def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        retrieved = self.service.retrieve_by_key(key, includes)
        self._record("Retrieve", key, new=retrieved)
        return retrieved

    def create(self, entity: E) -> E:
        created = self.service.create(entity)
        self._record("Create", self._key_of(created), new=created)
        return created

    def update(self, entity: E) -> None:
        key = self._key_of(entity)
        original = self.repository.retrieve_by_key(key)
        self.service.update(entity)
        self._record("Update", key, old=original, new=entity)

    def delete(self, entity: E) -> None:
        key = self._key_of(entity)
        self.service.delete(entity)
        self._record("Delete", key, old=entity)


class AsyncAuditedObjectService(_AuditMixin, Generic[E]):
    """Audit decorator for AsyncObjectService."""

    def __init__(
        self,
        service: Any,
        repository: Any,
        sink: AsyncAuditSink,
        user_context: Callable[[], str | None] | None = None,
        key_of: Callable[[Any], Any] | None = None,
    ) -> None:
        self._init_audit(service, repository, sink, user_context)
        self._key_of = key_of or (lambda entity: getattr(entity, "id", None))

    async def _record(self, operation: str, key: Any = None, **values: Any) -> None:
        try:
            await self.sink.record(self._event(operation, **values))
        except Exception:
            self._audit_failed(operation, key)

    async def count(self, filter: Any = None) -> int:
        count = await self.service.count(filter)
        await self._record("Count", extra={"count": count})
        return count

    async def exists(self, key: Any) -> bool:
        exists = await self.service.exists(key)
        await self._record("Exists", key, extra={"id": key, "exists": exists})
        return exists

    async def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        retrieved = await self.service.retrieve(filter, paging, sort, includes)
        await self._record("Retrieve+", extra={"count": len(retrieved)})
        return retrieved

    async def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        retrieved = await self.service.retrieve_by_key(key, includes)
        await self._record("Retrieve", key, new=retrieved)
        return retrieved

    async def create(self, entity: E) -> E:
        created = await self.service.create(entity)
        await self._record("Create", self._key_of(created), new=created)
        return created

    async def update(self, entity: E) -> None:
        key = self._key_of(entity)
        original = await self.repository.retrieve_by_key(key)
        await self.service.update(entity)
        await self._record("Update", key, old=original, new=entity)

    async def delete(self, entity: E) -> None:
        key = self._key_of(entity)
        await self.service.delete(entity)
        await self._record("Delete", key, old=entity)
