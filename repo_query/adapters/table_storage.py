"""Azure Table Storage repositories.

Entities are addressed by a :class:`TableKey` (partition key, row key). The
service evaluates neither filters nor sort orders for these repositories:
``retrieve`` and ``count`` scan the whole table and filter, sort and page in
memory. Without a caller sort, results are ordered by the server timestamp,
newest first. Batch writes are not supported.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from azure.core import MatchConditions
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.data.tables import TableServiceClient, UpdateMode
from azure.data.tables.aio import TableServiceClient as AsyncTableServiceClient
from pydantic import ValidationError as PydanticValidationError

from repo_query.core.connection import StorageConnectionString, TableStorageConfig
from repo_query.core.exceptions import (
    ContractViolationError,
    InvalidAccountCredentialError,
    InvalidEndpointError,
    MalformedConnectionStringError,
    OperationNotSupportedError,
    RepoQueryError,
    RepositoryError,
    UnrecognisedAccountError,
    check_count,
)
from repo_query.core.keys import TableKey, require_entity, require_key, table_key
from repo_query.core.paths import resolve_includes
from repo_query.core.query import (
    InMemoryOperations,
    PagingContext,
    QuerySpec,
    SortCondition,
    compose,
)
from repo_query.mapping.model import ModelMapper, etag_of
from repo_query.mapping.protocol import Mapper
from repo_query.repository.base import RepositoryBase

logger = logging.getLogger(__name__)

E = TypeVar("E")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _config(connection_string: str, table_name: str) -> TableStorageConfig:
    if connection_string is None or not str(connection_string).strip():
        raise ContractViolationError("connection_string")
    if table_name is None or not str(table_name).strip():
        raise ContractViolationError("table_name")
    try:
        return TableStorageConfig(connection_string=connection_string, table_name=table_name)
    except PydanticValidationError as e:
        raise ContractViolationError("table_name", f"Invalid table name '{table_name}'") from e


def classify_connection_fault(
    settings: StorageConnectionString, connection_string: str, error: Exception
) -> RepoQueryError:
    """Map a fault raised while opening a table to a domain error."""
    if isinstance(error, ValueError):
        # Raised by the SDK for connection strings it cannot parse
        return MalformedConnectionStringError(connection_string, str(error))
    if isinstance(error, ClientAuthenticationError):
        return InvalidAccountCredentialError(connection_string, str(error))
    if isinstance(error, ServiceRequestError):
        if settings.endpoint_derived:
            return UnrecognisedAccountError(connection_string, str(error))
        return InvalidEndpointError(connection_string, str(error))
    if isinstance(error, HttpResponseError):
        if error.status_code in (401, 403):
            return InvalidAccountCredentialError(connection_string, str(error))
        return UnrecognisedAccountError(connection_string, str(error))
    return RepositoryError(f"Failed to open table storage: {error}")


def _as_table_key(key: Any) -> TableKey:
    if isinstance(key, tuple) and len(key) == 2:
        key = TableKey(*key)
    if not isinstance(key, TableKey):
        raise ContractViolationError("id", f"Expected a TableKey, got {key!r}")
    return require_key(key)


def _by_timestamp_desc(entities: list[Any]) -> list[Any]:
    def _timestamp(entity: Any) -> datetime:
        metadata = getattr(entity, "metadata", None) or {}
        return metadata.get("timestamp") or _EPOCH

    return sorted(entities, key=_timestamp, reverse=True)


def _scan_order(entities: list[Any]) -> list[Any]:
    # Scans are mapped in timestamp order already
    return entities


def _apply_metadata(entity: Any, metadata: Mapping[str, Any] | None) -> None:
    """Copy the new etag returned by a write onto the caller's instance."""
    if not metadata or not hasattr(entity, "etag"):
        return
    etag = metadata.get("etag")
    if etag is not None:
        try:
            setattr(entity, "etag", etag)
        except (AttributeError, TypeError, ValueError):
            logger.debug("Could not set etag on %s", type(entity).__name__)


def _match_condition(entity: Any) -> dict[str, Any]:
    etag = etag_of(entity)
    if etag is None:
        return {}
    return {"etag": etag, "match_condition": MatchConditions.IfNotModified}


class _TableRepositoryMixin(RepositoryBase[E]):
    """State and helpers shared by sync and async table repositories."""

    backend_name = "table storage"

    def __init__(
        self,
        entity_type: type[E],
        table_client: Any,
        mapper: Mapper[E] | None = None,
    ) -> None:
        super().__init__(entity_type)
        if table_client is None:
            raise ContractViolationError("table_client")
        self.table_client = table_client
        self.mapper: Mapper[E] = mapper or ModelMapper(entity_type)

    def _spec(
        self,
        filter: Any,
        paging: PagingContext | None,
        sort: SortCondition | None,
        includes: Iterable[Any],
    ) -> QuerySpec:
        resolve_includes(includes)
        spec = QuerySpec(filter, paging, sort).with_default_sort(_scan_order)
        spec.validate()
        return spec

    def _materialise(self, entities: list[Any], spec: QuerySpec) -> list[E]:
        mapped = self.mapper.map_many(_by_timestamp_desc(entities))
        return compose(mapped, spec, InMemoryOperations())

    def _fault(self, action: str, key: Any, error: HttpResponseError) -> RepositoryError:
        logger.debug(
            "%s of %s %s failed with status %s", action, self.entity_name, key, error.status_code
        )
        return RepositoryError(
            f"{action} failed; the table service returned status {error.status_code} for "
            f"object of type {self.entity_name} with primary key {key}.",
            entity_type=self.entity_name,
            key=key,
            status_code=error.status_code,
        )

    def _entity_key(self, entity: E) -> TableKey:
        require_entity(entity)
        return require_key(table_key(entity))

    def _unsupported(self, operation: str) -> OperationNotSupportedError:
        return OperationNotSupportedError(operation, self.backend_name)


class TableRepository(_TableRepositoryMixin[E], Generic[E]):
    """Synchronous repository over an Azure table.

    Args:
        entity_type: Model class exposing ``partition_key`` and ``row_key``.
        table_client: An ``azure.data.tables.TableClient``.
        mapper: Optional mapper; defaults to a ModelMapper for entity_type.
    """

    def __init__(
        self,
        entity_type: type[E],
        table_client: Any,
        mapper: Mapper[E] | None = None,
        service_client: Any = None,
    ) -> None:
        super().__init__(entity_type, table_client, mapper)
        self._service_client = service_client

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        table_name: str,
        entity_type: type[E],
        mapper: Mapper[E] | None = None,
    ) -> TableRepository[E]:
        """Open ``table_name``, creating it if absent."""
        config = _config(connection_string, table_name)
        settings = StorageConnectionString.parse(config.connection_string)
        try:
            service = TableServiceClient.from_connection_string(config.connection_string)
            client = service.create_table_if_not_exists(config.table_name)
        except (ValueError, AzureError) as e:
            raise classify_connection_fault(settings, config.connection_string, e) from e
        logger.debug("Opened table %s", config.table_name)
        return cls(entity_type, client, mapper, service_client=service)

    @classmethod
    def from_config(
        cls,
        config: TableStorageConfig,
        entity_type: type[E],
        mapper: Mapper[E] | None = None,
    ) -> TableRepository[E]:
        return cls.from_connection_string(
            config.connection_string, config.table_name, entity_type, mapper
        )

    def close(self) -> None:
        self.table_client.close()
        if self._service_client is not None:
            self._service_client.close()

    # --- Read ---

    def _scan(self) -> list[Any]:
        try:
            return list(self.table_client.list_entities())
        except ResourceNotFoundError:
            return []
        except HttpResponseError as e:
            raise self._fault("Retrieve", None, e) from e

    def _get(self, key: TableKey) -> Any:
        try:
            return self.table_client.get_entity(partition_key=key.partition, row_key=key.row)
        except ResourceNotFoundError:
            return None
        except HttpResponseError as e:
            raise self._fault("Retrieve", key, e) from e

    def count(self, filter: Any = None) -> int:
        items = self.retrieve(filter=filter)
        return check_count(len(items), self.entity_name)

    def exists(self, key: Any) -> bool:
        return self._get(_as_table_key(key)) is not None

    def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        spec = self._spec(filter, paging, sort, includes)
        return self._materialise(self._scan(), spec)

    def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        resolve_includes(includes)
        found = self._get(_as_table_key(key))
        return None if found is None else self.mapper.map_one(found)

    # --- Write ---

    def create(self, entity: E) -> E:
        key = self._entity_key(entity)
        try:
            metadata = self.table_client.create_entity(entity=self.mapper.to_entity(entity))
        except HttpResponseError as e:
            if isinstance(e, ResourceExistsError) or e.status_code == 409:
                raise self._already_exists(key) from e
            raise self._fault("Create", key, e) from e
        _apply_metadata(entity, metadata)
        logger.debug("Created %s %s", self.entity_name, key)
        return entity

    def update(self, entity: E) -> None:
        key = self._entity_key(entity)
        if not self.exists(key):
            raise self._not_found("Update", key)
        try:
            metadata = self.table_client.update_entity(
                entity=self.mapper.to_entity(entity),
                mode=UpdateMode.REPLACE,
                **_match_condition(entity),
            )
        except ResourceNotFoundError as e:
            raise self._not_found("Update", key) from e
        except HttpResponseError as e:
            raise self._fault("Update", key, e) from e
        _apply_metadata(entity, metadata)
        logger.debug("Updated %s %s", self.entity_name, key)

    def delete(self, entity: E) -> None:
        key = self._entity_key(entity)
        if not self.exists(key):
            raise self._not_found("Delete", key)
        try:
            self.table_client.delete_entity(
                partition_key=key.partition, row_key=key.row, **_match_condition(entity)
            )
        except HttpResponseError as e:
            raise self._fault("Delete", key, e) from e
        logger.debug("Deleted %s %s", self.entity_name, key)

    # --- Bulk ---

    def create_bulk(self, entities: Sequence[E]) -> list[E]:
        raise self._unsupported("create_bulk")

    def update_bulk(self, entities: Sequence[E]) -> None:
        raise self._unsupported("update_bulk")

    def delete_bulk(self, entities: Sequence[E]) -> None:
        raise self._unsupported("delete_bulk")


class AsyncTableRepository(_TableRepositoryMixin[E], Generic[E]):
    """Asynchronous repository over an Azure table.

    Use ``await AsyncTableRepository.from_connection_string(...)`` to open a
    table; the constructor takes an ``azure.data.tables.aio.TableClient``.
    """

    def __init__(
        self,
        entity_type: type[E],
        table_client: Any,
        mapper: Mapper[E] | None = None,
        service_client: Any = None,
    ) -> None:
        super().__init__(entity_type, table_client, mapper)
        self._service_client = service_client

    @classmethod
    async def from_connection_string(
        cls,
        connection_string: str,
        table_name: str,
        entity_type: type[E],
        mapper: Mapper[E] | None = None,
    ) -> AsyncTableRepository[E]:
        """Open ``table_name``, creating it if absent."""
        config = _config(connection_string, table_name)
        settings = StorageConnectionString.parse(config.connection_string)
        service = None
        try:
            service = AsyncTableServiceClient.from_connection_string(config.connection_string)
            client = await service.create_table_if_not_exists(config.table_name)
        except (ValueError, AzureError) as e:
            if service is not None:
                await service.close()
            raise classify_connection_fault(settings, config.connection_string, e) from e
        logger.debug("Opened table %s", config.table_name)
        return cls(entity_type, client, mapper, service_client=service)

    @classmethod
    async def from_config(
        cls,
        config: TableStorageConfig,
        entity_type: type[E],
        mapper: Mapper[E] | None = None,
    ) -> AsyncTableRepository[E]:
        return await cls.from_connection_string(
            config.connection_string, config.table_name, entity_type, mapper
        )

    async def close(self) -> None:
        await self.table_client.close()
        if self._service_client is not None:
            await self._service_client.close()

    # --- Read ---

    async def _scan(self) -> list[Any]:
        try:
            return [entity async for entity in self.table_client.list_entities()]
        except ResourceNotFoundError:
            return []
        except HttpResponseError as e:
            raise self._fault("Retrieve", None, e) from e

    async def _get(self, key: TableKey) -> Any:
        try:
            return await self.table_client.get_entity(partition_key=key.partition, row_key=key.row)
        except ResourceNotFoundError:
            return None
        except HttpResponseError as e:
            raise self._fault("Retrieve", key, e) from e

    async def count(self, filter: Any = None) -> int:
        items = await self.retrieve(filter=filter)
        return check_count(len(items), self.entity_name)

    async def exists(self, key: Any) -> bool:
        return await self._get(_as_table_key(key)) is not None

    async def retrieve(
        self,
        filter: Any = None,
        paging: PagingContext | None = None,
        sort: SortCondition | None = None,
        includes: Iterable[Any] = (),
    ) -> list[E]:
        spec = self._spec(filter, paging, sort, includes)
        return self._materialise(await self._scan(), spec)

    async def retrieve_by_key(self, key: Any, includes: Iterable[Any] = ()) -> E | None:
        resolve_includes(includes)
        found = await self._get(_as_table_key(key))
        return None if found is None else self.mapper.map_one(found)

    # --- Write ---

    async def create(self, entity: E) -> E:
        key = self._entity_key(entity)
        try:
            metadata = await self.table_client.create_entity(
                entity=self.mapper.to_entity(entity)
            )
        except HttpResponseError as e:
            if isinstance(e, ResourceExistsError) or e.status_code == 409:
                raise self._already_exists(key) from e
            raise self._fault("Create", key, e) from e
        _apply_metadata(entity, metadata)
        logger.debug("Created %s %s", self.entity_name, key)
        return entity

    async def update(self, entity: E) -> None:
        key = self._entity_key(entity)
        if not await self.exists(key):
            raise self._not_found("Update", key)
        try:
            metadata = await self.table_client.update_entity(
                entity=self.mapper.to_entity(entity),
                mode=UpdateMode.REPLACE,
                **_match_condition(entity),
            )
        except ResourceNotFoundError as e:
            raise self._not_found("Update", key) from e
        except HttpResponseError as e:
            raise self._fault("Update", key, e) from e
        _apply_metadata(entity, metadata)
        logger.debug("Updated %s %s", self.entity_name, key)

    async def delete(self, entity: E) -> None:
        key = self._entity_key(entity)
        if not await self.exists(key):
            raise self._not_found("Delete", key)
        try:
            await self.table_client.delete_entity(
                partition_key=key.partition, row_key=key.row, **_match_condition(entity)
            )
        except HttpResponseError as e:
            raise self._fault("Delete", key, e) from e
        logger.debug("Deleted %s %s", self.entity_name, key)

    # --- Bulk ---

    async def create_bulk(self, entities: Sequence[E]) -> list[E]:
        raise self._unsupported("create_bulk")

    async def update_bulk(self, entities: Sequence[E]) -> None:
        raise self._unsupported("update_bulk")

    async def delete_bulk(self, entities: Sequence[E]) -> None:
        raise self._unsupported("delete_bulk")
