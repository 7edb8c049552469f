"""RepoQuery - backend-agnostic repositories over SQLAlchemy and Azure Table Storage."""

from __future__ import annotations

from repo_query.adapters.sqlalchemy_merging import AsyncMergingRepository, MergingRepository
from repo_query.adapters.sqlalchemy_stateful import AsyncStatefulRepository, StatefulRepository
from repo_query.adapters.table_storage import AsyncTableRepository, TableRepository
from repo_query.core.connection import (
    ConnectionConfig,
    StorageConnectionString,
    TableStorageConfig,
    create_async_session_factory,
    create_session_factory,
)
from repo_query.core.enums import DatabaseBackend, SortDirection
from repo_query.core.exceptions import (
    AlreadyExistsError,
    ColumnMismatchError,
    ConnectionStringError,
    ContractViolationError,
    InvalidAccountCredentialError,
    InvalidEndpointError,
    MalformedConnectionStringError,
    MappingError,
    NotFoundError,
    OperationNotSupportedError,
    RepositoryError,
    RepoQueryError,
    ServiceError,
    TransactionStateError,
    UnrecognisedAccountError,
    ValidationError,
)
from repo_query.core.keys import TableKey
from repo_query.core.paths import IncludePath, try_parse_path
from repo_query.core.query import (
    PagingContext,
    QuerySpec,
    SortField,
    order_by,
    order_by_fields,
    parse_sort,
    sort_in_memory,
)
from repo_query.core.unit_of_work import AsyncUnitOfWork, UnitOfWork
from repo_query.mapping.model import ModelMapper
from repo_query.services import (
    AsyncAuditedObjectService,
    AsyncObjectService,
    AuditedObjectService,
    AuditEvent,
    ObjectService,
)

__all__ = [
    # Connection
    "ConnectionConfig",
    "TableStorageConfig",
    "StorageConnectionString",
    "create_session_factory",
    "create_async_session_factory",
    # Query
    "QuerySpec",
    "PagingContext",
    "SortField",
    "parse_sort",
    "order_by",
    "order_by_fields",
    "sort_in_memory",
    "IncludePath",
    "try_parse_path",
    "TableKey",
    # Repositories
    "StatefulRepository",
    "AsyncStatefulRepository",
    "MergingRepository",
    "AsyncMergingRepository",
    "TableRepository",
    "AsyncTableRepository",
    # Unit of work
    "UnitOfWork",
    "AsyncUnitOfWork",
    # Services
    "ObjectService",
    "AsyncObjectService",
    "AuditedObjectService",
    "AsyncAuditedObjectService",
    "AuditEvent",
    # Mapping
    "ModelMapper",
    # Enums
    "DatabaseBackend",
    "SortDirection",
    # Exceptions
    "RepoQueryError",
    "ContractViolationError",
    "RepositoryError",
    "AlreadyExistsError",
    "NotFoundError",
    "ValidationError",
    "OperationNotSupportedError",
    "ServiceError",
    "TransactionStateError",
    "MappingError",
    "ColumnMismatchError",
    "ConnectionStringError",
    "MalformedConnectionStringError",
    "UnrecognisedAccountError",
    "InvalidAccountCredentialError",
    "InvalidEndpointError",
]
