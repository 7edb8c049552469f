"""Connection configuration.

ConnectionConfig is a Pydantic model for relational connection settings and
builds SQLAlchemy engines and session factories from them. TableStorageConfig
and StorageConnectionString cover the table-store backend.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import URL, create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from repo_query.core.enums import DatabaseBackend
from repo_query.core.exceptions import (
    ConnectionStringError,
    ContractViolationError,
    InvalidAccountCredentialError,
    InvalidEndpointError,
    MalformedConnectionStringError,
)


class ConnectionConfig(BaseModel):
    """Configuration for database connections."""

    driver: str
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str
    pool_size: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    extra: dict[str, Any] = {}

    @property
    def backend(self) -> DatabaseBackend:
        try:
            return DatabaseBackend(self.driver.lower())
        except ValueError as e:
            raise ContractViolationError(
                "driver", f"Unsupported database driver: {self.driver}"
            ) from e

    def url(self, kind: str = "sync") -> URL:
        """SQLAlchemy URL for this configuration."""
        sync_name, async_name = _DIALECT_MAP[self.backend]
        return URL.create(
            sync_name if kind == "sync" else async_name,
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.extra:
            options["connect_args"] = dict(self.extra)
        # SQLite engines use single-connection pools that take no sizing options
        if self.backend is not DatabaseBackend.SQLITE:
            options.update(
                pool_size=self.pool_size,
                pool_timeout=self.pool_timeout,
                pool_recycle=self.pool_recycle,
            )
        return options


# Backend -> (sync dialect+driver, async dialect+driver)
_DIALECT_MAP: dict[DatabaseBackend, tuple[str, str]] = {
    DatabaseBackend.SQLITE: ("sqlite", "sqlite+aiosqlite"),
    DatabaseBackend.POSTGRESQL: ("postgresql+psycopg", "postgresql+psycopg"),
    DatabaseBackend.MYSQL: ("mysql+mysqlconnector", "mysql+aiomysql"),
    DatabaseBackend.ORACLE: ("oracle+oracledb", "oracle+oracledb"),
}


def create_session_factory(config: ConnectionConfig) -> sessionmaker[Session]:
    """Build a ``Session`` factory bound to a new engine."""
    engine = create_engine(config.url("sync"), **config.engine_options())
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_async_session_factory(config: ConnectionConfig) -> async_sessionmaker[AsyncSession]:
    """Build an ``AsyncSession`` factory bound to a new async engine."""
    engine = create_async_engine(config.url("async"), **config.engine_options())
    return async_sessionmaker(bind=engine, expire_on_commit=False)


# --- Table storage ---


class TableStorageConfig(BaseModel):
    """Connection string and table name for a table-store repository."""

    connection_string: str = Field(min_length=1)
    table_name: str = Field(pattern=r"^[A-Za-z][A-Za-z0-9]{2,62}$")

    @field_validator("connection_string")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("connection_string must not be blank")
        return value


# Connection-string setting name (lower case) -> field name
_SETTINGS: dict[str, str] = {
    "defaultendpointsprotocol": "default_endpoints_protocol",
    "accountname": "account_name",
    "accountkey": "account_key",
    "sharedaccesssignature": "shared_access_signature",
    "endpointsuffix": "endpoint_suffix",
    "tableendpoint": "table_endpoint",
    "blobendpoint": "blob_endpoint",
    "queueendpoint": "queue_endpoint",
    "fileendpoint": "file_endpoint",
    "usedevelopmentstorage": "use_development_storage",
}

_CREDENTIAL_FIELDS = {"account_key", "shared_access_signature"}
_ENDPOINT_FIELDS = {
    "default_endpoints_protocol",
    "endpoint_suffix",
    "table_endpoint",
    "blob_endpoint",
    "queue_endpoint",
    "file_endpoint",
}

DEVELOPMENT_TABLE_ENDPOINT = "http://127.0.0.1:10002/devstoreaccount1"


class StorageConnectionString(BaseModel):
    """Parsed Azure storage connection string."""

    default_endpoints_protocol: str = "https"
    account_name: str | None = None
    account_key: str | None = None
    shared_access_signature: str | None = None
    endpoint_suffix: str = "core.windows.net"
    table_endpoint: HttpUrl | None = None
    blob_endpoint: HttpUrl | None = None
    queue_endpoint: HttpUrl | None = None
    file_endpoint: HttpUrl | None = None
    use_development_storage: bool = False

    @field_validator("default_endpoints_protocol")
    @classmethod
    def _known_protocol(cls, value: str) -> str:
        if value.lower() not in ("http", "https"):
            raise ValueError(f"unknown protocol '{value}'")
        return value.lower()

    @field_validator("account_key")
    @classmethod
    def _base64_key(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("account key is not valid base64") from e
        return value

    @model_validator(mode="after")
    def _account_details(self) -> StorageConnectionString:
        if self.use_development_storage:
            return self
        if not self.account_name and self.table_endpoint is None:
            raise ValueError("AccountName or TableEndpoint is required")
        if not self.account_key and not self.shared_access_signature:
            raise ValueError("AccountKey or SharedAccessSignature is required")
        return self

    @property
    def endpoint_derived(self) -> bool:
        """True if the table endpoint is built from the account name."""
        return self.table_endpoint is None and not self.use_development_storage

    @property
    def table_service_endpoint(self) -> str:
        if self.table_endpoint is not None:
            return str(self.table_endpoint).rstrip("/")
        if self.use_development_storage:
            return DEVELOPMENT_TABLE_ENDPOINT
        return (
            f"{self.default_endpoints_protocol}://{self.account_name}"
            f".table.{self.endpoint_suffix}"
        )

    @classmethod
    def parse(cls, connection_string: str) -> StorageConnectionString:
        """Parse and classify ``connection_string``.

        Raises:
            ContractViolationError: If the connection string is None or blank.
            MalformedConnectionStringError: If it is not a ``Key=Value;`` list or
                lacks the account details.
            InvalidAccountCredentialError: If the account key is not base64.
            InvalidEndpointError: If an endpoint URL or protocol is invalid.
        """
        if connection_string is None or not connection_string.strip():
            raise ContractViolationError("connection_string")

        values: dict[str, str] = {}
        for segment in connection_string.strip().split(";"):
            if not segment.strip():
                continue
            name, sep, value = segment.partition("=")
            if not sep or not name.strip():
                raise MalformedConnectionStringError(
                    connection_string, f"segment '{segment}' is not a Key=Value pair"
                )
            field = _SETTINGS.get(name.strip().lower())
            if field is not None:
                values[field] = value.strip()

        if not values:
            raise MalformedConnectionStringError(connection_string, "no recognised settings")

        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            raise _classify(connection_string, e) from e


def _classify(connection_string: str, error: PydanticValidationError) -> ConnectionStringError:
    first = error.errors()[0]
    field = str(first["loc"][0]) if first["loc"] else ""
    detail = first["msg"]
    if field in _CREDENTIAL_FIELDS:
        return InvalidAccountCredentialError(connection_string, detail)
    if field in _ENDPOINT_FIELDS:
        return InvalidEndpointError(connection_string, detail)
    return MalformedConnectionStringError(connection_string, detail)
