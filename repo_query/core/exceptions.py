"""RepoQuery exception hierarchy.

Backend faults (SQLAlchemy, Azure) never escape a repository untranslated
when the repository knows how to reinterpret them; the original fault is
always chained as ``__cause__``.
"""

from __future__ import annotations

from typing import Any

INT32_MAX = 2**31 - 1


class RepoQueryError(Exception):
    """Base exception for all RepoQuery errors."""


# --- Caller contract ---


class ContractViolationError(RepoQueryError, ValueError):
    """Raised when a required argument is missing, blank or inconsistent."""

    def __init__(self, argument: str, detail: str | None = None) -> None:
        self.argument = argument
        message = detail or f"{argument} is required"
        super().__init__(message)


# --- Repository ---


class RepositoryError(RepoQueryError):
    """Generic backend or connectivity failure."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        key: Any = None,
        status_code: int | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.key = key
        self.status_code = status_code
        super().__init__(message)


class AlreadyExistsError(RepoQueryError):
    """Raised when creating an entity whose key is already persisted."""

    def __init__(self, message: str, entity_type: str | None = None, key: Any = None) -> None:
        self.entity_type = entity_type
        self.key = key
        super().__init__(message)


class NotFoundError(RepoQueryError):
    """Raised when updating or deleting an entity that does not exist."""

    def __init__(self, message: str, entity_type: str | None = None, key: Any = None) -> None:
        self.entity_type = entity_type
        self.key = key
        super().__init__(message)


class ValidationError(RepoQueryError):
    """Raised when the backend rejects the content of an entity."""

    def __init__(self, message: str, entity_type: str | None = None, key: Any = None) -> None:
        self.entity_type = entity_type
        self.key = key
        super().__init__(message)


class OperationNotSupportedError(RepoQueryError, NotImplementedError):
    """Raised for operations a backend cannot perform."""

    def __init__(self, operation: str, backend: str) -> None:
        self.operation = operation
        self.backend = backend
        super().__init__(f"{operation} is not supported by {backend}")


# --- Mapping ---


class MappingError(RepoQueryError):
    """Base for entity mapping errors."""


class ColumnMismatchError(MappingError):
    """Raised when stored properties do not match the target model."""

    def __init__(self, target_class: str, details: list[str]) -> None:
        self.target_class = target_class
        self.details = details
        super().__init__(f"Cannot map to {target_class}: {details}")


# --- Service ---


class ServiceError(RepoQueryError):
    """Raised by the service layer when a repository operation fails."""


# --- Unit of work ---


class TransactionStateError(RepoQueryError):
    """Raised on invalid unit-of-work transitions."""

    def __init__(self, current_state: str, attempted_action: str) -> None:
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action} unit of work in state '{current_state}'")


# --- Table storage connection strings ---


class ConnectionStringError(RepoQueryError):
    """Base for storage connection-string format errors."""

    reason = "is invalid"

    def __init__(self, connection_string: str, detail: str | None = None) -> None:
        self.connection_string = connection_string
        self.detail = detail
        message = f"Storage connection string {self.reason}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MalformedConnectionStringError(ConnectionStringError):
    """The connection string cannot be parsed."""

    reason = "is malformed"


class UnrecognisedAccountError(ConnectionStringError):
    """The storage account name is not recognised by the service."""

    reason = "names an unrecognised storage account"


class InvalidAccountCredentialError(ConnectionStringError):
    """The account key or shared access signature is invalid."""

    reason = "contains an invalid account credential"


class InvalidEndpointError(ConnectionStringError):
    """A storage endpoint URL is invalid or unreachable."""

    reason = "contains an invalid endpoint"


def check_count(count: int, entity_type: str) -> int:
    """Return ``count`` or raise RepositoryError past the 32-bit signed bound."""
    if count > INT32_MAX:
        raise RepositoryError(
            f"Count failed; more than {INT32_MAX} objects of type {entity_type} exist.",
            entity_type=entity_type,
        ) from OverflowError(f"{count} exceeds {INT32_MAX}")
    return count
