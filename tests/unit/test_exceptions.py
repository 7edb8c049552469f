"""Unit tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from repo_query.core.exceptions import (
    INT32_MAX,
    AlreadyExistsError,
    ConnectionStringError,
    ContractViolationError,
    InvalidAccountCredentialError,
    InvalidEndpointError,
    MalformedConnectionStringError,
    NotFoundError,
    OperationNotSupportedError,
    RepositoryError,
    RepoQueryError,
    ServiceError,
    TransactionStateError,
    UnrecognisedAccountError,
    ValidationError,
    check_count,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            AlreadyExistsError("m"),
            NotFoundError("m"),
            ValidationError("m"),
            RepositoryError("m"),
            ServiceError("m"),
            ContractViolationError("id"),
            OperationNotSupportedError("create_bulk", "table storage"),
            TransactionStateError("idle", "commit"),
            MalformedConnectionStringError("x"),
        ],
    )
    def test_all_derive_from_base(self, error: Exception) -> None:
        assert isinstance(error, RepoQueryError)

    def test_domain_kinds_are_siblings(self) -> None:
        assert not issubclass(AlreadyExistsError, RepositoryError)
        assert not issubclass(NotFoundError, RepositoryError)
        assert not issubclass(ValidationError, RepositoryError)

    def test_contract_violation_is_value_error(self) -> None:
        assert isinstance(ContractViolationError("id"), ValueError)

    def test_not_supported_is_not_implemented_error(self) -> None:
        assert isinstance(OperationNotSupportedError("x", "y"), NotImplementedError)

    @pytest.mark.parametrize(
        "cls",
        [
            MalformedConnectionStringError,
            UnrecognisedAccountError,
            InvalidAccountCredentialError,
            InvalidEndpointError,
        ],
    )
    def test_connection_string_errors(self, cls: type[ConnectionStringError]) -> None:
        error = cls("AccountName=x", "detail")
        assert isinstance(error, ConnectionStringError)
        assert not isinstance(error, RepositoryError)
        assert error.connection_string == "AccountName=x"
        assert str(error).endswith(": detail")


class TestMessages:
    def test_contract_violation_default_message(self) -> None:
        error = ContractViolationError("id")
        assert str(error) == "id is required"
        assert error.argument == "id"

    def test_repository_error_attributes(self) -> None:
        error = RepositoryError("boom", entity_type="Blog", key=3, status_code=500)
        assert (error.entity_type, error.key, error.status_code) == ("Blog", 3, 500)

    def test_transaction_state_message(self) -> None:
        error = TransactionStateError("idle", "commit")
        assert str(error) == "Cannot commit unit of work in state 'idle'"
        assert error.current_state == "idle"
        assert error.attempted_action == "commit"

    def test_not_supported_message(self) -> None:
        error = OperationNotSupportedError("create_bulk", "table storage")
        assert str(error) == "create_bulk is not supported by table storage"


class TestCheckCount:
    def test_within_bound(self) -> None:
        assert check_count(INT32_MAX, "Blog") == INT32_MAX

    def test_overflow(self) -> None:
        with pytest.raises(RepositoryError, match="more than 2147483647 objects of type Blog") as exc:
            check_count(INT32_MAX + 1, "Blog")
        assert isinstance(exc.value.__cause__, OverflowError)
