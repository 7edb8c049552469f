"""Unit tests for UnitOfWork nesting semantics."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from repo_query.core.exceptions import TransactionStateError
from repo_query.core.unit_of_work import AsyncUnitOfWork, UnitOfWork, unit_of_work_active


def _session(in_transaction: bool = False) -> MagicMock:
    session = MagicMock()
    session.info = {}
    session.in_transaction.return_value = in_transaction
    return session


def _async_session(in_transaction: bool = False) -> MagicMock:
    session = MagicMock()
    session.info = {}
    session.in_transaction.return_value = in_transaction
    session.begin = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    return session


class TestUnitOfWork:
    def test_outermost_begin_opens_transaction(self) -> None:
        session = _session()
        uow = UnitOfWork(session)
        uow.begin()
        uow.begin()
        session.begin.assert_called_once()
        assert uow.depth == 2
        assert uow.is_active
        assert unit_of_work_active(session)

    def test_begin_joins_autobegun_transaction(self) -> None:
        session = _session(in_transaction=True)
        uow = UnitOfWork(session)
        uow.begin()
        session.begin.assert_not_called()
        assert unit_of_work_active(session)

    def test_nested_commit_commits_once(self) -> None:
        session = _session()
        uow = UnitOfWork(session)
        uow.begin()
        uow.begin()
        uow.commit()
        session.commit.assert_not_called()
        uow.commit()
        session.commit.assert_called_once()
        assert uow.depth == 0
        assert not unit_of_work_active(session)

    def test_inner_commit_outer_rollback_rolls_back(self) -> None:
        # The terminal call decides; the inner commit is only a depth change
        session = _session()
        uow = UnitOfWork(session)
        uow.begin()
        uow.begin()
        uow.commit()
        uow.rollback()
        session.commit.assert_not_called()
        session.rollback.assert_called_once()

    def test_inner_rollback_outer_commit_commits(self) -> None:
        session = _session()
        uow = UnitOfWork(session)
        uow.begin()
        uow.begin()
        uow.rollback()
        session.rollback.assert_not_called()
        uow.commit()
        session.commit.assert_called_once()

    def test_commit_when_idle_raises(self) -> None:
        uow = UnitOfWork(_session())
        with pytest.raises(TransactionStateError, match="commit"):
            uow.commit()
        assert uow.depth == 0

    def test_rollback_when_idle_raises(self) -> None:
        uow = UnitOfWork(_session())
        with pytest.raises(TransactionStateError, match="rollback"):
            uow.rollback()

    def test_close_releases_session_at_any_depth(self) -> None:
        session = _session()
        uow = UnitOfWork(session)
        uow.begin()
        uow.close()
        session.close.assert_called_once()
        assert uow.depth == 0
        assert not unit_of_work_active(session)

    def test_context_manager_commits(self) -> None:
        session = _session()
        with UnitOfWork(session) as uow:
            assert uow.depth == 1
        session.commit.assert_called_once()

    def test_context_manager_rolls_back_and_reraises(self) -> None:
        session = _session()
        with pytest.raises(RuntimeError, match="boom"), UnitOfWork(session):
            raise RuntimeError("boom")
        session.rollback.assert_called_once()
        session.commit.assert_not_called()

    def test_marker_cleared_when_commit_fails(self) -> None:
        session = _session()
        session.commit.side_effect = RuntimeError("db down")
        uow = UnitOfWork(session)
        uow.begin()
        with pytest.raises(RuntimeError):
            uow.commit()
        assert not unit_of_work_active(session)


class TestAsyncUnitOfWork:
    async def test_nested_commit_commits_once(self) -> None:
        session = _async_session()
        uow = AsyncUnitOfWork(session)
        await uow.begin()
        await uow.begin()
        await uow.commit()
        session.commit.assert_not_awaited()
        await uow.commit()
        session.begin.assert_awaited_once()
        session.commit.assert_awaited_once()

    async def test_inner_commit_outer_rollback_rolls_back(self) -> None:
        session = _async_session()
        uow = AsyncUnitOfWork(session)
        await uow.begin()
        await uow.begin()
        await uow.commit()
        await uow.rollback()
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_commit_when_idle_raises(self) -> None:
        uow = AsyncUnitOfWork(_async_session())
        with pytest.raises(TransactionStateError):
            await uow.commit()

    async def test_context_manager_rolls_back(self) -> None:
        session = _async_session()
        with pytest.raises(ValueError):
            async with AsyncUnitOfWork(session):
                raise ValueError("bad")
        session.rollback.assert_awaited_once()

    async def test_close(self) -> None:
        session = _async_session()
        uow = AsyncUnitOfWork(session)
        await uow.begin()
        await uow.close()
        session.close.assert_awaited_once()
        assert uow.depth == 0
