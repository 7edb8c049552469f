"""Unit of work.

A reentrant transaction coordinator bound to one SQLAlchemy session. Only
the outermost ``begin()`` opens a physical transaction, and only the
``commit()`` or ``rollback()`` that returns the depth to zero ends it.

While a unit of work is active, repositories sharing the session flush
their changes but leave the physical commit to the unit of work.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from repo_query.core.exceptions import TransactionStateError

logger = logging.getLogger(__name__)

_SESSION_KEY = "repo_query.unit_of_work"


class _UowState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


def unit_of_work_active(session: Any) -> bool:
    """True if a unit of work has an open transaction on ``session``."""
    return bool(session.info.get(_SESSION_KEY))


class UnitOfWork:
    """Synchronous unit of work over a ``Session``."""

    def __init__(self, session: Any) -> None:
        self._session = session
        self._depth = 0

    @property
    def session(self) -> Any:
        return self._session

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def state(self) -> _UowState:
        return _UowState.ACTIVE if self._depth > 0 else _UowState.IDLE

    @property
    def is_active(self) -> bool:
        return self._depth > 0

    def begin(self) -> None:
        """Enter the unit of work, opening a transaction at the outermost level."""
        if self._depth == 0:
            if not self._session.in_transaction():
                self._session.begin()
            self._session.info[_SESSION_KEY] = True
            logger.debug("Unit of work began physical transaction")
        self._depth += 1

    def commit(self) -> None:
        """Leave one level, committing when the outermost level is left."""
        self._leave("commit")
        if self._depth == 0:
            try:
                self._session.commit()
            finally:
                self._session.info.pop(_SESSION_KEY, None)
            logger.debug("Unit of work committed physical transaction")

    def rollback(self) -> None:
        """Leave one level, rolling back when the outermost level is left."""
        self._leave("rollback")
        if self._depth == 0:
            try:
                self._session.rollback()
            finally:
                self._session.info.pop(_SESSION_KEY, None)
            logger.debug("Unit of work rolled back physical transaction")

    def close(self) -> None:
        """Release the bound session regardless of depth."""
        self._depth = 0
        self._session.info.pop(_SESSION_KEY, None)
        self._session.close()

    def _leave(self, action: str) -> None:
        if self._depth == 0:
            raise TransactionStateError(_UowState.IDLE.value, action)
        self._depth -= 1

    def __enter__(self) -> UnitOfWork:
        self.begin()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()


class AsyncUnitOfWork:
    """Asynchronous unit of work over an ``AsyncSession``."""

    def __init__(self, session: Any) -> None:
        self._session = session
        self._depth = 0

    @property
    def session(self) -> Any:
        return self._session

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def state(self) -> _UowState:
        return _UowState.ACTIVE if self._depth > 0 else _UowState.IDLE

    @property
    def is_active(self) -> bool:
        return self._depth > 0

    async def begin(self) -> None:
        """Enter the unit of work, opening a transaction at the outermost level."""
        if self._depth == 0:
            if not self._session.in_transaction():
                await self._session.begin()
            self._session.info[_SESSION_KEY] = True
            logger.debug("Unit of work began physical transaction")
        self._depth += 1

    async def commit(self) -> None:
        """Leave one level, committing when the outermost level is left."""
        self._leave("commit")
        if self._depth == 0:
            try:
                await self._session.commit()
            finally:
                self._session.info.pop(_SESSION_KEY, None)
            logger.debug("Unit of work committed physical transaction")

    async def rollback(self) -> None:
        """Leave one level, rolling back when the outermost level is left."""
        self._leave("rollback")
        if self._depth == 0:
            try:
                await self._session.rollback()
            finally:
                self._session.info.pop(_SESSION_KEY, None)
            logger.debug("Unit of work rolled back physical transaction")

    async def close(self) -> None:
        """Release the bound session regardless of depth."""
        self._depth = 0
        self._session.info.pop(_SESSION_KEY, None)
        await self._session.close()

    def _leave(self, action: str) -> None:
        if self._depth == 0:
            raise TransactionStateError(_UowState.IDLE.value, action)
        self._depth -= 1

    async def __aenter__(self) -> AsyncUnitOfWork:
        await self.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
