"""
Example 02: Unit of Work

This example demonstrates grouping repository writes into one transaction,
including nested units of work and automatic rollback on errors.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from repo_query import (
    ConnectionConfig,
    MergingRepository,
    UnitOfWork,
    create_session_factory,
)


class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner: Mapped[str] = mapped_column(String(50))
    balance: Mapped[int] = mapped_column(default=0)


def transfer(uow: UnitOfWork, accounts: MergingRepository, source: int, target: int, amount: int):
    # Joins the caller's unit of work if one is active
    with uow:
        debit = accounts.retrieve_by_key(source)
        credit = accounts.retrieve_by_key(target)
        debit.balance -= amount
        credit.balance += amount
        accounts.update(debit)
        accounts.update(credit)
        if debit.balance < 0:
            raise ValueError("insufficient funds")


def main():
    db_path = Path(tempfile.mkdtemp()) / "accounts.db"
    factory = create_session_factory(ConnectionConfig(driver="sqlite", database=str(db_path)))
    Base.metadata.create_all(factory.kw["bind"])

    print("=== Unit of Work ===\n")

    with factory() as session:
        accounts = MergingRepository(session, Account)
        uow = UnitOfWork(session)

        # Example 1: Several creates, one commit
        print("1. Open two accounts in one transaction:")
        with uow:
            accounts.create(Account(id=1, owner="Alice", balance=100))
            accounts.create(Account(id=2, owner="Bob", balance=20))
        print(f"   Accounts: {accounts.count()}\n")

        # Example 2: Nested unit of work commits with the outer one
        print("2. Nested transfer:")
        with uow:
            transfer(uow, accounts, 1, 2, 30)
            print(f"   Depth inside outer unit of work: {uow.depth}")
        print(f"   Balances: {[a.balance for a in accounts.retrieve()]}\n")

        # Example 3: Failure rolls back every write
        print("3. Failed transfer:")
        try:
            transfer(uow, accounts, 2, 1, 500)
        except ValueError as e:
            print(f"   Error occurred: {e}")
        session.expire_all()
        print(f"   Balances unchanged: {[a.balance for a in accounts.retrieve()]}\n")

    factory.kw["bind"].dispose()
    db_path.unlink()


if __name__ == "__main__":
    main()
