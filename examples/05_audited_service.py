"""
Example 05: Audited Object Service

This example demonstrates wrapping a repository in an object service and an
audit decorator that logs every successful operation.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from repo_query import (
    AuditedObjectService,
    ConnectionConfig,
    MergingRepository,
    ObjectService,
    create_session_factory,
)
from repo_query.services import LoggingAuditSink


class Base(DeclarativeBase):
    pass


class Note(Base):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(primary_key=True)
    text: Mapped[str] = mapped_column(String(200))


def main():
    logging.basicConfig(level=logging.INFO, format="   %(name)s: %(message)s")

    db_path = Path(tempfile.mkdtemp()) / "notes.db"
    factory = create_session_factory(ConnectionConfig(driver="sqlite", database=str(db_path)))
    Base.metadata.create_all(factory.kw["bind"])

    print("=== Audited Object Service ===\n")

    with factory() as session:
        repository = MergingRepository(session, Note)
        notes = AuditedObjectService(
            ObjectService(repository),
            repository,
            LoggingAuditSink(),
            user_context=lambda: "alice",
        )

        notes.create(Note(id=1, text="first draft"))
        notes.update(Note(id=1, text="final"))
        notes.retrieve()
        notes.delete(notes.retrieve_by_key(1))

    factory.kw["bind"].dispose()
    db_path.unlink()


if __name__ == "__main__":
    main()
