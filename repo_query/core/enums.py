"""Backend enumerations."""

from __future__ import annotations

from enum import Enum


class DatabaseBackend(Enum):
    """Supported relational backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ORACLE = "oracle"


class SortDirection(Enum):
    """Sort direction for parsed sort expressions."""

    ASC = "asc"
    DESC = "desc"
