"""Repository layer - backend-independent repository base."""

from __future__ import annotations

from repo_query.repository.base import RepositoryBase

__all__ = [
    "RepositoryBase",
]
