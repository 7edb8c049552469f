"""Mapping layer - transform stored table entities into typed objects."""

from __future__ import annotations

from repo_query.mapping.model import ModelMapper
from repo_query.mapping.protocol import Mapper

__all__ = [
    "ModelMapper",
    "Mapper",
]
