"""Service layer - object services and audit decorators."""

from __future__ import annotations

from repo_query.services.audit import (
    AsyncAuditedObjectService,
    AsyncAuditSink,
    AuditedObjectService,
    AuditEvent,
    AuditSink,
    LoggingAuditSink,
)
from repo_query.services.object_service import AsyncObjectService, ObjectService

__all__ = [
    "ObjectService",
    "AsyncObjectService",
    "AuditedObjectService",
    "AsyncAuditedObjectService",
    "AuditEvent",
    "AuditSink",
    "AsyncAuditSink",
    "LoggingAuditSink",
]
