"""Query specification and composition.

A QuerySpec describes what subset of entities to fetch, in what order and
with which related data, independently of the backend. ``compose`` applies
it to a backend query in a fixed order:

    filter -> sort -> skip/take -> includes

Backends supply the primitive steps through :class:`QueryOperations`.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, TypeVar

from repo_query.core.enums import SortDirection
from repo_query.core.exceptions import ContractViolationError

Q = TypeVar("Q")

SortCondition = Callable[[Any], Any]


@dataclass(frozen=True)
class PagingContext:
    """Zero-based page index and page size. A page size of 0 disables paging."""

    page_index: int = 0
    page_size: int = 0

    def __post_init__(self) -> None:
        if self.page_index < 0:
            raise ContractViolationError("page_index", "page_index must be >= 0")
        if self.page_size < 0:
            raise ContractViolationError("page_size", "page_size must be >= 0")

    @property
    def skip(self) -> int:
        return self.page_index * self.page_size

    @property
    def take(self) -> int:
        return self.page_size


@dataclass(frozen=True)
class QuerySpec:
    """Filter, paging, sort and eager-load paths for a retrieve call."""

    filter: Any = None
    paging: PagingContext | None = None
    sort: SortCondition | None = None
    includes: tuple[str, ...] = field(default_factory=tuple)

    def validate(self) -> None:
        """Paging is only meaningful over a defined order."""
        if self.paging is not None and self.sort is None:
            raise ContractViolationError("sort", "sort is required if paging is provided.")

    def with_default_sort(self, sort: SortCondition) -> QuerySpec:
        if self.sort is not None:
            return self
        return replace(self, sort=sort)


class QueryOperations(Protocol[Q]):
    """Primitive query steps a backend must provide."""

    def where(self, query: Q, predicate: Any) -> Q:
        """Restrict the query to entities matching ``predicate``."""
        ...

    def page(self, query: Q, skip: int, take: int) -> Q:
        """Skip ``skip`` entities, then take at most ``take``."""
        ...

    def include(self, query: Q, path: str) -> Q:
        """Eagerly load the navigation ``path``."""
        ...


def compose(query: Q, spec: QuerySpec, operations: QueryOperations[Q]) -> Q:
    """Apply ``spec`` to ``query``."""
    spec.validate()

    if spec.filter is not None:
        query = operations.where(query, spec.filter)

    if spec.sort is not None:
        query = spec.sort(query)

        if spec.paging is not None and spec.paging.page_size > 0:
            query = operations.page(query, spec.paging.skip, spec.paging.take)

    for path in spec.includes:
        query = operations.include(query, path)

    return query


class InMemoryOperations:
    """QueryOperations over a list of already-fetched entities."""

    def where(self, query: list[Any], predicate: Callable[[Any], bool]) -> list[Any]:
        return [item for item in query if predicate(item)]

    def page(self, query: list[Any], skip: int, take: int) -> list[Any]:
        return list(query[skip : skip + take])

    def include(self, query: list[Any], path: str) -> list[Any]:
        # No navigation properties to load
        return query


# --- Sort expressions ---


@dataclass(frozen=True)
class SortField:
    name: str
    direction: SortDirection = SortDirection.ASC

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC


def parse_sort(sort_by: str) -> list[SortField]:
    """Parse ``"name:asc,created:desc"`` into sort fields."""
    if sort_by is None or not sort_by.strip():
        raise ContractViolationError("sort_by")

    fields: list[SortField] = []
    for item in sort_by.strip().split(","):
        condition = item.strip().split(":")
        if len(condition) != 2:
            raise ContractViolationError(
                "sort_by",
                "Format of sort condition invalid; property/order pair incorrectly defined.",
            )

        name, order = condition[0].strip(), condition[1].strip().lower()
        if not name:
            raise ContractViolationError(
                "sort_by", "Format of sort condition invalid; no property specified."
            )
        if order not in ("asc", "desc"):
            raise ContractViolationError(
                "sort_by", "Format of sort condition invalid; order must be ASC or DESC."
            )
        fields.append(SortField(name, SortDirection(order)))
    return fields


def sort_in_memory(fields: str | Sequence[SortField]) -> SortCondition:
    """Build a sort transform for lists of entities."""
    if isinstance(fields, str):
        fields = parse_sort(fields)
    ordered = list(fields)

    def _sort(items: list[Any]) -> list[Any]:
        result = list(items)
        # Stable sorts applied from the least significant field
        for sort_field in reversed(ordered):
            result.sort(
                key=lambda item, name=sort_field.name: getattr(item, name),
                reverse=sort_field.descending,
            )
        return result

    return _sort


def order_by_fields(entity_type: type, fields: str | Sequence[SortField]) -> SortCondition:
    """Build a sort transform for SQLAlchemy ``Select`` statements."""
    if isinstance(fields, str):
        fields = parse_sort(fields)

    clauses = []
    for sort_field in fields:
        column = getattr(entity_type, sort_field.name, None)
        if column is None:
            raise ContractViolationError(
                "sort_by", f"{entity_type.__name__} has no attribute '{sort_field.name}'"
            )
        clauses.append(column.desc() if sort_field.descending else column.asc())

    def _order(stmt: Any) -> Any:
        return stmt.order_by(*clauses)

    return _order


def order_by(*columns: Any) -> SortCondition:
    """Sort transform for SQLAlchemy statements: ``order_by(Blog.id.desc())``."""

    def _order(stmt: Any) -> Any:
        return stmt.order_by(*columns)

    return _order
