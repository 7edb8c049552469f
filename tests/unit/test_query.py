"""Unit tests for query specifications, composition and sort expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest
from blog_models import Blog
from sqlalchemy import select

from repo_query.core.enums import SortDirection
from repo_query.core.exceptions import ContractViolationError
from repo_query.core.query import (
    InMemoryOperations,
    PagingContext,
    QuerySpec,
    SortField,
    compose,
    order_by,
    order_by_fields,
    parse_sort,
    sort_in_memory,
)


@dataclass
class Item:
    id: int
    name: str


class RecordingOperations:
    """Records the order in which composition steps are applied."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def where(self, query: list[str], predicate: Any) -> list[str]:
        self.calls.append(("where", predicate))
        return [*query, "where"]

    def page(self, query: list[str], skip: int, take: int) -> list[str]:
        self.calls.append(("page", skip, take))
        return [*query, "page"]

    def include(self, query: list[str], path: str) -> list[str]:
        self.calls.append(("include", path))
        return [*query, f"include:{path}"]


def _sort_marker(query: list[str]) -> list[str]:
    return [*query, "sort"]


class TestPagingContext:
    def test_defaults(self) -> None:
        paging = PagingContext()
        assert paging.page_index == 0
        assert paging.page_size == 0
        assert paging.skip == 0

    def test_skip_is_index_times_size(self) -> None:
        paging = PagingContext(page_index=3, page_size=10)
        assert paging.skip == 30
        assert paging.take == 10

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ContractViolationError, match="page_index"):
            PagingContext(page_index=-1, page_size=1)

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ContractViolationError, match="page_size"):
            PagingContext(page_index=0, page_size=-5)


class TestQuerySpec:
    def test_paging_without_sort_rejected(self) -> None:
        spec = QuerySpec(paging=PagingContext(1, 2))
        with pytest.raises(ContractViolationError, match="sort is required"):
            spec.validate()

    def test_zero_size_paging_without_sort_still_rejected(self) -> None:
        spec = QuerySpec(paging=PagingContext(0, 0))
        with pytest.raises(ContractViolationError):
            spec.validate()

    def test_sort_without_paging_is_valid(self) -> None:
        QuerySpec(sort=_sort_marker).validate()

    def test_with_default_sort_keeps_caller_sort(self) -> None:
        spec = QuerySpec(sort=_sort_marker)
        assert spec.with_default_sort(list).sort is _sort_marker

    def test_with_default_sort_fills_missing_sort(self) -> None:
        spec = QuerySpec(paging=PagingContext(0, 1)).with_default_sort(_sort_marker)
        assert spec.sort is _sort_marker
        spec.validate()


class TestCompose:
    def test_order_is_filter_sort_page_includes(self) -> None:
        ops = RecordingOperations()
        spec = QuerySpec(
            filter="pred",
            paging=PagingContext(2, 5),
            sort=_sort_marker,
            includes=("posts", "posts.comments"),
        )
        result = compose([], spec, ops)
        assert result == ["where", "sort", "page", "include:posts", "include:posts.comments"]
        assert ("page", 10, 5) in ops.calls

    def test_zero_page_size_skips_paging(self) -> None:
        ops = RecordingOperations()
        spec = QuerySpec(paging=PagingContext(4, 0), sort=_sort_marker)
        assert compose([], spec, ops) == ["sort"]

    def test_no_filter_no_sort(self) -> None:
        ops = RecordingOperations()
        assert compose([], QuerySpec(), ops) == []
        assert ops.calls == []

    def test_paging_without_sort_rejected(self) -> None:
        with pytest.raises(ContractViolationError):
            compose([], QuerySpec(paging=PagingContext(0, 1)), RecordingOperations())

    def test_in_memory_second_page(self) -> None:
        items = [Item(i, f"n{i}") for i in (5, 3, 1, 4, 2)]
        spec = QuerySpec(paging=PagingContext(1, 2), sort=sort_in_memory("id:asc"))
        result = compose(items, spec, InMemoryOperations())
        assert [item.id for item in result] == [3, 4]

    def test_in_memory_filter(self) -> None:
        items = [Item(i, f"n{i}") for i in range(6)]
        spec = QuerySpec(filter=lambda item: item.id % 2 == 0)
        result = compose(items, spec, InMemoryOperations())
        assert [item.id for item in result] == [0, 2, 4]

    def test_in_memory_page_past_end_is_empty(self) -> None:
        items = [Item(i, "x") for i in range(3)]
        spec = QuerySpec(paging=PagingContext(5, 2), sort=sort_in_memory("id:asc"))
        assert compose(items, spec, InMemoryOperations()) == []


class TestParseSort:
    def test_single_field(self) -> None:
        assert parse_sort("name:asc") == [SortField("name", SortDirection.ASC)]

    def test_multiple_fields_case_insensitive(self) -> None:
        fields = parse_sort("name:ASC, id:Desc")
        assert fields == [
            SortField("name", SortDirection.ASC),
            SortField("id", SortDirection.DESC),
        ]
        assert fields[1].descending

    @pytest.mark.parametrize("sort_by", ["name", "name:asc:desc", "name:asc,id"])
    def test_malformed_pair(self, sort_by: str) -> None:
        with pytest.raises(ContractViolationError, match="incorrectly defined"):
            parse_sort(sort_by)

    def test_blank_property(self) -> None:
        with pytest.raises(ContractViolationError, match="no property"):
            parse_sort(" :asc")

    def test_invalid_order(self) -> None:
        with pytest.raises(ContractViolationError, match="ASC or DESC"):
            parse_sort("name:up")

    def test_blank_expression(self) -> None:
        with pytest.raises(ContractViolationError):
            parse_sort("  ")


class TestSortTransforms:
    def test_sort_in_memory_multiple_fields(self) -> None:
        items = [Item(1, "b"), Item(2, "a"), Item(3, "b"), Item(4, "a")]
        result = sort_in_memory("name:asc,id:desc")(items)
        assert [(i.name, i.id) for i in result] == [("a", 4), ("a", 2), ("b", 3), ("b", 1)]

    def test_sort_in_memory_does_not_mutate_input(self) -> None:
        items = [Item(2, "b"), Item(1, "a")]
        sort_in_memory([SortField("id")])(items)
        assert [i.id for i in items] == [2, 1]

    def test_order_by_fields_renders_order_clause(self) -> None:
        stmt = order_by_fields(Blog, "name:desc,id:asc")(select(Blog))
        sql = str(stmt)
        assert "ORDER BY blogs.name DESC, blogs.id ASC" in sql

    def test_order_by_fields_unknown_attribute(self) -> None:
        with pytest.raises(ContractViolationError, match="no attribute 'missing'"):
            order_by_fields(Blog, "missing:asc")

    def test_order_by_columns(self) -> None:
        stmt = order_by(Blog.rating.desc())(select(Blog))
        assert "ORDER BY blogs.rating DESC" in str(stmt)
