"""Unit tests for keys and key accessors."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from blog_models import Blog, Tag

from repo_query.core.exceptions import ContractViolationError
from repo_query.core.keys import (
    HasUniqueIdentifier,
    TableKey,
    attribute_key,
    mapped_primary_key,
    require_entity,
    require_key,
    table_key,
)


@dataclass
class Widget:
    id: str
    name: str = ""


@dataclass
class Row:
    partition_key: str
    row_key: str


class TestKeyAccessors:
    def test_attribute_key_default_id(self) -> None:
        assert attribute_key()(Widget("w1")) == "w1"

    def test_attribute_key_named(self) -> None:
        assert attribute_key("name")(Widget("w1", "gear")) == "gear"

    def test_mapped_primary_key_scalar(self) -> None:
        assert mapped_primary_key(Blog)(Blog(id=7, name="x")) == 7

    def test_mapped_primary_key_composite(self) -> None:
        key_of = mapped_primary_key(Tag)
        assert key_of(Tag(scope="blog", name="python")) == ("blog", "python")

    def test_mapped_primary_key_transient_without_id(self) -> None:
        assert mapped_primary_key(Blog)(Blog(name="new")) is None

    def test_mapped_primary_key_rejects_unmapped_class(self) -> None:
        with pytest.raises(ContractViolationError, match="not a mapped class"):
            mapped_primary_key(Widget)

    def test_table_key(self) -> None:
        assert table_key(Row("p", "r")) == TableKey("p", "r")

    def test_has_unique_identifier(self) -> None:
        assert isinstance(Widget("w"), HasUniqueIdentifier)
        assert not isinstance(Row("p", "r"), HasUniqueIdentifier)


class TestRequireKey:
    @pytest.mark.parametrize("key", [None, "", "   ", (), ("a", None)])
    def test_blank_keys_rejected(self, key: object) -> None:
        with pytest.raises(ContractViolationError):
            require_key(key)

    @pytest.mark.parametrize("key", [0, 1, "a", ("a", "b")])
    def test_valid_keys_returned(self, key: object) -> None:
        assert require_key(key) == key

    def test_table_key_blank_partition(self) -> None:
        with pytest.raises(ContractViolationError, match="partition_key"):
            require_key(TableKey("", "r"))

    def test_table_key_blank_row(self) -> None:
        with pytest.raises(ContractViolationError, match="row_key"):
            require_key(TableKey("p", " "))

    def test_require_entity(self) -> None:
        with pytest.raises(ContractViolationError, match="item is required"):
            require_entity(None)
        widget = Widget("w")
        assert require_entity(widget) is widget

    def test_table_key_str(self) -> None:
        assert str(TableKey("p", "r")) == "p/r"
