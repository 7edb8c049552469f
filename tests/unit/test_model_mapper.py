"""Unit tests for ModelMapper."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import pytest
from pydantic import BaseModel

from repo_query.core.exceptions import ColumnMismatchError
from repo_query.mapping.model import ModelMapper
from repo_query.mapping.protocol import Mapper

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class StoredEntity(dict):
    """Dict with service metadata, shaped like the SDK's TableEntity."""

    def __init__(self, *args: Any, metadata: dict[str, Any] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.metadata = metadata or {}


@dataclass
class CustomerDC:
    partition_key: str
    row_key: str
    name: str
    etag: str | None = None


class CustomerPydantic(BaseModel):
    partition_key: str
    row_key: str
    name: str
    age: int = 0
    timestamp: datetime | None = None


class CustomerPlain:
    def __init__(self, partition_key: str, row_key: str, name: str) -> None:
        self.partition_key = partition_key
        self.row_key = row_key
        self.name = name


def _stored(**extra: Any) -> StoredEntity:
    return StoredEntity(
        {"PartitionKey": "uk", "RowKey": "42", "name": "Alice", **extra},
        metadata={"etag": 'W/"1"', "timestamp": STAMP},
    )


class TestModelMapper:
    def test_implements_protocol(self) -> None:
        assert isinstance(ModelMapper(CustomerDC), Mapper)

    def test_map_to_dataclass(self) -> None:
        result = ModelMapper(CustomerDC).map_one(_stored())
        assert isinstance(result, CustomerDC)
        assert result.partition_key == "uk"
        assert result.row_key == "42"
        assert result.etag == 'W/"1"'

    def test_map_to_pydantic_with_coercion(self) -> None:
        result = ModelMapper(CustomerPydantic).map_one(_stored(age="31"))
        assert isinstance(result, CustomerPydantic)
        assert result.age == 31
        assert result.timestamp == STAMP

    def test_map_to_plain_class_drops_unaccepted_metadata(self) -> None:
        result = ModelMapper(CustomerPlain).map_one(_stored())
        assert isinstance(result, CustomerPlain)
        assert result.name == "Alice"

    def test_map_plain_dict_without_metadata(self) -> None:
        result = ModelMapper(CustomerDC).map_one({"PartitionKey": "a", "RowKey": "b", "name": "c"})
        assert result.etag is None

    def test_map_many(self) -> None:
        results = ModelMapper(CustomerDC).map_many([_stored(), _stored()])
        assert len(results) == 2
        assert all(isinstance(r, CustomerDC) for r in results)

    def test_column_mismatch_missing_field(self) -> None:
        with pytest.raises(ColumnMismatchError) as exc:
            ModelMapper(CustomerDC).map_one({"PartitionKey": "a", "RowKey": "b"})
        assert exc.value.target_class == "CustomerDC"

    def test_column_mismatch_unknown_property(self) -> None:
        with pytest.raises(ColumnMismatchError):
            ModelMapper(CustomerPlain).map_one(_stored(unexpected=1))

    def test_pydantic_validation_failure(self) -> None:
        with pytest.raises(ColumnMismatchError):
            ModelMapper(CustomerPydantic).map_one(_stored(age="old"))

    def test_aliases(self) -> None:
        mapper = ModelMapper(CustomerDC, aliases={"full_name": "name"})
        stored = StoredEntity({"PartitionKey": "a", "RowKey": "b", "full_name": "Bob"})
        assert mapper.map_one(stored).name == "Bob"
        assert mapper.to_entity(CustomerDC("a", "b", "Bob")) == {
            "PartitionKey": "a",
            "RowKey": "b",
            "full_name": "Bob",
        }


class TestToEntity:
    def test_dataclass_skips_metadata_and_none(self) -> None:
        entity = ModelMapper(CustomerDC).to_entity(CustomerDC("uk", "42", "Alice", etag="x"))
        assert entity == {"PartitionKey": "uk", "RowKey": "42", "name": "Alice"}

    def test_pydantic(self) -> None:
        model = CustomerPydantic(partition_key="uk", row_key="1", name="A", timestamp=STAMP)
        entity = ModelMapper(CustomerPydantic).to_entity(model)
        assert entity == {"PartitionKey": "uk", "RowKey": "1", "name": "A", "age": 0}

    def test_plain_class(self) -> None:
        entity = ModelMapper(CustomerPlain).to_entity(CustomerPlain("uk", "1", "A"))
        assert entity == {"PartitionKey": "uk", "RowKey": "1", "name": "A"}
