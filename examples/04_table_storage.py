"""
Example 04: Azure Table Storage

This example demonstrates the table repository against the local storage
emulator (Azurite). Start it first, e.g. ``docker run -p 10002:10002
mcr.microsoft.com/azure-storage/azurite azurite-table --tableHost 0.0.0.0``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from repo_query import (
    AlreadyExistsError,
    PagingContext,
    RepoQueryError,
    TableKey,
    TableRepository,
    sort_in_memory,
)

CONNECTION_STRING = "UseDevelopmentStorage=true"


@dataclass
class Customer:
    """Customer entity, partitioned by country"""
    partition_key: str
    row_key: str
    name: str
    visits: int = 0
    etag: Optional[str] = None


def main():
    print("=== Azure Table Storage ===\n")

    try:
        customers = TableRepository.from_connection_string(CONNECTION_STRING, "Customers", Customer)
    except RepoQueryError as e:
        print(f"Storage emulator not reachable: {e}")
        return

    try:
        print("1. Create:")
        for row, name in enumerate(["Ada", "Grace", "Linus"]):
            try:
                customers.create(Customer("uk", str(row), name, visits=row))
            except AlreadyExistsError:
                print(f"   {name} already stored")
        print(f"   Customers: {customers.count()}\n")

        print("2. Client-side filter and sort:")
        frequent = customers.retrieve(
            filter=lambda c: c.visits > 0,
            sort=sort_in_memory("name:asc"),
            paging=PagingContext(page_index=0, page_size=10),
        )
        print(f"   {[c.name for c in frequent]}\n")

        print("3. Update with optimistic concurrency:")
        ada = customers.retrieve_by_key(TableKey("uk", "0"))
        ada.visits += 1
        customers.update(ada)
        print(f"   New etag: {ada.etag}\n")

        for customer in customers.retrieve():
            customers.delete(customer)
    finally:
        customers.close()


if __name__ == "__main__":
    main()
