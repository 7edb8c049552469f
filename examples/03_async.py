"""
Example 03: Async Repositories

This example demonstrates the asynchronous repository and unit of work over
aiosqlite.
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from repo_query import (
    AsyncStatefulRepository,
    AsyncUnitOfWork,
    ConnectionConfig,
    NotFoundError,
    create_async_session_factory,
    order_by,
)


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    price: Mapped[int] = mapped_column(default=0)


async def main():
    db_path = Path(tempfile.mkdtemp()) / "products.db"
    factory = create_async_session_factory(
        ConnectionConfig(driver="sqlite", database=str(db_path))
    )
    engine = factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    print("=== Async Repositories ===\n")

    async with factory() as session:
        products = AsyncStatefulRepository(session, Product)

        print("1. Create in a unit of work:")
        async with AsyncUnitOfWork(session):
            for i, name in enumerate(["Widget", "Gadget", "Gizmo"], start=1):
                await products.create(Product(id=i, name=name, price=i * 10))
        print(f"   Products: {await products.count()}\n")

        print("2. Query:")
        for product in await products.retrieve(filter=Product.price > 10, sort=order_by(Product.name)):
            print(f"   {product.name}: {product.price}")
        print()

        print("3. Update of a missing product:")
        try:
            await products.update(Product(id=99, name="Ghost"))
        except NotFoundError as e:
            print(f"   {e}\n")

    await engine.dispose()
    db_path.unlink()


if __name__ == "__main__":
    asyncio.run(main())
