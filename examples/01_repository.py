"""
Example 01: Relational Repository

This example demonstrates create, query, paging and eager loading with the
stateful SQLAlchemy repository.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from repo_query import (
    AlreadyExistsError,
    ConnectionConfig,
    PagingContext,
    StatefulRepository,
    create_session_factory,
    order_by_fields,
)


class Base(DeclarativeBase):
    pass


class Blog(Base):
    __tablename__ = "blogs"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    rating: Mapped[int] = mapped_column(default=0)
    posts: Mapped[list[Post]] = relationship(back_populates="blog", order_by="Post.id")


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(100))
    blog_id: Mapped[int] = mapped_column(ForeignKey("blogs.id"))
    blog: Mapped[Blog] = relationship(back_populates="posts")


def main():
    db_path = Path(tempfile.mkdtemp()) / "blogs.db"
    config = ConnectionConfig(driver="sqlite", database=str(db_path))
    factory = create_session_factory(config)
    Base.metadata.create_all(factory.kw["bind"])

    print("=== Relational Repository ===\n")

    with factory() as session:
        blogs = StatefulRepository(session, Blog)

        # Example 1: Create
        print("1. Create:")
        for i in range(1, 6):
            blog = Blog(id=i, name=f"Blog {i}", rating=i)
            blog.posts = [Post(id=i * 10 + p, title=f"Post {p}") for p in range(2)]
            blogs.create(blog)
        print(f"   Blogs: {blogs.count()}\n")

        # Example 2: Duplicate keys are reported, not upserted
        print("2. Duplicate create:")
        try:
            blogs.create(Blog(id=1, name="Again"))
        except AlreadyExistsError as e:
            print(f"   {e}\n")

        # Example 3: Filter, sort and page
        print("3. Second page of well-rated blogs, best first:")
        page = blogs.retrieve(
            filter=Blog.rating >= 2,
            sort=order_by_fields(Blog, "rating:desc"),
            paging=PagingContext(page_index=1, page_size=2),
        )
        for blog in page:
            print(f"   {blog.name} (rating {blog.rating})")
        print()

    # Example 4: Eager loading survives the session
    print("4. Eager loading:")
    with factory() as session:
        blog = StatefulRepository(session, Blog).retrieve_by_key(3, includes=[Blog.posts])
    print(f"   {blog.name}: {[post.title for post in blog.posts]}\n")

    factory.kw["bind"].dispose()
    db_path.unlink()


if __name__ == "__main__":
    main()
