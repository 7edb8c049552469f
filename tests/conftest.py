"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path

import pytest
from blog_models import Base, Blog, Comment, Post
from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from repo_query.core.connection import ConnectionConfig


@pytest.fixture
def sqlite_config() -> ConnectionConfig:
    """SQLite in-memory connection config."""
    return ConnectionConfig(driver="sqlite", database=":memory:")


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """File-backed SQLite engine with the blog schema."""
    eng = create_engine(f"sqlite:///{tmp_path / 'blog.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    with session_factory() as s:
        yield s


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed aiosqlite engine with the blog schema."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'blog.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def async_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(
    async_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with async_session_factory() as s:
        yield s


@pytest.fixture
def blog_graph():
    """Helper building a blog with posts and comments.

    Usage:
        blog = blog_graph(1, posts=2, comments=1)
    """

    def _build(blog_id: int, posts: int = 0, comments: int = 0) -> Blog:
        blog = Blog(id=blog_id, name=f"blog-{blog_id}", rating=blog_id)
        for p in range(posts):
            post_id = blog_id * 100 + p
            post = Post(id=post_id, title=f"post-{post_id}")
            for c in range(comments):
                post.comments.append(Comment(id=post_id * 100 + c, text=f"comment-{c}"))
            blog.posts.append(post)
        return blog

    return _build


@pytest.fixture
def open_session(session_factory: sessionmaker[Session]) -> Iterator[Callable[[], Session]]:
    """Opens additional sessions on the same engine, closed at teardown."""
    opened: list[Session] = []

    def _open() -> Session:
        s = session_factory()
        opened.append(s)
        return s

    yield _open
    for s in opened:
        s.close()


@pytest.fixture
async def open_async_session(
    async_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[Callable[[], AsyncSession]]:
    opened: list[AsyncSession] = []

    def _open() -> AsyncSession:
        s = async_session_factory()
        opened.append(s)
        return s

    yield _open
    for s in opened:
        await s.close()
