"""Async engine and per-request sessions for the demolition request store.

Services flush; the route that owns the session commits. Anything that
escapes a route without a commit is rolled back here.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from demolition_supervision.app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for requests, settlements, reports and history."""
    pass


settings = get_settings()


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def engine_options(url: str) -> dict:
    """Keyword arguments for ``create_async_engine`` for the given backend."""
    if is_sqlite(url):
        # Writers queue on the file lock instead of failing after 5s
        return {
            "echo": False,
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }
    return {"echo": False, "pool_size": 5, "max_overflow": 10}


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: one session per HTTP request."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Create the tables if missing. Schema changes beyond that need a migration."""
    import demolition_supervision.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if is_sqlite(settings.database_url):
        # Status reads stay available while a transition holds the write lock
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))
