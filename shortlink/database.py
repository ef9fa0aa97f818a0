"""Async SQLAlchemy engine and session factory construction.

Flow Diagram — Engine Lifecycle
===============================
::
    ┌──────────────┐
    │ build_engine │  (ServiceManager.initialize)
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ init_db()    │  create_all on startup
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ session per  │  one short session per store operation
    │ operation    │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ close_db()   │  dispose on shutdown
    └──────────────┘

How to Use
===========
::
    engine = build_engine(settings)
    sessions = build_session_factory(engine)
    await init_db(engine)
    ...
    await close_db(engine)

Key Behaviours
===============
- Engines are built explicitly and owned by the ServiceManager; nothing is
  created at import time.
- Pool sizing only applies to server databases; SQLite gets the driver's
  default pool.
- Sessions never expire attributes on commit so records can be read after
  the transaction closes.

Functions:
    build_engine():  Creates the async engine for DATABASE_URL.
    build_session_factory():  Creates the async_sessionmaker.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import Settings

__all__ = ["Base", "build_engine", "build_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings, url: str | None = None) -> AsyncEngine:
    database_url = url or settings.DATABASE_URL
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Register the mapped tables on Base.metadata before create_all.
    import shortlink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
