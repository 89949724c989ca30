"""
LectureAI Backend - Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   create_app() builds one engine and session factory from its Settings
       and keeps them on app.state; `get_db_session` opens a session per
       request from there, committing on success and rolling back on error.
Who:   The webhook route (via Depends), /health and Alembic (Base only).

In production DATABASE_URL points at the Supabase Postgres instance
(postgresql+asyncpg://...). Tests point it at SQLite through aiosqlite.
"""

from typing import Any, AsyncGenerator, Dict

from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from lectureai.config import Settings


def build_engine(cfg: Settings) -> AsyncEngine:
    """
    Create the async engine for cfg.database_url.

    Pool sizing only applies to server databases; SQLite gets the
    dialect's default pool.
    """
    kwargs: Dict[str, Any] = {"echo": cfg.log_level == "DEBUG"}
    if make_url(cfg.database_url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=cfg.db_pool_size,
            max_overflow=cfg.db_max_overflow,
            pool_pre_ping=cfg.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(cfg.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: attributes stay readable after commit
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from app.state.session_factory
        2. Yields it to the route handler
        3. On success: commits anything still pending
        4. On error: rolls back and re-raises for the global handlers
        5. Always: closes the session

    The commit here may run after the response has gone out, so code that
    must report a failed write (the webhook) commits explicitly first.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
