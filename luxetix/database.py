import json
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from luxetix.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _json_default(value):
    # Rupiah has no minor unit; whole amounts are stored as integers
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def dumps_payment_data(obj) -> str:
    """Serializer for the JSON columns holding gateway instructions."""
    return json.dumps(obj, default=_json_default)


def normalize_database_url(url: str) -> str:
    """Point PostgreSQL URLs (Supabase hands out plain postgresql://) at psycopg 3."""
    for prefix in ("postgresql+asyncpg://", "postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def build_engine(url: str, **overrides) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    SQLite (local runs and tests) gets no pool tuning. PostgreSQL goes through
    the Supabase transaction pooler, which cannot hold prepared statements.
    """
    url = normalize_database_url(url)
    options = {"echo": settings.DEBUG, "json_serializer": dumps_payment_data}

    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            connect_args={"prepare_threshold": None, "connect_timeout": 30},
        )

    options.update(overrides)
    return create_async_engine(url, **options)


is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = build_engine(settings.DATABASE_URL)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    Services commit their own units of work (order + reservation, payment
    intent, reconciliation); anything left uncommitted when a request fails
    is rolled back here.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session():
    """Session for scheduler jobs, outside any request."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Only used for SQLite; PostgreSQL is migrated with Alembic."""
    from luxetix import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")
