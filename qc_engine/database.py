import json
import logging
from decimal import Decimal
from datetime import datetime, date
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from qc_engine.config import settings

logger = logging.getLogger(__name__)


# Custom JSON encoder that handles Decimal, datetime, UUID, etc.
class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime, UUID and other types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj):
    """Custom JSON dumps function for JSON columns."""
    return json.dumps(obj, cls=CustomJSONEncoder)


def normalize_database_url(url: str) -> str:
    """Route PostgreSQL URLs through the async psycopg driver."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://")
    return url


def build_engine(url: str, echo: bool = False):
    """Create an async engine with pool settings appropriate for the backend."""
    # SQLite doesn't support pool settings
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            json_serializer=custom_json_dumps,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        normalize_database_url(url),
        echo=echo,
        json_serializer=custom_json_dumps,
        pool_pre_ping=True,  # Check connection health before use
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from qc_engine import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")
