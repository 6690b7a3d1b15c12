"""Async database engine and session factory."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from sentinel.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create all tables (and their unique indexes)."""
    import sentinel.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


# Rows per upsert statement.
UPSERT_CHUNK_SIZE = 1000


def _dialect_insert(session: AsyncSession, table: Any) -> Any:
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert(table)


async def upsert_rows(
    session: AsyncSession,
    table: Any,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    update_columns: list[str],
    chunk_size: int = UPSERT_CHUNK_SIZE,
) -> None:
    """Multi-row ``INSERT .. ON CONFLICT DO UPDATE`` on a unique index.

    Works on PostgreSQL and SQLite. The conflict columns must be backed by a
    real unique index or primary key. Rows are sent in chunks of
    ``chunk_size`` so no statement exceeds the driver's bind-parameter limit
    (32767 on asyncpg); all chunks run in the caller's transaction.
    """
    for start in range(0, len(rows), chunk_size):
        stmt = _dialect_insert(session, table).values(rows[start : start + chunk_size])
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={col: getattr(stmt.excluded, col) for col in update_columns},
        )
        await session.execute(stmt)
