"""
Async engine and unit-of-work sessions.

One session per request (``get_session``) or per job (``get_session_context``):
committed when the block finishes, rolled back when it raises, so a failed
operation never leaves partial writes behind.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()

engine = create_async_engine(settings.database_url, echo=settings.debug, future=True)

async_session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Unit of work for jobs and scripts."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one unit of work per request."""
    async with get_session_context() as session:
        yield session


async def set_tenant_scope(session: AsyncSession, org_id) -> None:
    """Point the row-level security policies at one organization (PostgreSQL only)."""
    if session.bind.dialect.name != "postgresql":
        return
    # is_local=true: the setting ends with the transaction.
    await session.execute(
        text("SELECT set_config('app.current_org_id', :org_id, true)"),
        {"org_id": str(org_id)},
    )
