"""
asyncpg connection pool backing PostgresTableSource.

The pool is created lazily on the first dataset fetch (or eagerly from the
application lifespan when DATABASE_URL is set) and shared by every request.
Evaluations that only use in-memory datasets never open it.

Pool sizing and the per-statement timeout come from Settings
(``db_pool_min_size``, ``db_pool_max_size``, ``db_command_timeout``).

Usage:
    rows = await fetch_rows('SELECT * FROM "budgets" WHERE "entityId" = $1', 'SA')
    ...
    await close_db()
"""

import asyncio
import logging
from typing import Any, List, Optional

import asyncpg
from asyncpg import Pool

from measure_engine.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


# None until the first init_db()
_pool: Optional[Pool] = None

# Serializes pool creation between concurrent first fetches
_pool_lock = asyncio.Lock()


async def init_db(settings: Optional[Settings] = None) -> Pool:
    """
    Create the shared pool if it does not exist yet.

    Raises:
        RuntimeError: DATABASE_URL is not configured.
        asyncpg.PostgresError / OSError: The database cannot be reached.
    """
    global _pool

    async with _pool_lock:
        if _pool is not None:
            return _pool

        settings = settings or get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is not configured")

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
        logger.info(
            f"Opened database pool (min={settings.db_pool_min_size}, max={settings.db_pool_max_size})"
        )
        return _pool


async def get_db_pool() -> Pool:
    """Return the shared pool, creating it on first use."""
    if _pool is None:
        return await init_db()
    return _pool


async def close_db() -> None:
    """Close the shared pool; a no-op when it was never opened."""
    global _pool

    async with _pool_lock:
        if _pool is None:
            return
        pool, _pool = _pool, None
    await pool.close()
    logger.info("Closed database pool")


async def fetch_rows(query: str, *args: Any) -> List[asyncpg.Record]:
    """Run one parameterized SELECT on a pooled connection."""
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.fetch(query, *args)
