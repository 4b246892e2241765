# path: tracking_api/db.py
"""Database connection helpers using asyncpg.

The service uses one async connection pool, created from the settings on
startup and closed on shutdown. Stores acquire connections through
`Database.acquire` and wrap their queries in `store_errors` so that backend
failures reach the caller only as `StoreUnavailable`.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from .config import Settings
from .errors import StoreUnavailable

logger = logging.getLogger("tracking_api.db")


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class Database:
    """Manages a connection pool to PostgreSQL using asyncpg."""

    def __init__(self, settings: Settings) -> None:
        self.dsn = settings.dsn
        self.min_size = settings.db_pool_min_size
        self.max_size = max(settings.db_pool_max_size, settings.db_pool_min_size)
        self.command_timeout = settings.db_command_timeout
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the connection pool if it doesn't already exist."""
        if self._pool is None:
            async with store_errors("connect"):
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout,
                    init=_init_connection,
                )
            logger.info("database pool connected (max_size=%d)", self.max_size)

    async def disconnect(self) -> None:
        """Close the pool and release all connections."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("database pool closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection from the pool, connecting lazily if needed."""
        if self._pool is None:
            await self.connect()
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            yield conn


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Translate persistence failures raised inside the block."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        logger.error("store operation %s failed: %s", operation, e)
        raise StoreUnavailable(f"Store unavailable during {operation}") from e
