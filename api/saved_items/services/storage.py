from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache
import logging

import asyncpg  # type: ignore[import-untyped]

from saved_items.core.config import get_settings
from saved_items.services.errors import StorageModeError, StorageUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StorageContext:
    """A connection handle plus whether it points at the primary database.

    Mutations and every read that follows them in the same request must share
    a writable context; replicas may lag behind a write.
    """

    conn: asyncpg.Connection
    writable: bool = False

    def require_writable(self) -> None:
        if not self.writable:
            raise StorageModeError("mutation attempted through a read-only storage context")


class Database:
    def __init__(
        self,
        primary_url: str | None,
        replica_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout: float,
    ) -> None:
        self.primary_url = primary_url
        self.replica_url = replica_url or primary_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self._primary_pool: asyncpg.Pool | None = None
        self._replica_pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        replica_is_primary = self._replica_pool is self._primary_pool
        if self._primary_pool is not None:
            await self._primary_pool.close()
            self._primary_pool = None
        if self._replica_pool is not None and not replica_is_primary:
            await self._replica_pool.close()
        self._replica_pool = None

    async def connect(self, *, writable: bool) -> None:
        """Create the pool a request will need, surfacing configuration errors early."""
        if writable:
            await self._get_primary_pool()
        else:
            await self._get_replica_pool()

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[StorageContext]:
        pool = await self._get_replica_pool()
        async with pool.acquire() as conn:
            yield StorageContext(conn=conn, writable=False)

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[StorageContext]:
        pool = await self._get_primary_pool()
        async with pool.acquire() as conn:
            yield StorageContext(conn=conn, writable=True)

    async def _get_primary_pool(self) -> asyncpg.Pool:
        if self._primary_pool is None:
            self._primary_pool = await self._create_pool(self.primary_url)
        return self._primary_pool

    async def _get_replica_pool(self) -> asyncpg.Pool:
        if self._replica_pool is not None:
            return self._replica_pool
        if self.replica_url == self.primary_url:
            self._replica_pool = await self._get_primary_pool()
        else:
            self._replica_pool = await self._create_pool(self.replica_url)
        return self._replica_pool

    async def _create_pool(self, dsn: str | None) -> asyncpg.Pool:
        if not dsn:
            raise StorageUnavailableError("SI_DATABASE_URL is required")
        try:
            pool = await asyncpg.create_pool(
                dsn=dsn,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout,
            )
        except Exception as exc:  # pragma: no cover - depends on environment
            raise StorageUnavailableError("database unavailable") from exc
        logger.info("database pool created min_size=%s max_size=%s", self.min_pool_size, self.max_pool_size)
        return pool


@lru_cache
def get_database() -> Database:
    settings = get_settings()
    return Database(
        primary_url=settings.database_url,
        replica_url=settings.database_replica_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout=settings.database_command_timeout_seconds,
    )
