from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

import asyncpg
from asyncpg.pool import Pool

from utils.logger import get_logger

log = get_logger("[DB]")

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class AsyncDatabase:
    """
    Thin interface over an asyncpg pool.
    Every helper runs in its own transaction.
    """

    def __init__(
            self,
            db_name: str,
            user: str,
            password: str,
            host: str = "localhost",
            port: int = 5432,
            min_size: int = 2,
            max_size: int = 10
    ):
        self.db_name = db_name
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[Pool] = None

    async def connect(self) -> None:
        """
        Creates the connection pool.
        """
        self.pool = await asyncpg.create_pool(
            database=self.db_name,
            user=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            min_size=self.min_size,
            max_size=self.max_size
        )
        log.debug("[DB] Connection pool created [✓]")

    async def ensure_schema(self) -> None:
        """
        Applies schema.sql. Every statement there is idempotent.
        """
        await self.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        log.debug("[DB] Schema is up to date [✓]")

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            log.debug("[DB] Connection pool closed.")

    async def execute(self, query: str, *args: Any) -> str:
        """
        Runs a query without a result set (INSERT, UPDATE, DELETE).
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                return await connection.execute(query, *args)

    async def executemany(self, query: str, args: Iterable[Sequence[Any]]) -> None:
        """
        Runs the same statement for every argument tuple, all or nothing.
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                await connection.executemany(query, args)

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                return await connection.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                return await connection.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                return await connection.fetchval(query, *args, column=column)
