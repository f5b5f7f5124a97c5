"""
asyncpg pool executor.

The adapter owns a private event loop and blocks the caller until every
coroutine it starts has finished, so the timing engine always measures fully
awaited work. execute_all() fans out over the pool with asyncio.gather().
"""

import asyncio
from typing import Any, List, Optional, Sequence

import asyncpg

from querybench.config import ConnectionConfig
from querybench.executors.base import ExecutorAdapter, PreparedHandle, RowSet


class AsyncRawExecutor(ExecutorAdapter):
    """Execute raw SQL concurrently through an asyncpg connection pool."""

    strategy = "raw-async"
    supports_prepared = True

    def __init__(
        self,
        pool: asyncpg.Pool,
        loop: asyncio.AbstractEventLoop,
        instance: Any = None,
        owns_loop: bool = False,
    ):
        """
        Initialize asyncpg executor.

        Args:
            pool: asyncpg pool created on loop
            loop: Event loop the pool is bound to
            instance: BackendInstance the pool points at
            owns_loop: Close the loop on close()
        """
        super().__init__(instance)
        self.pool = pool
        self._loop = loop
        self._owns_loop = owns_loop
        # Prepared statements live on one connection held for the adapter lifetime
        self._statement_conn: Optional[asyncpg.Connection] = None

    @classmethod
    def connect(
        cls,
        config: ConnectionConfig,
        instance: Any = None,
        pool_size: int = 10,
    ) -> "AsyncRawExecutor":
        """Create an event loop and connection pool for this strategy."""
        loop = asyncio.new_event_loop()
        try:
            pool = loop.run_until_complete(
                asyncpg.create_pool(
                    host=config.host,
                    port=config.port,
                    user=config.username,
                    password=config.password,
                    database=config.database,
                    timeout=config.connection_timeout,
                    min_size=1,
                    max_size=pool_size,
                )
            )
        except BaseException:
            loop.close()
            raise
        return cls(pool, loop, instance, owns_loop=True)

    def _run(self, coro):
        return self._loop.run_until_complete(coro)

    def _execute(self, query: str, params: Any) -> RowSet:
        return self._run(self.pool.fetch(query, *(params or ())))

    def _prepare(self, name: str, query: str) -> Any:
        if self._statement_conn is None:
            self._statement_conn = self._run(self.pool.acquire())
        return self._run(self._statement_conn.prepare(query, name=name))

    def _execute_prepared(self, handle: PreparedHandle, params: Any) -> RowSet:
        return self._run(handle.statement.fetch(*(params or ())))

    def _execute_all(
        self,
        query: str,
        param_sets: Sequence[Any],
        handle: Optional[PreparedHandle],
    ) -> List[RowSet]:
        if handle is not None:
            # One connection cannot run statements concurrently
            return super()._execute_all(query, param_sets, handle)

        async def gather() -> List[RowSet]:
            return await asyncio.gather(
                *(self.pool.fetch(query, *(params or ())) for params in param_sets)
            )

        return self._run(gather())

    def _close(self) -> None:
        try:
            if self._statement_conn is not None:
                self._run(self.pool.release(self._statement_conn))
                self._statement_conn = None
            self._run(self.pool.close())
        finally:
            if self._owns_loop:
                self._loop.close()
