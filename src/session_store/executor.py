from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Awaitable, Callable, Optional

from psycopg.rows import dict_row

from .backends import Backend, BorrowedQueryClient, OwnedPool
from .errors import StoreClosedError

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


class QueryExecutor:
    """Runs one statement at a time against the store's backing resource.

    Every call resolves to the first result row, or ``None`` when the
    statement produced no rows. Client errors propagate unchanged.
    """

    def __init__(self, backend: Backend) -> None:
        self._backend = backend
        self._open_lock = asyncio.Lock()
        self._opened = False
        self._closed = False
        self.before_query: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def owns_resource(self) -> bool:
        return isinstance(self._backend, OwnedPool)

    async def execute(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        *,
        internal: bool = False,
    ) -> Optional[Row]:
        """Run ``sql``; ``internal`` statements skip the table provisioning gate."""
        if not internal and self.before_query is not None:
            await self.before_query()

        if isinstance(self._backend, BorrowedQueryClient):
            result = await self._backend.client.any(sql, list(params or ()))
        else:
            result = await self._run_on_pool(sql, params)
        return first_row(result)

    async def close(self) -> None:
        """Release the pool when this executor created it."""
        self._closed = True
        if isinstance(self._backend, OwnedPool) and self._opened:
            await self._backend.pool.close()
            logger.info("Closed owned session store pool")

    async def _run_on_pool(self, sql: str, params: Optional[Sequence[Any]]) -> Any:
        pool = self._backend.pool
        if isinstance(self._backend, OwnedPool):
            await self._ensure_open()

        async with pool.connection() as connection:
            async with connection.cursor(row_factory=dict_row) as cursor:
                await cursor.execute(sql, tuple(params) if params else None)
                if cursor.description is None:
                    return []
                return await cursor.fetchall()

    async def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Session store has been closed")
        if self._opened:
            return
        async with self._open_lock:
            if not self._opened:
                await self._backend.pool.open()
                self._opened = True
                logger.info("Opened owned session store pool")


def first_row(result: Any) -> Optional[Row]:
    """Normalise a row list, or anything carrying ``rows``, to its first row."""
    if result is None:
        return None
    if isinstance(result, Mapping):
        rows = result.get("rows")
    elif isinstance(result, Sequence) and not isinstance(result, (str, bytes)):
        rows = result
    else:
        rows = getattr(result, "rows", None)
    if not rows:
        return None
    return rows[0]
