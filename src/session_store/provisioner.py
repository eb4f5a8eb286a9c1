from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .quoting import escape_identifier

logger = logging.getLogger(__name__)

_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS "session" (
    "sid" varchar NOT NULL COLLATE "default" PRIMARY KEY,
    "sess" json NOT NULL,
    "expire" timestamp(6) NOT NULL
);
CREATE INDEX IF NOT EXISTS "IDX_session_expire" ON "session" ("expire");
"""

_EXISTS_QUERY = "SELECT to_regclass(%s::text) AS to_regclass"


def table_definition(quoted_table: str, table_name: str) -> str:
    """Render the session table DDL for ``quoted_table``."""
    index_name = escape_identifier(f"IDX_{table_name}_expire")
    return _TABLE_DDL.replace('"IDX_session_expire"', index_name).replace('"session"', quoted_table)


class TableProvisioner:
    """Creates the session table on first use when enabled.

    Concurrent callers share a single in-flight attempt. A failed attempt is
    forgotten so the next query retries, unless ``cache_failure`` is set, in
    which case every later call re-raises the original error.
    """

    def __init__(
        self,
        execute: Callable[..., Awaitable[Any]],
        quoted_table: str,
        table_name: str,
        *,
        enabled: bool = False,
        cache_failure: bool = False,
    ) -> None:
        self._execute = execute
        self._quoted_table = quoted_table
        self._table_name = table_name
        self._enabled = enabled
        self._cache_failure = cache_failure
        self._attempt: Optional[asyncio.Future[None]] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def ensure_table(self) -> None:
        if not self._enabled:
            return
        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._provision())
            if not self._cache_failure:
                self._attempt.add_done_callback(self._forget_failed_attempt)
        await asyncio.shield(self._attempt)

    async def _provision(self) -> None:
        row = await self._execute(_EXISTS_QUERY, (self._quoted_table,), internal=True)
        if row is None or row.get("to_regclass") is not None:
            logger.debug("Session table %s already exists", self._quoted_table)
            return
        await self._execute(table_definition(self._quoted_table, self._table_name), None, internal=True)
        logger.info("Created session table %s", self._quoted_table)

    def _forget_failed_attempt(self, attempt: asyncio.Future[None]) -> None:
        if attempt is not self._attempt:
            return
        if attempt.cancelled() or attempt.exception() is not None:
            self._attempt = None
