from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from psycopg.conninfo import make_conninfo
from psycopg_pool import AsyncConnectionPool

from src.config.loader import get_str_env

from .config import SessionStoreConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class OwnedPool:
    """A pool created from connection details; the store closes it."""

    pool: AsyncConnectionPool


@dataclass(slots=True, frozen=True)
class BorrowedPool:
    """A caller supplied pool; the store never closes it."""

    pool: Any


@dataclass(slots=True, frozen=True)
class BorrowedQueryClient:
    """A caller supplied client exposing an awaitable ``any(sql, params)``."""

    client: Any


Backend = Union[OwnedPool, BorrowedPool, BorrowedQueryClient]


def resolve_backend(config: SessionStoreConfig) -> Backend:
    """Pick the backing resource once, in precedence order pool, client, owned pool."""
    if config.pool is not None:
        return BorrowedPool(config.pool)

    if config.query_client is not None:
        if not callable(getattr(config.query_client, "any", None)):
            raise ConfigurationError(
                "query_client must be a configured client exposing an awaitable any(sql, params) method"
            )
        return BorrowedQueryClient(config.query_client)

    if config.con_object:
        conninfo = make_conninfo(**{key: value for key, value in config.con_object.items() if value is not None})
    else:
        conninfo = config.con_string or get_str_env("DATABASE_URL")
    if not conninfo:
        raise ConfigurationError("No database connection details provided to the session store")

    logger.debug("Creating owned session store pool")
    pool = AsyncConnectionPool(conninfo, open=False)
    return OwnedPool(pool)
