from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI

from .config import SessionStoreConfig
from .store import PGSessionStore

logger = logging.getLogger(__name__)

_SESSION_STORE: Optional[PGSessionStore] = None


def initialise_session_store() -> PGSessionStore:
    """Create session store instance using configuration."""
    global _SESSION_STORE
    if _SESSION_STORE is not None:
        return _SESSION_STORE

    store = PGSessionStore(SessionStoreConfig.from_env())
    _SESSION_STORE = store
    logger.info("Initialised session store for table %s", store.quoted_table)
    return store


def set_session_store(store: Optional[PGSessionStore]) -> None:
    global _SESSION_STORE
    _SESSION_STORE = store


def get_session_store(_: PGSessionStore = Depends(initialise_session_store)) -> PGSessionStore:
    if _SESSION_STORE is None:
        raise RuntimeError("Session store has not been initialised")
    return _SESSION_STORE


@asynccontextmanager
async def session_store_lifespan(_: FastAPI) -> AsyncIterator[None]:
    """FastAPI lifespan that closes the session store on shutdown."""
    store = initialise_session_store()
    try:
        yield
    finally:
        await store.close()
        set_session_store(None)
