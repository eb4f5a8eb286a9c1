# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""PostgreSQL-backed storage for web session records."""

from .base import BaseSessionStore, bind_store
from .callbacks import CallbackSessionStore
from .config import SessionStoreConfig
from .errors import ConfigurationError, SessionStoreError, StoreClosedError
from .pruner import default_jitter
from .quoting import quote_table
from .store import PGSessionStore

__all__ = [
    "BaseSessionStore",
    "CallbackSessionStore",
    "ConfigurationError",
    "PGSessionStore",
    "SessionStoreConfig",
    "SessionStoreError",
    "StoreClosedError",
    "bind_store",
    "default_jitter",
    "quote_table",
]
