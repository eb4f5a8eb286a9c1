from __future__ import annotations


class SessionStoreError(Exception):
    """Base class for session store failures raised by this package."""


class ConfigurationError(SessionStoreError, ValueError):
    """Raised at construction when the store options are unusable."""


class StoreClosedError(SessionStoreError):
    """Raised when a store that released its own pool is used again."""
