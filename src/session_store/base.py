from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, TypeVar

StoreT = TypeVar("StoreT", bound=type)


class BaseSessionStore(ABC):
    """Contract a session framework expects from a pluggable store."""

    @abstractmethod
    async def get(self, sid: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, sid: str, sess: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    async def destroy(self, sid: str) -> None:
        ...

    async def touch(self, sid: str, sess: Mapping[str, Any]) -> None:
        return None

    async def close(self) -> None:
        return None


def bind_store(store_cls: StoreT, base: Optional[type] = None) -> StoreT:
    """Derive ``store_cls`` from a framework supplied ``base`` store class.

    The framework resolves its own base class and hands it in; ``store_cls``
    is returned unchanged when there is nothing to bind or it already
    derives from ``base``. The store passes its ``base_options`` keyword
    arguments on to ``base.__init__``.
    """
    if base is None or issubclass(store_cls, base):
        return store_cls
    name = f"{base.__name__}{store_cls.__name__}"
    return type(name, (store_cls, base), {"__module__": store_cls.__module__})
