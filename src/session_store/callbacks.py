from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Coroutine, Mapping, Optional, Sequence, Union

from .store import PGSessionStore

Callback = Callable[..., Any]


class CallbackSessionStore:
    """Callback flavoured view of a :class:`PGSessionStore`.

    Each method schedules the matching coroutine on the running loop and
    returns the task. The optional callback receives ``(error)`` on failure,
    ``(None)`` on an empty result and ``(None, result)`` otherwise. I/O
    failures are never raised at the call site.

    Without a running loop nothing is scheduled: the callback receives a
    ``RuntimeError`` and ``None`` is returned. With no callback to report
    to, that error is raised instead.
    """

    def __init__(self, store: PGSessionStore) -> None:
        self._store = store

    @property
    def store(self) -> PGSessionStore:
        return self._store

    def get(self, sid: str, callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        return self._dispatch(self._store.get(sid), callback)

    def set(self, sid: str, sess: Mapping[str, Any], callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        return self._dispatch(self._store.set(sid, sess), callback)

    def destroy(self, sid: str, callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        return self._dispatch(self._store.destroy(sid), callback)

    def touch(self, sid: str, sess: Mapping[str, Any], callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        return self._dispatch(self._store.touch(sid, sess), callback)

    def close(self, callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        return self._dispatch(self._store.close(), callback)

    def prune_sessions(self, callback: Optional[Callback] = None) -> Optional[asyncio.Task[Any]]:
        """Prune once now; without a callback, failures only go to the error log."""
        if callback is None:
            callback = self._log_prune_failure
        return self._dispatch(self._store.prune_sessions(), callback)

    def query(
        self,
        sql: str,
        params: Union[Sequence[Any], Callback, None] = None,
        callback: Optional[Callback] = None,
    ) -> Optional[asyncio.Task[Any]]:
        if callable(params):
            if callback is not None:
                raise TypeError("query() expected a single callback, got two")
            callback, params = params, None
        return self._dispatch(self._store.query(sql, params), callback)

    def _dispatch(self, operation: Coroutine[Any, Any, Any], callback: Optional[Callback]) -> Optional[asyncio.Task[Any]]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            operation.close()
            error = RuntimeError("CallbackSessionStore must be used from a running event loop")
            if callback is None:
                raise error from None
            callback(error)
            return None
        task = loop.create_task(operation)
        if callback is not None:
            task.add_done_callback(partial(_deliver, callback))
        return task

    def _log_prune_failure(self, error: Optional[BaseException] = None, *_: Any) -> None:
        if error is not None:
            self._store.error_log("Failed to prune sessions: %s", error)


def _deliver(callback: Callback, task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        callback(asyncio.CancelledError())
        return
    error = task.exception()
    if error is not None:
        callback(error)
        return
    result = task.result()
    if result is None:
        callback(None)
    else:
        callback(None, result)
