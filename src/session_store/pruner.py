from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


def default_jitter(delay: float) -> float:
    """Spread ``delay`` uniformly over ``[0.5 * delay, 1.5 * delay]``."""
    return delay / 2 + delay * random.random()


class PruneScheduler:
    """Self re-arming timer that deletes expired sessions.

    Holds at most one pending timer. The timer is a plain event loop callback,
    so a pending prune never keeps the loop (or the process) alive.
    """

    def __init__(
        self,
        prune: Callable[[], Awaitable[Any]],
        interval: Union[float, bool],
        *,
        jitter: Union[Callable[[float], float], bool, None] = None,
        error_log: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._prune = prune
        self._interval = interval if interval is not False else None
        if jitter is None:
            jitter = default_jitter
        self._jitter = jitter if callable(jitter) else None
        self._error_log = error_log or logger.error
        self._timer: Optional[asyncio.TimerHandle] = None
        self._running: Optional[asyncio.Task[None]] = None
        self._stopped = False

    @property
    def enabled(self) -> bool:
        return self._interval is not None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def next_delay(self) -> float:
        if self._interval is None:
            raise RuntimeError("Automatic pruning is disabled")
        if self._jitter is None:
            return self._interval
        return self._jitter(self._interval)

    def ensure_armed(self) -> None:
        """Arm the timer unless it is pending, running, disabled or stopped."""
        if self._interval is None or self._stopped:
            return
        if self._timer is not None or self._running is not None:
            return
        self._arm()

    def stop(self) -> None:
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self) -> None:
        try:
            delay = float(self.next_delay())
        except Exception as exc:  # noqa: BLE001 - a broken jitter falls back to the fixed interval
            self._error_log("Failed to compute session prune delay: %s", exc)
            delay = self._interval
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire)
        logger.debug("Next session prune in %.1fs", delay)

    def _fire(self) -> None:
        self._timer = None
        if self._stopped:
            return
        self._running = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._prune()
        except Exception as exc:  # noqa: BLE001 - a failed prune must not end the loop
            self._error_log("Failed to prune sessions: %s", exc)
        finally:
            self._running = None
            if not self._stopped and self._interval is not None:
                self._arm()
