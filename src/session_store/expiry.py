from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

ONE_DAY = 86400


def current_timestamp() -> int:
    """Wall-clock time in whole seconds, rounded up."""
    return math.ceil(time.time())


def get_expire_time(sess: Optional[Mapping[str, Any]], ttl: Optional[float] = None) -> int:
    """Absolute expiry, in epoch seconds, for a session payload.

    An explicit ``cookie.expires`` wins; otherwise the store ttl (one day when
    unset) is added to the current time.
    """
    expires = _cookie_expires(sess)
    if expires is not None:
        return math.ceil(expires)
    return math.ceil(time.time() + (ttl or ONE_DAY))


def legacy_expire_time(max_age: Optional[float], ttl: Optional[float] = None) -> int:
    """Expiry derived from a cookie max age in milliseconds.

    A store level ttl, when set, takes precedence over the cookie max age.
    """
    seconds = ttl or (max_age / 1000 if isinstance(max_age, (int, float)) else ONE_DAY)
    return math.ceil(seconds + current_timestamp())


def _cookie_expires(sess: Optional[Mapping[str, Any]]) -> Optional[float]:
    if not sess:
        return None
    cookie = sess.get("cookie")
    if not isinstance(cookie, Mapping):
        return None
    value = cookie.get("expires")
    if not value:
        return None
    return _to_epoch(value)


def _to_epoch(value: Any) -> Optional[float]:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _to_epoch(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None
