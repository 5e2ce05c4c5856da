from __future__ import annotations

import logging
import time
from typing import Callable

from securestore.base import KeyValueStore

from . import keys


logger = logging.getLogger(__name__)

DEFAULT_IDLE_LIMIT_MS = 10 * 60 * 1000  # 10 minutes


def now_ms(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)


def clear_auth_data(store: KeyValueStore) -> None:
    """Remove the top-level auth items. Best effort: stops at the first failure.

    Chunk artifacts of `login_detail` and the permission lists are not touched;
    `SessionCache.clear()` handles those.
    """
    try:
        for key in keys.AUTH_KEYS:
            store.delete(key)
    except Exception:
        logger.exception("Error clearing auth data")


def touch_last_active(store: KeyValueStore, *, clock: Callable[[], float] = time.time) -> None:
    try:
        store.set(keys.LAST_ACTIVE_AT, str(now_ms(clock)))
    except Exception:
        logger.exception("Error updating last active")


def check_idle_timeout(
    store: KeyValueStore,
    *,
    idle_limit_ms: int = DEFAULT_IDLE_LIMIT_MS,
    clock: Callable[[], float] = time.time,
) -> bool:
    """Expire the stored session after `idle_limit_ms` without activity.

    Returns True when the session was expired (auth data cleared). A missing
    timestamp never expires; read errors are logged and count as not expired.
    """
    try:
        raw = store.get(keys.LAST_ACTIVE_AT)
        if not raw:
            return False
        elapsed = now_ms(clock) - int(raw)
    except Exception:
        logger.exception("Error checking idle timeout")
        return False

    if elapsed >= idle_limit_ms:
        logger.info("Session idle for %d ms; clearing auth data", elapsed)
        clear_auth_data(store)
        return True
    return False
