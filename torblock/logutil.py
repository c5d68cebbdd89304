from __future__ import annotations

import threading
import time
from typing import Dict


_lock = threading.Lock()
_last_log: Dict[str, float] = {}
_suppressed: Dict[str, int] = {}


def should_log(key: str, *, interval_seconds: float) -> bool:
    now = time.monotonic()
    with _lock:
        last = _last_log.get(key)
        if last is not None and (now - last) < float(interval_seconds):
            _suppressed[key] = _suppressed.get(key, 0) + 1
            return False
        _last_log[key] = now
        return True


def take_suppressed(key: str) -> int:
    """Return and clear the number of messages throttled under `key`."""
    with _lock:
        return _suppressed.pop(key, 0)


def reset_throttle() -> None:
    with _lock:
        _last_log.clear()
        _suppressed.clear()


def log_exception_throttled(logger, key: str, *args, interval_seconds: float, message: str) -> None:
    """Log exceptions at most once per interval per key.

    Intended for the refresh loop, where a feed that stays down for hours would
    otherwise repeat the same traceback every cycle.
    """
    try:
        if should_log(key, interval_seconds=interval_seconds):
            logger.exception(message, *args)
    except Exception:
        # Never let logging break the worker loop.
        pass


def log_warning_throttled(logger, key: str, *args, interval_seconds: float, message: str) -> None:
    """Warning variant for the request path.

    Keys built from client input must be bounded by the caller, e.g. one key per
    kind of problem rather than one per address. Throttled occurrences still go
    out at DEBUG, and the next warning for the key reports how many were held
    back.
    """
    try:
        if should_log(key, interval_seconds=interval_seconds):
            held = take_suppressed(key)
            if held:
                logger.warning(message + " (%d similar warnings suppressed)", *args, held)
            else:
                logger.warning(message, *args)
        else:
            logger.debug(message, *args)
    except Exception:
        pass
