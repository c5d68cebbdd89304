from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from torblock.blocklist import BlocklistState
from torblock.errors import FetchError, clean_text, public_error_message
from torblock.fetcher import BlocklistFetcher
from torblock.logutil import log_exception_throttled


logger = logging.getLogger(__name__)


STATE_IDLE = "idle"
STATE_REFRESHING = "refreshing"


def _now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class RefreshStatus:
    state: str
    url: str
    interval_seconds: int
    last_attempt: int
    last_success: int
    last_error: str
    found_ipv4: int
    found_ipv6: int
    blocked_ipv4: int
    blocked_ipv6: int


class RefreshScheduler:
    def __init__(
        self,
        fetcher: BlocklistFetcher,
        state: BlocklistState,
        *,
        interval_seconds: float,
        stop_event: Optional[threading.Event] = None,
    ):
        self.fetcher = fetcher
        self.state = state
        self.interval_seconds = interval_seconds

        self._stop = stop_event or threading.Event()
        self._start_lock = threading.Lock()
        self._started = False
        self._thread: Optional[threading.Thread] = None

        self._status_lock = threading.Lock()
        self._state = STATE_IDLE
        self._last_attempt = 0
        self._last_success = 0
        self._last_error = ""
        self._found_ipv4 = 0
        self._found_ipv6 = 0

    def refresh_once(self) -> bool:
        """Run one fetch-and-merge cycle. Returns True when the blocklist was updated.

        A failed fetch leaves the current snapshot untouched.
        """
        url = self.fetcher.url
        with self._status_lock:
            self._state = STATE_REFRESHING
            self._last_attempt = _now()

        logger.info("Starting address list update from %s", url)
        try:
            result = self.fetcher.run()
        except FetchError as e:
            logger.warning("Failed to update address list from %s: %s", url, e)
            self._record_failure(public_error_message(e))
            return False
        except Exception as e:
            log_exception_throttled(
                logger,
                "scheduler.refresh",
                interval_seconds=300.0,
                message="Address list update failed unexpectedly",
            )
            self._record_failure(public_error_message(e))
            return False

        snap = self.state.merge(result.ipv4, result.ipv6)
        with self._status_lock:
            self._state = STATE_IDLE
            self._last_success = _now()
            self._last_error = ""
            self._found_ipv4 = len(result.ipv4)
            self._found_ipv6 = len(result.ipv6)

        logger.info(
            "Updated blocked IP list (found %d IPv4 addresses, %d IPv6 addresses; blocking %d total)",
            len(result.ipv4),
            len(result.ipv6),
            len(snap),
        )
        return True

    def _record_failure(self, err: str) -> None:
        with self._status_lock:
            self._state = STATE_IDLE
            self._last_error = clean_text(err, max_len=400)

    def start(self) -> None:
        """Populate the blocklist once, then keep refreshing in the background."""
        with self._start_lock:
            if self._started:
                return
            self._started = True

        self.refresh_once()

        t = threading.Thread(target=self._loop, name="torblock-updater", daemon=True)
        self._thread = t
        t.start()

    def _loop(self) -> None:
        while not self._stop.wait(float(self.interval_seconds)):
            try:
                self.refresh_once()
            except Exception:
                log_exception_throttled(
                    logger,
                    "scheduler.loop",
                    interval_seconds=300.0,
                    message="Address list refresh loop iteration failed",
                )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    @property
    def running(self) -> bool:
        t = self._thread
        return bool(t is not None and t.is_alive())

    def status(self) -> RefreshStatus:
        snap = self.state.snapshot()
        with self._status_lock:
            return RefreshStatus(
                state=self._state,
                url=self.fetcher.url,
                interval_seconds=int(self.interval_seconds),
                last_attempt=self._last_attempt,
                last_success=self._last_success,
                last_error=self._last_error,
                found_ipv4=self._found_ipv4,
                found_ipv6=self._found_ipv6,
                blocked_ipv4=len(snap.ipv4),
                blocked_ipv6=len(snap.ipv6),
            )
