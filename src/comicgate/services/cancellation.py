"""Cooperative cancellation for reading sessions.

A caller registers a read key (one per open chapter) and passes it with
every page request; cancelling the key makes all in-flight page tasks of
that session stop at their next checkpoint. Tokens are never interrupted,
only polled.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

import structlog

from comicgate.core.exceptions import ReadCancelledError

logger = structlog.get_logger(__name__)


class CancelToken:
    """Settable flag shared by every task of one read session."""

    def __init__(self, key: str, cancelled: bool = False) -> None:
        self.key = key
        self._event = threading.Event()
        if cancelled:
            self._event.set()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise ReadCancelledError tagged with the checkpoint name."""
        if self._event.is_set():
            logger.info("read_cancelled", key=self.key, stage=stage)
            raise ReadCancelledError(stage=stage, key=self.key)


class CancelRegistry:
    """Bounded map of read key to token, ordered by last touch.

    Every access drops tokens idle for longer than ``ttl_seconds`` and then
    evicts the least recently touched ones until at most ``max_keys``
    remain.

    Args:
        ttl_seconds: Idle lifetime of a token
        max_keys: Hard cap on live tokens
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        max_keys: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[CancelToken, float]] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _trim_locked(self, now: float) -> None:
        while self._entries:
            key, (_, touched) = next(iter(self._entries.items()))
            if now - touched <= self._ttl:
                break
            del self._entries[key]
        while len(self._entries) > self._max_keys:
            self._entries.popitem(last=False)

    def _touch_locked(self, key: str, now: float, *, cancel: bool) -> CancelToken:
        entry = self._entries.pop(key, None)
        token = entry[0] if entry else CancelToken(key)
        if cancel:
            token.cancel()
        self._entries[key] = (token, now)
        return token

    def token(self, key: str) -> CancelToken:
        """Get or create the token for ``key`` and refresh its last touch."""
        with self._lock:
            now = self._clock()
            token = self._touch_locked(key, now, cancel=False)
            self._trim_locked(now)
            return token

    def cancel(self, key: str) -> CancelToken:
        """Set the flag for ``key``, creating an already-cancelled token if needed."""
        with self._lock:
            now = self._clock()
            token = self._touch_locked(key, now, cancel=True)
            self._trim_locked(now)
        logger.info("read_cancel_requested", key=key)
        return token

    def is_cancelled(self, key: str) -> bool:
        with self._lock:
            self._trim_locked(self._clock())
            entry = self._entries.get(key)
            return bool(entry and entry[0].cancelled)
