"""Cancellable once-per-interval tick source for timed sessions."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTicker:
    """Call `callback` every `interval` seconds on a daemon thread.

    `cancel()` is idempotent and may be called from inside the callback;
    no tick fires after it returns, except one already executing.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "session-ticker"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False
        self._lock = threading.Lock()

    def start(self) -> "RepeatingTicker":
        with self._lock:
            if self._started:
                raise RuntimeError("ticker already started")
            self._started = True
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()

    def join(self, timeout: float | None = None) -> None:
        if self._started and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        # Event.wait returns True once cancelled, ending the loop
        while not self._stopped.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception("tick callback failed; stopping ticker")
                self._stopped.set()
