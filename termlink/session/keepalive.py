"""
Cancellable periodic task used for shell-level keepalives.
"""

from __future__ import annotations
import threading
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class KeepaliveTask:
    """
    Calls `fire` every `interval` seconds on a daemon thread until stopped.

    stop() returns only after the thread has exited, so no fire can happen
    after it (unless stop() is called from inside fire itself).
    """

    def __init__(self, interval: float, fire: Callable[[], None], name: str = "keepalive"):
        if interval <= 0:
            raise ValueError("Keepalive interval must be positive")
        self.interval = interval
        self._fire = fire
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self._fire()
            except Exception as e:
                logger.exception(f"Keepalive error: {e}")
