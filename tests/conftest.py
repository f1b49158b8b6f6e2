"""Shared fixtures."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

from termlink.session.base import DataReceived, SessionEvent, SessionState, StateChanged, StreamKind

# Headless Qt for the bridge tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class EventRecorder:
    """Session event handler that keeps everything it is given."""

    def __init__(self):
        self.events: list[SessionEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: SessionEvent) -> None:
        with self._lock:
            self.events.append(event)

    def transitions(self) -> list[StateChanged]:
        with self._lock:
            return [e for e in self.events if isinstance(e, StateChanged)]

    def states(self) -> list[SessionState]:
        return [e.new_state for e in self.transitions()]

    def output(self, stream: StreamKind = StreamKind.STDOUT) -> bytes:
        with self._lock:
            return b"".join(
                e.data for e in self.events
                if isinstance(e, DataReceived) and e.stream == stream
            )


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def fake_bin(tmp_path: Path) -> Callable[[str, str], str]:
    """Write an executable shell script and return its absolute path."""

    def make(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(0o755)
        return str(path)

    return make
