"""
Bridge between session worker threads and the Qt event loop.
"""

from __future__ import annotations
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from ..session.base import (
    Session, SessionEvent, DataReceived, StateChanged, EventHandler, combine_handlers,
)
from .buffer import StyledBuffer


class QtSessionBridge(QObject):
    """
    Re-emits session events as Qt signals.

    Session handlers run on worker threads; connecting widgets to these
    signals makes Qt queue delivery onto the receiver's thread. When a
    StyledBuffer is attached, output is decoded on the worker thread and
    the new runs are emitted as well.
    """

    data_received = pyqtSignal(bytes, str)          # raw chunk, stream name
    runs_appended = pyqtSignal(object)              # list[StyledRun]
    state_changed = pyqtSignal(object)              # StateChanged event
    session_state_changed = pyqtSignal(object, str)  # SessionState, message

    def __init__(self, buffer: Optional[StyledBuffer] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.buffer = buffer

    def attach(self, session: Session, *handlers: EventHandler) -> None:
        """Install this bridge (plus any extra handlers) as the session's handler."""
        session.set_event_handler(combine_handlers(self.handle_event, *handlers))

    def handle_event(self, event: SessionEvent) -> None:
        """Session event handler. Safe to call from any thread."""
        if isinstance(event, DataReceived):
            self.data_received.emit(event.data, event.stream.value)
            if self.buffer is not None:
                runs = self.buffer.feed(event.data, event.stream)
                if runs:
                    self.runs_appended.emit(runs)

        elif isinstance(event, StateChanged):
            if self.buffer is not None:
                self.buffer.handle_event(event)
            self.state_changed.emit(event)
            self.session_state_changed.emit(event.new_state, event.message)
