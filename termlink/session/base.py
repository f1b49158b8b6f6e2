"""
Abstract session interface.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional, Callable

from .errors import SessionError
from ..connection.profile import SessionConfig

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    IDLE = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTED = auto()
    FAILED = auto()


# States from which connect() starts a new attempt
CONNECTABLE_STATES = frozenset({SessionState.IDLE, SessionState.DISCONNECTED, SessionState.FAILED})


class StreamKind(Enum):
    """Which child pipe a chunk came from."""
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass
class SessionEvent:
    """Base class for session events."""
    pass


@dataclass
class DataReceived(SessionEvent):
    """Output chunk from the child."""
    data: bytes
    stream: StreamKind = StreamKind.STDOUT


@dataclass
class StateChanged(SessionEvent):
    """Session state changed."""
    old_state: SessionState
    new_state: SessionState
    message: str = ""
    error: Optional[SessionError] = None
    exit_code: Optional[int] = None


EventHandler = Callable[[SessionEvent], None]


def combine_handlers(*handlers: Optional[EventHandler]) -> EventHandler:
    """Fan one event out to several handlers, isolating their failures."""
    active = [h for h in handlers if h is not None]

    def dispatch(event: SessionEvent) -> None:
        for handler in active:
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"Event handler error: {e}")

    return dispatch


class Session(ABC):
    """
    Abstract session interface.

    Handles connection lifecycle and data I/O. Front ends talk to this
    and never see the child process.
    """

    @property
    @abstractmethod
    def state(self) -> SessionState:
        """Current session state."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Is session currently connected and usable?"""
        pass

    @abstractmethod
    def connect(self, config: SessionConfig) -> None:
        """
        Initiate connection.
        Async - fires state change events as it progresses.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Tear the session down. Safe to call repeatedly."""
        pass

    @abstractmethod
    def send(self, data: bytes) -> None:
        """Send data to remote. Dropped unless connected."""
        pass

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        """Notify remote of terminal resize."""
        pass

    @abstractmethod
    def set_event_handler(self, handler: Optional[EventHandler]) -> None:
        """Set callback for session events."""
        pass
