"""
Styled text document fed by session events.

StyledBuffer is the render sink: it keeps one AnsiDecoder per output
stream, merges their runs into a single append-only document, and owns
the selection over that document's plain text.
"""

from __future__ import annotations
import re
import threading
import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..decoder.ansi import AnsiDecoder, StyledRun, coalesce, strip_ansi
from ..decoder.palette import Palette
from ..session.base import SessionEvent, SessionState, StreamKind, DataReceived, StateChanged

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionRange:
    """Half-open [start, end) range of offsets into the buffer's plain text."""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid selection range {self.start}..{self.end}")

    @classmethod
    def between(cls, anchor: int, cursor: int) -> SelectionRange:
        """Range spanning two offsets in either order (e.g. a mouse drag)."""
        return cls(min(anchor, cursor), max(anchor, cursor))

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end

    def clamp(self, limit: int) -> SelectionRange:
        return SelectionRange(min(self.start, limit), min(self.end, limit))


class StyledBuffer:
    """
    Session output as styled runs.

    Thread-safe: handle_event() is called from session worker threads
    while a UI reads runs and selection.

    Usage:
        buffer = StyledBuffer(palette)
        session.set_event_handler(buffer.handle_event)
        ...
        for run in buffer.runs:
            paint(run)
    """

    def __init__(self, palette: Optional[Palette] = None):
        self.palette = palette or Palette.classic()
        self._lock = threading.Lock()
        self._decoders = {stream: AnsiDecoder(self.palette) for stream in StreamKind}
        self._runs: list[StyledRun] = []
        self._selection: Optional[SelectionRange] = None
        self._session_state: Optional[SessionState] = None

    # -------------------------------------------------------------------------
    # Feeding
    # -------------------------------------------------------------------------

    def handle_event(self, event: SessionEvent) -> None:
        """Session event handler."""
        if isinstance(event, DataReceived):
            self.feed(event.data, event.stream)
        elif isinstance(event, StateChanged):
            with self._lock:
                self._session_state = event.new_state

    def feed(self, data: Union[bytes, str], stream: StreamKind = StreamKind.STDOUT) -> list[StyledRun]:
        """Decode a chunk from one stream and append it to the document."""
        with self._lock:
            emitted = self._decoders[stream].append(data)
            for run in emitted:
                coalesce(self._runs, run)
        return emitted

    def clear(self) -> None:
        """Drop the document and selection. Decoder attributes carry on."""
        with self._lock:
            self._runs = []
            for decoder in self._decoders.values():
                decoder.clear()
            self._selection = None

    def reset(self) -> None:
        """Drop everything, including decoder state, e.g. before reconnecting."""
        with self._lock:
            self._runs = []
            for decoder in self._decoders.values():
                decoder.reset()
            self._selection = None

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    @property
    def runs(self) -> list[StyledRun]:
        with self._lock:
            return list(self._runs)

    @property
    def session_state(self) -> Optional[SessionState]:
        """Last state seen in a StateChanged event."""
        return self._session_state

    def text(self) -> str:
        """Decoded text, line endings as received."""
        with self._lock:
            return ''.join(run.text for run in self._runs)

    def plain_text(self) -> str:
        """Decoded text with line endings normalized to '\\n'."""
        return strip_ansi(self.text())

    def search(self, pattern: str, case_sensitive: bool = False, regex: bool = False) -> list[SelectionRange]:
        """All non-overlapping matches in plain_text()."""
        if not pattern:
            return []
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            compiled = re.compile(pattern if regex else re.escape(pattern), flags)
        except re.error as e:
            logger.warning(f"Invalid search pattern {pattern!r}: {e}")
            return []
        return [
            SelectionRange(m.start(), m.end())
            for m in compiled.finditer(self.plain_text())
            if m.end() > m.start()
        ]

    def find_next(self, pattern: str, start: int = 0, case_sensitive: bool = False) -> Optional[SelectionRange]:
        """First match at or after start, wrapping to the top."""
        matches = self.search(pattern, case_sensitive)
        if not matches:
            return None
        for match in matches:
            if match.start >= start:
                return match
        return matches[0]

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @property
    def selection(self) -> Optional[SelectionRange]:
        with self._lock:
            return self._selection

    def select(self, start: int, end: int) -> SelectionRange:
        """Select [start, end), clamped to the current text."""
        limit = len(self.plain_text())
        selection = SelectionRange.between(max(start, 0), max(end, 0)).clamp(limit)
        with self._lock:
            self._selection = selection
        return selection

    def select_all(self) -> SelectionRange:
        return self.select(0, len(self.plain_text()))

    def clear_selection(self) -> None:
        with self._lock:
            self._selection = None

    def selected_text(self) -> str:
        selection = self.selection
        if selection is None or selection.is_empty:
            return ""
        return self.plain_text()[selection.start:selection.end]
