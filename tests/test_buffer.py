"""Tests for termlink.terminal.buffer."""

from __future__ import annotations

import pytest

from termlink.decoder.ansi import StyledRun
from termlink.decoder.palette import Color
from termlink.session.base import DataReceived, SessionState, StateChanged, StreamKind
from termlink.terminal.buffer import SelectionRange, StyledBuffer

WHITE = Color(255, 255, 255)
RED = Color(204, 0, 0)


class TestSelectionRange:
    def test_between_orders_offsets(self) -> None:
        assert SelectionRange.between(9, 3) == SelectionRange(3, 9)

    def test_properties(self) -> None:
        sel = SelectionRange(2, 5)
        assert sel.length == 3
        assert not sel.is_empty
        assert sel.contains(2)
        assert not sel.contains(5)
        assert SelectionRange(4, 4).is_empty

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            SelectionRange(5, 2)
        with pytest.raises(ValueError):
            SelectionRange(-1, 2)

    def test_clamp(self) -> None:
        assert SelectionRange(2, 50).clamp(10) == SelectionRange(2, 10)


class TestStyledBufferFeeding:
    def test_events_build_document(self) -> None:
        buffer = StyledBuffer()
        buffer.handle_event(DataReceived(b"\x1b[31mred"))
        buffer.handle_event(DataReceived(b" text\x1b[0m ok"))
        assert buffer.runs == [StyledRun("red text", RED), StyledRun(" ok", WHITE)]

    def test_streams_have_independent_decoders(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"\x1b[31m", StreamKind.STDOUT)
        buffer.feed(b"err", StreamKind.STDERR)
        buffer.feed(b"out", StreamKind.STDOUT)
        assert buffer.runs == [StyledRun("err", WHITE), StyledRun("out", RED)]

    def test_partial_sequence_per_stream(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"\x1b[3", StreamKind.STDOUT)
        buffer.feed(b"plain", StreamKind.STDERR)
        buffer.feed(b"1mX", StreamKind.STDOUT)
        assert buffer.runs == [StyledRun("plain", WHITE), StyledRun("X", RED)]

    def test_tracks_session_state(self) -> None:
        buffer = StyledBuffer()
        assert buffer.session_state is None
        buffer.handle_event(StateChanged(SessionState.IDLE, SessionState.CONNECTING))
        assert buffer.session_state == SessionState.CONNECTING

    def test_clear(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"\x1b[31mold")
        buffer.select_all()
        buffer.clear()
        assert buffer.runs == []
        assert buffer.selection is None
        buffer.feed(b"new")
        assert buffer.runs == [StyledRun("new", RED)]

    def test_reset(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"\x1b[31mold")
        buffer.reset()
        buffer.feed(b"new")
        assert buffer.runs == [StyledRun("new", WHITE)]


class TestStyledBufferText:
    def test_plain_text_normalizes_line_endings(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"one\r\ntwo\rthree")
        assert buffer.text() == "one\r\ntwo\rthree"
        assert buffer.plain_text() == "one\ntwo\nthree"

    def test_search(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"Error: x\r\n\x1b[31merror\x1b[0m: y\r\n")
        assert buffer.search("error") == [SelectionRange(0, 5), SelectionRange(9, 14)]
        assert buffer.search("error", case_sensitive=True) == [SelectionRange(9, 14)]

    def test_search_regex(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"eth0 up\neth1 down\n")
        assert buffer.search(r"eth\d", regex=True) == [SelectionRange(0, 4), SelectionRange(8, 12)]

    def test_search_bad_regex(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"text")
        assert buffer.search("(", regex=True) == []

    def test_find_next_wraps(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"ab ab ab")
        assert buffer.find_next("ab", start=1) == SelectionRange(3, 5)
        assert buffer.find_next("ab", start=7) == SelectionRange(0, 2)
        assert buffer.find_next("zz") is None


class TestStyledBufferSelection:
    def test_select_and_copy(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"hello \x1b[1mworld\x1b[0m\r\n")
        selection = buffer.select(12, 6)
        assert selection == SelectionRange(6, 12)
        assert buffer.selection == selection
        assert buffer.selected_text() == "world\n"

    def test_select_is_clamped(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"abc")
        assert buffer.select(-5, 100) == SelectionRange(0, 3)
        assert buffer.selected_text() == "abc"

    def test_clear_selection(self) -> None:
        buffer = StyledBuffer()
        buffer.feed(b"abc")
        buffer.select_all()
        buffer.clear_selection()
        assert buffer.selection is None
        assert buffer.selected_text() == ""
