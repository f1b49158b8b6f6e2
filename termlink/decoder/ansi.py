"""
ANSI/VT escape-sequence decoder.

Turns a chunked terminal output stream into styled text runs. Only SGR
sequences (color and style) affect the output; cursor movement, erase,
OSC window titles and the rest are recognized and dropped. This is not a
screen emulator: the result is a linear, append-only document.
"""

from __future__ import annotations
import codecs
import logging
import re
from dataclasses import dataclass, replace
from typing import Optional, Union

from .palette import Color, Palette

logger = logging.getLogger(__name__)

ESC = '\x1b'
BEL = '\x07'
LINE_BREAKS = '\r\n'

# ESC + one of these opens a string sequence (OSC, DCS, SOS, PM, APC)
# closed by BEL or ESC \
STRING_INTRODUCERS = ']PX^_'

# Escapes longer than this are treated as malformed
DEFAULT_MAX_SEQUENCE_LENGTH = 4096

# Private-parameter prefixes that make a CSI ...m something other than SGR
_PRIVATE_PREFIXES = '<=>?'

_PARAM_SPLIT_RE = re.compile(r'[;:]')

_STRIP_RE = re.compile(
    r'\x1b\[[\x30-\x3f]*[\x20-\x2f]*[\x40-\x7e]'   # CSI
    r'|\x1b[\]PX^_].*?(?:\x07|\x1b\\)'           # OSC, DCS, SOS, PM, APC
    r'|\x1b[\x20-\x2f]+[\x30-\x7e]'               # nF (charset selection etc.)
    r'|\x1b[\x30-\x7e]',                          # two-byte escapes
    re.DOTALL,
)


@dataclass(frozen=True)
class StyledRun:
    """A stretch of text sharing one resolved style."""
    text: str
    foreground: Color
    background: Optional[Color] = None
    bold: bool = False
    underline: bool = False

    def same_style(self, other: StyledRun) -> bool:
        return (
            self.foreground == other.foreground
            and self.background == other.background
            and self.bold == other.bold
            and self.underline == other.underline
        )


@dataclass
class SGRAttributeSet:
    """
    Graphic rendition state carried between decoder calls.

    Colors are None while at the terminal default.
    """
    fg: Optional[Color] = None
    bg: Optional[Color] = None
    bold: bool = False
    underline: bool = False
    reverse: bool = False

    def reset(self) -> None:
        self.fg = None
        self.bg = None
        self.bold = False
        self.underline = False
        self.reverse = False


def coalesce(runs: list[StyledRun], run: StyledRun) -> None:
    """Append run, merging it into the last run when the styles match."""
    if not run.text:
        return
    if runs and runs[-1].same_style(run):
        runs[-1] = replace(runs[-1], text=runs[-1].text + run.text)
    else:
        runs.append(run)


def strip_ansi(text: str) -> str:
    """
    Remove escape sequences and normalize line endings to '\\n'.

    Independent of AnsiDecoder; meant for search and copy.
    """
    text = _STRIP_RE.sub('', text)
    return text.replace('\r\n', '\n').replace('\r', '\n')


def _parse_params(raw: str) -> list[int]:
    if not raw:
        return []
    return [int(p) if p.isdigit() else 0 for p in _PARAM_SPLIT_RE.split(raw)]


class AnsiDecoder:
    """
    Stateful decoder from terminal output to StyledRun values.

    Feed it chunks in arrival order with append(). Partial escape
    sequences and split UTF-8 code points at the end of a chunk are held
    back until the next call, so the document in ``runs`` does not depend
    on where the stream was cut.

    Malformed input never raises; it is dropped and decoding continues.
    One decoder per stream: it is not thread-safe.
    """

    def __init__(
        self,
        palette: Optional[Palette] = None,
        max_sequence_length: int = DEFAULT_MAX_SEQUENCE_LENGTH,
    ):
        self.palette = palette or Palette.classic()
        self.max_sequence_length = max_sequence_length
        self.attrs = SGRAttributeSet()
        self._utf8 = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._tail = ''
        self._runs: list[StyledRun] = []

    @property
    def runs(self) -> list[StyledRun]:
        """The decoded document, adjacent equal styles merged."""
        return list(self._runs)

    @property
    def pending(self) -> str:
        """Unconsumed input held for the next call."""
        return self._tail

    def text(self) -> str:
        return ''.join(run.text for run in self._runs)

    def clear(self) -> None:
        """Drop the document; attributes and carried input are kept."""
        self._runs = []

    def reset(self) -> None:
        """Back to a freshly constructed decoder."""
        self._runs = []
        self._tail = ''
        self.attrs.reset()
        self._utf8 = codecs.getincrementaldecoder('utf-8')(errors='replace')

    def append(self, data: Union[bytes, bytearray, str]) -> list[StyledRun]:
        """
        Decode the next chunk.

        Returns:
            Runs produced by this chunk, in order. They are also added
            to ``runs``.
        """
        if isinstance(data, str):
            text = data
        else:
            text = self._utf8.decode(bytes(data))

        if not text:
            return []

        text = self._tail + text
        self._tail = ''

        emitted: list[StyledRun] = []
        self._scan(text, emitted)
        return emitted

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def _scan(self, text: str, emitted: list[StyledRun]) -> None:
        n = len(text)
        max_iterations = n + 100
        iterations = 0
        start = 0
        i = 0

        while i < n:
            iterations += 1
            if iterations > max_iterations:
                logger.warning(f"Decoder iteration cap hit at {i}/{n}, rendering rest as text")
                break

            if text[i] != ESC:
                j = text.find(ESC, i)
                i = n if j < 0 else j
                continue

            parsed = self._parse_escape(text, i)
            if parsed is None:
                # Incomplete: keep it for the next chunk
                self._flush(text[start:i], emitted)
                self._tail = text[i:]
                return

            end, sgr_params = parsed
            self._flush(text[start:i], emitted)
            if sgr_params is not None:
                self._apply_sgr(sgr_params)
            start = i = end

        self._flush(text[start:], emitted)

    def _parse_escape(self, text: str, i: int) -> Optional[tuple[int, Optional[list[int]]]]:
        """
        Recognize the escape sequence at text[i].

        Returns None when more input is needed, otherwise
        (end, sgr_params). sgr_params is None for anything that is not
        SGR, including malformed sequences, which are skipped up to end.
        """
        n = len(text)
        if i + 1 >= n:
            return None

        limit = i + self.max_sequence_length
        intro = text[i + 1]

        if intro == '[':
            return self._parse_csi(text, i, limit)

        if intro in STRING_INTRODUCERS:
            return self._parse_string(text, i, limit)

        if '\x20' <= intro <= '\x2f':
            # nF escape: intermediates, then a final byte
            j = i + 2
            while j < n and j < limit and '\x20' <= text[j] <= '\x2f':
                j += 1
            if j >= limit:
                return limit, None
            if j >= n:
                return None
            if '\x30' <= text[j] <= '\x7e':
                return j + 1, None
            return j, None

        if '\x30' <= intro <= '\x7e':
            return i + 2, None

        # ESC followed by a control or non-ASCII character: drop the ESC
        return i + 1, None

    def _parse_csi(self, text: str, i: int, limit: int) -> Optional[tuple[int, Optional[list[int]]]]:
        n = len(text)
        j = i + 2
        while j < n and j < limit and '\x30' <= text[j] <= '\x3f':
            j += 1
        params_end = j
        while j < n and j < limit and '\x20' <= text[j] <= '\x2f':
            j += 1

        if j >= limit:
            return limit, None
        if j >= n:
            return None

        final = text[j]
        if not '\x40' <= final <= '\x7e':
            # Bad terminator: drop the sequence, rescan from this character
            return j, None

        params = text[i + 2:params_end]
        if final == 'm' and j == params_end and (not params or params[0] not in _PRIVATE_PREFIXES):
            return j + 1, _parse_params(params)
        return j + 1, None

    def _parse_string(self, text: str, i: int, limit: int) -> Optional[tuple[int, Optional[list[int]]]]:
        n = len(text)
        j = i + 2
        while j < n and j < limit:
            ch = text[j]
            if ch == BEL:
                return j + 1, None
            if ch == ESC:
                if j + 1 >= n:
                    return None
                if text[j + 1] == '\\':
                    return j + 2, None
                # Unterminated; a new sequence starts here
                return j, None
            j += 1

        if j >= limit:
            return limit, None
        return None

    # -------------------------------------------------------------------------
    # Runs and attributes
    # -------------------------------------------------------------------------

    def _resolve(self) -> tuple[Color, Optional[Color]]:
        a = self.attrs
        if a.reverse:
            fg = a.bg or self.palette.default_background
            bg = a.fg or self.palette.default_foreground
            return fg, bg
        return a.fg or self.palette.default_foreground, a.bg

    def _flush(self, text: str, emitted: list[StyledRun]) -> None:
        if not text:
            return

        if self._runs:
            # Line breaks have no glyph; they keep the preceding style
            body = text.lstrip(LINE_BREAKS)
            lead = text[:len(text) - len(body)]
            if lead:
                self._emit(replace(self._runs[-1], text=lead), emitted)
            text = body
            if not text:
                return

        fg, bg = self._resolve()
        self._emit(
            StyledRun(text, fg, bg, bold=self.attrs.bold, underline=self.attrs.underline),
            emitted,
        )

    def _emit(self, run: StyledRun, emitted: list[StyledRun]) -> None:
        coalesce(emitted, run)
        coalesce(self._runs, run)

    def _apply_sgr(self, params: list[int]) -> None:
        a = self.attrs
        if not params:
            a.reset()
            return

        k = 0
        while k < len(params):
            code = params[k]

            if code == 0:
                a.reset()
            elif code == 1:
                a.bold = True
            elif code == 4:
                a.underline = True
            elif code == 7:
                a.reverse = True
            elif code == 22:
                a.bold = False
            elif code == 24:
                a.underline = False
            elif code == 27:
                a.reverse = False
            elif 30 <= code <= 37:
                a.fg = self.palette.base_color(code - 30)
            elif code == 39:
                a.fg = None
            elif 40 <= code <= 47:
                a.bg = self.palette.base_color(code - 40)
            elif code == 49:
                a.bg = None
            elif 90 <= code <= 97:
                a.fg = self.palette.base_color(code - 90 + 8)
            elif 100 <= code <= 107:
                a.bg = self.palette.base_color(code - 100 + 8)
            elif code in (38, 48):
                color, consumed = self._extended_color(params, k + 1)
                if color is not None:
                    if code == 38:
                        a.fg = color
                    else:
                        a.bg = color
                k += consumed
            # Anything else is ignored

            k += 1

    def _extended_color(self, params: list[int], k: int) -> tuple[Optional[Color], int]:
        """Parse the tail of 38/48. Returns (color, parameters consumed)."""
        if k >= len(params):
            return None, 0

        mode = params[k]
        if mode == 5:
            if k + 1 < len(params):
                return self.palette.color256(params[k + 1]), 2
            return None, len(params) - k
        if mode == 2:
            if k + 3 < len(params):
                r, g, b = params[k + 1:k + 4]
                if max(r, g, b) <= 255:
                    return Color(r, g, b), 4
                return None, 4
            return None, len(params) - k
        return None, 1
