"""
Terminal output decoding.

- AnsiDecoder: chunked bytes -> StyledRun values (SGR colors and styles)
- strip_ansi: escape removal and line-ending normalization for plain text
- Palette / PaletteRegistry: color tables, loadable from YAML
"""

from .ansi import (
    AnsiDecoder,
    SGRAttributeSet,
    StyledRun,
    coalesce,
    strip_ansi,
)
from .palette import Color, Palette, PaletteRegistry, ANSI_COLOR_NAMES

__all__ = [
    "AnsiDecoder",
    "SGRAttributeSet",
    "StyledRun",
    "coalesce",
    "strip_ansi",
    "Color",
    "Palette",
    "PaletteRegistry",
    "ANSI_COLOR_NAMES",
]
