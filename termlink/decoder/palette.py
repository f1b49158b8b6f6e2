"""
Color palettes for the ANSI decoder.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, Optional
import logging
import yaml
from termlink.resources import resources

logger = logging.getLogger(__name__)


class Color(NamedTuple):
    """24-bit RGB color."""
    r: int
    g: int
    b: int

    @classmethod
    def from_hex(cls, value: str) -> Color:
        """Parse '#rrggbb' (leading '#' optional)."""
        value = value.strip().lstrip('#')
        if len(value) != 6:
            raise ValueError(f"Invalid color: {value!r}")
        return cls(int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


# Order of the 16 base colors, matching SGR 30-37 then 90-97
ANSI_COLOR_NAMES = (
    "black", "red", "green", "yellow", "blue", "magenta", "cyan", "white",
    "brightBlack", "brightRed", "brightGreen", "brightYellow",
    "brightBlue", "brightMagenta", "brightCyan", "brightWhite",
)


@dataclass
class Palette:
    """16-color table plus default foreground/background."""
    name: str

    # Keyed by ANSI_COLOR_NAMES, '#rrggbb' values
    ansi_colors: dict = field(default_factory=dict)

    foreground: str = "#ffffff"
    background: str = "#000000"

    def __post_init__(self):
        missing = [n for n in ANSI_COLOR_NAMES if n not in self.ansi_colors]
        if missing:
            raise ValueError(f"Palette {self.name!r} missing colors: {', '.join(missing)}")
        self._table = tuple(Color.from_hex(self.ansi_colors[n]) for n in ANSI_COLOR_NAMES)
        self._fg = Color.from_hex(self.foreground)
        self._bg = Color.from_hex(self.background)

    @property
    def default_foreground(self) -> Color:
        return self._fg

    @property
    def default_background(self) -> Color:
        return self._bg

    def base_color(self, index: int) -> Color:
        """One of the 16 base colors (0-7 normal, 8-15 bright)."""
        return self._table[index]

    def color256(self, index: int) -> Optional[Color]:
        """
        Map an xterm 256-color index to RGB.

        0-15 come from this palette, 16-231 are the 6x6x6 cube and
        232-255 the grayscale ramp. Out of range returns None.
        """
        if 0 <= index < 16:
            return self._table[index]
        if 16 <= index < 232:
            i = index - 16
            return Color((i // 36) * 51, ((i // 6) % 6) * 51, (i % 6) * 51)
        if 232 <= index < 256:
            gray = 8 + (index - 232) * 10
            return Color(gray, gray, gray)
        return None

    @classmethod
    def load(cls, path: Path) -> Palette:
        """Load palette from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**data)

    def save(self, path: Path) -> None:
        """Save palette to YAML file."""
        data = {
            'name': self.name,
            'ansi_colors': dict(self.ansi_colors),
            'foreground': self.foreground,
            'background': self.background,
        }
        with open(path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def classic(cls) -> Palette:
        """Plain xterm-like palette, white on black."""
        return cls(
            name="classic",
            ansi_colors={
                "black": "#000000",
                "red": "#cc0000",
                "green": "#00cc00",
                "yellow": "#cccc00",
                "blue": "#0000cc",
                "magenta": "#cc00cc",
                "cyan": "#00cccc",
                "white": "#cccccc",
                "brightBlack": "#808080",
                "brightRed": "#ff0000",
                "brightGreen": "#00ff00",
                "brightYellow": "#ffff00",
                "brightBlue": "#6666ff",
                "brightMagenta": "#ff00ff",
                "brightCyan": "#00ffff",
                "brightWhite": "#ffffff",
            },
            foreground="#ffffff",
            background="#000000",
        )

    @classmethod
    def catppuccin(cls) -> Palette:
        """Catppuccin Mocha inspired dark palette."""
        return cls(
            name="catppuccin",
            ansi_colors={
                "black": "#45475a",
                "red": "#f38ba8",
                "green": "#a6e3a1",
                "yellow": "#f9e2af",
                "blue": "#89b4fa",
                "magenta": "#f5c2e7",
                "cyan": "#94e2d5",
                "white": "#bac2de",
                "brightBlack": "#585b70",
                "brightRed": "#f38ba8",
                "brightGreen": "#a6e3a1",
                "brightYellow": "#f9e2af",
                "brightBlue": "#89b4fa",
                "brightMagenta": "#f5c2e7",
                "brightCyan": "#94e2d5",
                "brightWhite": "#a6adc8",
            },
            foreground="#cdd6f4",
            background="#1e1e2e",
        )


class PaletteRegistry:
    """Built-in palettes plus any YAML palettes found on disk."""

    def __init__(self, palette_dir: Path = None):
        """
        Initialize palette registry.

        Args:
            palette_dir: Directory to load custom palettes from
        """
        self.palette_dir = palette_dir or resources.palettes_dir

        self._palettes: dict[str, Palette] = {}

        self.register(Palette.classic())
        self.register(Palette.catppuccin())

    def load_palettes(self) -> None:
        """Load all palettes from the palette directory."""
        if not self.palette_dir.exists():
            logger.debug(f"Palette directory not found: {self.palette_dir}")
            return

        for path in sorted(self.palette_dir.glob("*.yaml")):
            try:
                palette = Palette.load(path)
                self._palettes[palette.name] = palette
                logger.debug(f"Loaded palette: {palette.name}")
            except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
                logger.warning(f"Failed to load palette {path}: {e}")

    def get(self, name: str) -> Optional[Palette]:
        return self._palettes.get(name)

    def list_palettes(self) -> list[str]:
        return sorted(self._palettes.keys())

    def register(self, palette: Palette) -> None:
        self._palettes[palette.name] = palette
