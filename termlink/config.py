"""
Engine settings for termlink.
Stored in ~/.termlink/config.json
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".termlink"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"


@dataclass
class EngineSettings:
    """
    Tunables for session processes, login automation and decoding.
    """
    # Child environment
    term_type: str = "xterm-256color"
    locale: str = "en_US.UTF-8"

    # Keepalive written to the remote shell while connected
    keepalive_interval: float = 180.0
    keepalive_payload: str = "\x00"

    # ssh transport keepalive options
    server_alive_interval: int = 60
    server_alive_count_max: int = 10
    known_hosts_file: str = ""

    # Login automation
    login_timeout: int = 30
    script_ttl: float = 300.0

    # Process handling
    terminate_grace: float = 1.0
    read_chunk_size: int = 8192

    # Binaries (names are looked up on PATH)
    ssh_binary: str = "ssh"
    sshpass_binary: str = "sshpass"
    expect_binary: str = "expect"
    use_sshpass: bool = True

    # Decoder
    palette_name: str = "classic"

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> EngineSettings:
        """Deserialize from dict, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)


class SettingsManager:
    """
    Loads and saves EngineSettings.

    Usage:
        manager = SettingsManager()
        settings = manager.settings

        settings.keepalive_interval = 60
        manager.save()
    """

    def __init__(self, config_path: Path = None):
        self._config_path = config_path or DEFAULT_CONFIG_FILE
        self._settings: Optional[EngineSettings] = None

    @property
    def settings(self) -> EngineSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> EngineSettings:
        """Load settings from disk, or return defaults."""
        if self._config_path.exists():
            try:
                data = json.loads(self._config_path.read_text())
                logger.debug(f"Loaded settings from {self._config_path}")
                return EngineSettings.from_dict(data)
            except (json.JSONDecodeError, TypeError, AttributeError) as e:
                logger.warning(f"Failed to load settings: {e}, using defaults")
                return EngineSettings()
        else:
            logger.debug("No settings file found, using defaults")
            return EngineSettings()

    def save(self) -> None:
        """Save current settings to disk."""
        if self._settings is None:
            return

        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._config_path.write_text(
                json.dumps(self._settings.to_dict(), indent=2)
            )
            logger.debug(f"Saved settings to {self._config_path}")
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

    def reset(self) -> EngineSettings:
        """Reset to default settings (does not save automatically)."""
        self._settings = EngineSettings()
        return self._settings
