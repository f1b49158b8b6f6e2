"""Resource lookup for development and installed package modes."""
from pathlib import Path


class ResourceManager:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._package_root = Path(__file__).parent
        return cls._instance

    @property
    def palettes_dir(self) -> Path:
        # May not exist in stripped installs; callers check
        return self._package_root / "decoder" / "palettes"


# Singleton instance
resources = ResourceManager()
