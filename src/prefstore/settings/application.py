"""Internal application settings derived from user settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from prefstore.settings.user import StoreSettings


@dataclass
class StorePaths:
    """Filesystem locations used by the store.

    Centralizes the data directory and file names so tests and the CLI can
    point the whole application at a temporary directory.
    """

    data_dir: Path
    store_file_name: str = "preferences.json"

    @property
    def store_file(self) -> Path:
        return self.data_dir / self.store_file_name

    @classmethod
    def from_base_dir(cls, base_dir: Path) -> StorePaths:
        """Create paths from base directory."""
        return cls(data_dir=base_dir)

    @classmethod
    def default(cls) -> StorePaths:
        """Paths from PREFSTORE_HOME, else the per-user data directory."""
        env_home = os.environ.get("PREFSTORE_HOME")
        if env_home:
            return cls.from_base_dir(Path(env_home).expanduser())
        return cls.from_base_dir(Path("~/.local/share/prefstore").expanduser())


class ApplicationSettings:
    """Application settings container.

    Combines the user's configuration with resolved paths so the rest of the
    application asks one object where the settings file lives and how the
    store should behave.

    Examples:
        app_settings = ApplicationSettings(StoreSettings.load_or_default())
        app_settings.store_file  # Path to preferences.json
    """

    def __init__(self, user_settings: StoreSettings, paths: StorePaths | None = None):
        """Initialize application settings with configuration sources."""
        self.user = user_settings
        self.paths = paths or StorePaths.default()

    @property
    def store_file(self) -> Path:
        """Settings file, preferring an explicit ``store_path`` from the config."""
        return self.user.store_path or self.paths.store_file

    @classmethod
    def load(cls, config_path: Path | None = None) -> ApplicationSettings:
        """Load user settings (or defaults) and resolve paths."""
        return cls(StoreSettings.load_or_default(config_path))
