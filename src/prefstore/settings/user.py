"""User-configurable settings loaded from a YAML config file."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import ClassVar, Final

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from prefstore.errors import InvalidKeyError
from prefstore.store.keys import validate_key

# Load environment variables from .env file(s)
load_dotenv()

logger: Final = logging.getLogger(__name__)


def _interpolate_env(content: str) -> str:
    return re.sub(r"\$\{(\w+)\}", lambda m: os.getenv(m.group(1), ""), content)


class StoreSettings(BaseModel):
    """Settings for the preference store. Every field has a default, so an
    empty or missing config file yields a working store.
    """

    # Default search paths for configuration
    DEFAULT_CONFIG_PATHS: ClassVar[list[Path]] = [
        Path("prefstore.yaml"),
        Path("~/.config/prefstore/config.yaml").expanduser(),
        Path("/etc/prefstore/config.yaml"),
    ]

    # Storage
    store_path: Path | None = Field(
        None, description="Settings file; defaults to $PREFSTORE_HOME/preferences.json"
    )
    fsync: bool = Field(True, description="Force each write to stable storage before completing")

    # Values
    default_value: str = Field("", description="Value reported for keys never written")
    defaults: dict[str, str] = Field(
        default_factory=dict, description="Per-key defaults overriding default_value"
    )

    # Observation
    subscriber_buffer: int = Field(
        0,
        ge=0,
        description="Pending values kept per subscriber before the oldest is dropped "
        "(0 = unbounded)",
    )

    # ---- validators ----
    @field_validator("defaults")
    @classmethod
    def validate_default_keys(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            try:
                validate_key(key)
            except InvalidKeyError as exc:
                raise ValueError(f"invalid key in defaults: {exc}") from exc
        return v

    @field_validator("store_path")
    @classmethod
    def expand_store_path(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    # ---- convenience methods ----
    @classmethod
    def find_config(cls) -> Path | None:
        """Locate a config file without loading it.

        Returns:
            Path from PREFSTORE_CONFIG or the first existing default path, else None

        Raises:
            FileNotFoundError: If PREFSTORE_CONFIG points to a missing file
        """
        env_path = os.environ.get("PREFSTORE_CONFIG")
        if env_path:
            path = Path(env_path)
            if not path.exists():
                raise FileNotFoundError(f"Config file from PREFSTORE_CONFIG not found: {path}")
            return path

        for default_path in cls.DEFAULT_CONFIG_PATHS:
            if default_path.exists():
                return default_path
        return None

    @classmethod
    def load(cls, path: Path | None = None) -> StoreSettings:
        """Load configuration from a YAML file.

        Args:
            path: Path to config file (optional, searches default locations if None)

        Returns:
            Validated StoreSettings object

        Raises:
            FileNotFoundError: If no config file is found
            RuntimeError: If the config file cannot be parsed or is invalid
        """
        if path is None:
            path = cls.find_config()
            if path is None:
                raise FileNotFoundError(
                    "No configuration file found. Create prefstore.yaml or set PREFSTORE_CONFIG."
                )

        # Load and parse config
        import yaml  # local import to avoid hard dep for callers

        try:
            raw = _interpolate_env(path.read_text())
            data = yaml.safe_load(raw)
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(f"Unable to read config YAML: {exc}") from exc

        try:
            return cls.model_validate(data or {})
        except ValidationError as err:
            raise RuntimeError(f"Invalid configuration:\n{err}") from err

    @classmethod
    def load_or_default(cls, path: Path | None = None) -> StoreSettings:
        """Load configuration, falling back to built-in defaults.

        An explicit ``path`` must exist; only the default search may come up empty.
        """
        if path is None and cls.find_config() is None:
            logger.debug("No config file found, using built-in defaults")
            return cls()
        return cls.load(path)
