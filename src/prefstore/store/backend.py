"""File-backed durable medium for the settings store."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Final

from prefstore.errors import PersistenceError
from prefstore.utils.file import atomic_write_text, get_file_size

logger: Final = logging.getLogger(__name__)


class JsonFileBackend:
    """Persist all settings as one JSON object file.

    Every commit rewrites the whole snapshot through an atomic replace, so
    the file on disk always holds a complete mapping. Commits from several
    threads are serialized by an internal lock.
    """

    def __init__(self, path: Path, fsync: bool = True) -> None:
        """Initialize the backend.

        Args:
            path: Location of the JSON file (created on first commit)
            fsync: Force each commit to stable storage before it completes
        """
        self.path = Path(path)
        self.fsync = fsync
        self._lock = threading.Lock()
        self._snapshot: dict[str, str] | None = None

    def load(self) -> dict[str, str]:
        """Read the file and return its key/value pairs.

        Returns:
            Mapping of keys to values; empty when the file does not exist yet

        Raises:
            PersistenceError: If the file is unreadable or not a string mapping
        """
        with self._lock:
            self._snapshot = self._read()
            return dict(self._snapshot)

    def commit(self, key: str, value: str) -> None:
        """Write a single key, keeping every other key as it is.

        Raises:
            PersistenceError: If the new snapshot cannot be written; the
                previous file and snapshot are left in place
        """
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._read()

            updated = dict(self._snapshot)
            updated[key] = value
            try:
                text = json.dumps(updated, ensure_ascii=False, indent=2, sort_keys=True)
                atomic_write_text(self.path, text, fsync=self.fsync)
            except (OSError, ValueError) as exc:
                raise PersistenceError(
                    f"Unable to commit to {self.path}: {exc}", key=key, original_error=exc
                ) from exc

            self._snapshot = updated
            logger.debug("Committed %r to %s", key, self.path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            logger.debug("No settings file at %s, starting empty", self.path)
            return {}

        try:
            raw: Any = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise PersistenceError(
                f"Unable to read {self.path}: {exc}", original_error=exc
            ) from exc
        except json.JSONDecodeError as exc:
            raise PersistenceError(
                f"Corrupt settings file {self.path}: {exc}", original_error=exc
            ) from exc

        if not isinstance(raw, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
        ):
            raise PersistenceError(f"Settings file {self.path} is not a string mapping")

        logger.debug(
            "Loaded %d settings (%d bytes) from %s", len(raw), get_file_size(self.path), self.path
        )
        return raw

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"
