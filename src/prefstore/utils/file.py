"""File utility functions."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Final

logger: Final = logging.getLogger(__name__)


def ensure_directory_exists(directory: Path) -> None:
    """Create directory if it doesn't exist.

    Args:
        directory: Path to create
    """
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True)
        logger.debug("Created directory: %s", directory)


def get_file_size(file_path: Path) -> int:
    """Get file size in bytes.

    Args:
        file_path: Path to file

    Returns:
        File size in bytes
    """
    if not file_path.exists():
        return 0
    return os.path.getsize(file_path)


def atomic_write_text(path: Path, text: str, fsync: bool = True) -> None:
    """Replace ``path`` with ``text`` so readers see the old or the new file.

    The content goes to a temporary sibling first, is flushed (and fsynced
    when requested) and then moved over the target with ``os.replace``.

    Args:
        path: Destination file
        text: Full new content
        fsync: Force the data to stable storage before the rename

    Raises:
        OSError: If any step up to the rename fails; the target is untouched
            and the temporary file is removed. A failing directory fsync after
            the rename is only logged.
    """
    ensure_directory_exists(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            if fsync:
                os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    # The new content is in place from here on; only the rename's durability is at stake
    if fsync:
        try:
            _fsync_directory(path.parent)
        except OSError as exc:
            logger.warning("Unable to fsync directory %s: %s", path.parent, exc)
    logger.debug("Replaced %s (%d bytes)", path, len(text))


def _fsync_directory(directory: Path) -> None:
    # Directory fsync makes the rename itself durable; unsupported on Windows.
    if os.name != "posix":
        return
    dir_fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
