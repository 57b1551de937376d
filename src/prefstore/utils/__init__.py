"""Common utility functions and helpers for the prefstore package."""

from prefstore.utils.file import atomic_write_text, ensure_directory_exists, get_file_size

__all__ = [
    "atomic_write_text",
    "ensure_directory_exists",
    "get_file_size",
]
