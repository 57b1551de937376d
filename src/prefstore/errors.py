"""Exception classes for preference storage.

This module defines the hierarchy of errors raised by the settings store
when keys are malformed, when the durable medium rejects a write, or when
an active subscription can no longer read its key.
"""

from __future__ import annotations

from typing import Optional


class PreferenceStoreError(Exception):
    """Base error for all settings store failures.

    Includes the affected key and the underlying exception when
    available.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            key: Key the failing operation targeted, if any
            original_error: The original exception that was caught
        """
        super().__init__(f"[{key}] {message}" if key is not None else message)
        self.message: str = message
        self.key: Optional[str] = key
        self.original_error: Optional[BaseException] = original_error

    @property
    def is_caller_error(self) -> bool:
        """Check if the error stems from invalid caller input.

        Returns:
            True when retrying with the same arguments can never succeed
        """
        return False


class InvalidKeyError(PreferenceStoreError, ValueError):
    """Raised synchronously when a key is empty or malformed."""

    @property
    def is_caller_error(self) -> bool:
        return True


class PersistenceError(PreferenceStoreError):
    """Raised when the durable medium fails to load or commit.

    The stored and observable value of the key is left unchanged.
    """

    pass


class ObservationError(PreferenceStoreError):
    """Raised to an observer when the medium becomes unreadable.

    Terminal for the affected subscription: no further values follow.
    """

    pass
