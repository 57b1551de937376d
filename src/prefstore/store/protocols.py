# src/prefstore/store/protocols.py
from __future__ import annotations

import threading
import time
from collections.abc import AsyncIterator, Awaitable
from typing import Protocol, runtime_checkable


@runtime_checkable
class SettingsStore(Protocol):
    """Protocol defining the capability consumers depend on.

    Any object exposing ``observe`` and ``write`` can stand in for the
    durable store, which lets tests substitute an in-memory store and keeps
    consumers unaware of the persistence medium.
    """

    def observe(self, key: str) -> AsyncIterator[str]:
        """Subscribe to a key.

        Args:
            key: Setting identifier

        Returns:
            Async iterator yielding the current value, then every committed change
        """
        ...

    def write(self, key: str, value: str) -> Awaitable[None]:
        """Durably replace the value at a key.

        Args:
            key: Setting identifier
            value: New value

        Returns:
            Awaitable that completes once the value is committed
        """
        ...


@runtime_checkable
class PersistenceBackend(Protocol):
    """Protocol defining the interface for durable media.

    Methods are synchronous; the store runs them off the event loop.
    """

    def load(self) -> dict[str, str]:
        """Read every persisted key/value pair.

        Returns:
            A fresh dictionary the caller may keep
        """
        ...

    def commit(self, key: str, value: str) -> None:
        """Persist a single key, replacing any previous value.

        Must either fully succeed or leave the medium unchanged.
        """
        ...


class MemoryBackend:
    """In-memory implementation of PersistenceBackend for testing."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})
        self.load_calls = 0
        self.commit_calls: list[dict[str, str]] = []
        self._lock = threading.Lock()

    def load(self) -> dict[str, str]:
        """Return a copy of the stored data."""
        with self._lock:
            self.load_calls += 1
            return dict(self.data)

    def commit(self, key: str, value: str) -> None:
        """Record the commit and store the value."""
        with self._lock:
            self.commit_calls.append({"key": key, "value": value})
            self.data[key] = value

    def reset_call_history(self) -> None:
        """Reset the call history for testing."""
        self.load_calls = 0
        self.commit_calls = []


class ErrorSimulatingBackend(MemoryBackend):
    """Backend mock that can simulate medium failures."""

    def __init__(
        self,
        fail_on_methods: list[str] | None = None,
        initial: dict[str, str] | None = None,
    ):
        """Initialize with optional methods that should fail.

        Args:
            fail_on_methods: List of method names that should raise exceptions
            initial: Data present before the first load
        """
        super().__init__(initial)
        self.fail_on_methods = fail_on_methods or []

    def load(self) -> dict[str, str]:
        """Either return the data or raise based on configuration."""
        if "load" in self.fail_on_methods:
            raise OSError("Simulated unreadable medium")
        return super().load()

    def commit(self, key: str, value: str) -> None:
        """Either record the commit or raise based on configuration."""
        if "commit" in self.fail_on_methods:
            raise OSError(28, "Simulated disk full")
        super().commit(key, value)


class SlowBackend(MemoryBackend):
    """Backend mock whose commits take a fixed amount of wall time."""

    def __init__(self, delay: float = 0.05, initial: dict[str, str] | None = None):
        super().__init__(initial)
        self.delay = delay

    def commit(self, key: str, value: str) -> None:
        time.sleep(self.delay)
        super().commit(key, value)


def create_memory_backend(initial: dict[str, str] | None = None) -> MemoryBackend:
    """Create and return an in-memory backend for testing."""
    return MemoryBackend(initial)


def create_error_simulating_backend(
    fail_on_methods: list[str] | None = None,
) -> ErrorSimulatingBackend:
    """Create a backend that will fail on specified methods."""
    return ErrorSimulatingBackend(fail_on_methods)


def assert_backend_committed(backend: MemoryBackend, key: str, value: str) -> bool:
    """Assert that the last commit wrote ``value`` at ``key``.

    Args:
        backend: The mock backend instance
        key: The expected key
        value: The expected value

    Returns:
        True if the assertion passes, raises AssertionError otherwise
    """
    assert len(backend.commit_calls) > 0, "Backend was not committed to"
    last_call = backend.commit_calls[-1]
    assert last_call["key"] == key, f"Expected key {key!r}, got {last_call['key']!r}"
    assert last_call["value"] == value, (
        f"Expected value {value!r}, got {last_call['value']!r}"
    )
    return True


def assert_no_commits(backend: MemoryBackend) -> bool:
    """Assert that nothing was committed to the backend."""
    assert not backend.commit_calls, f"Unexpected commits: {backend.commit_calls}"
    return True
