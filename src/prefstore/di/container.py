# src/prefstore/di/container.py
"""Dependency injection container."""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any, Callable, Dict, Final, Optional, Type, TypeVar

from prefstore.settings.application import ApplicationSettings
from prefstore.store.backend import JsonFileBackend
from prefstore.store.core import PreferenceStore
from prefstore.store.protocols import SettingsStore

T = TypeVar("T")

logger: Final = logging.getLogger(__name__)


class ServiceLocator:
    """Service locator pattern implementation."""

    _instance = None
    _services: Dict[str, Any] = {}
    _lock = threading.RLock()

    def __new__(cls) -> "ServiceLocator":
        """Singleton implementation."""
        if cls._instance is None:
            cls._instance = super(ServiceLocator, cls).__new__(cls)
        return cls._instance

    def register(self, interface_cls: Type[T], implementation: T) -> None:
        """Register a service implementation.

        Args:
            interface_cls: Interface/class type
            implementation: Implementation instance
        """
        with self._lock:
            self._services[interface_cls.__name__] = implementation

    def resolve(self, interface_cls: Type[T]) -> Optional[T]:
        """Resolve a service implementation.

        Args:
            interface_cls: Interface/class to resolve

        Returns:
            Instance of the requested service or None if not registered
        """
        return self._services.get(interface_cls.__name__)

    def resolve_or_create(self, interface_cls: Type[T], factory: Callable[[], T]) -> T:
        """Resolve a service, creating and registering it on first access.

        Args:
            interface_cls: Interface/class to resolve
            factory: Builds the implementation when none is registered

        Returns:
            The registered instance; concurrent callers get the same one
        """
        with self._lock:
            service = self.resolve(interface_cls)
            if service is None:
                service = factory()
                self.register(interface_cls, service)
            return service

    def unregister(self, interface_cls: Type[T]) -> Optional[T]:
        """Forget a service, returning it if one was registered."""
        with self._lock:
            return self._services.pop(interface_cls.__name__, None)


def create_store(settings: ApplicationSettings) -> PreferenceStore:
    """Build a file-backed store from application settings."""
    user = settings.user
    store = PreferenceStore(
        JsonFileBackend(settings.store_file, fsync=user.fsync),
        default=user.default_value,
        defaults=user.defaults,
        subscriber_buffer=user.subscriber_buffer,
    )
    logger.debug("Created preference store at %s", settings.store_file)
    return store


def get_store(settings: ApplicationSettings | None = None) -> SettingsStore:
    """Return the process-wide store, creating it on first access.

    Args:
        settings: Used only when the store does not exist yet
            (default: ApplicationSettings.load())

    Returns:
        The store registered under SettingsStore
    """

    def factory() -> SettingsStore:
        store = create_store(settings or ApplicationSettings.load())
        atexit.register(store.close)
        return store

    return ServiceLocator().resolve_or_create(SettingsStore, factory)


def reset_store() -> None:
    """Close and forget the process-wide store (tests, reconfiguration)."""
    store = ServiceLocator().unregister(SettingsStore)
    if isinstance(store, PreferenceStore):
        store.close()
        atexit.unregister(store.close)
