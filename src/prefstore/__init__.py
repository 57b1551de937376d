"""Durable, observable store for named settings.

Typical use goes through the process-wide store:

    store = get_store()
    await store.write("username", "Ada")
    async for name in store.observe("username"):
        ...
"""

from prefstore.di.container import get_store
from prefstore.errors import (
    InvalidKeyError,
    ObservationError,
    PersistenceError,
    PreferenceStoreError,
)
from prefstore.preferences import Preference, UserPreferences
from prefstore.store import JsonFileBackend, PreferenceStore, SettingsStore, Subscription

__version__ = "0.1.0"

__all__ = [
    "InvalidKeyError",
    "JsonFileBackend",
    "ObservationError",
    "PersistenceError",
    "Preference",
    "PreferenceStore",
    "PreferenceStoreError",
    "SettingsStore",
    "Subscription",
    "UserPreferences",
    "get_store",
]
