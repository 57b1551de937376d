"""Settings store core.

This package provides:
- PreferenceStore: durable, observable key/value store
- Subscription: live observation of one key
- JsonFileBackend: file-backed durable medium
- SettingsStore / PersistenceBackend: capabilities consumers and media implement
"""

from prefstore.store.backend import JsonFileBackend
from prefstore.store.core import PreferenceStore
from prefstore.store.keys import MAX_KEY_LENGTH, validate_key
from prefstore.store.protocols import MemoryBackend, PersistenceBackend, SettingsStore
from prefstore.store.subscription import Subscription

__all__ = [
    "MAX_KEY_LENGTH",
    "JsonFileBackend",
    "MemoryBackend",
    "PersistenceBackend",
    "PreferenceStore",
    "SettingsStore",
    "Subscription",
    "validate_key",
]
