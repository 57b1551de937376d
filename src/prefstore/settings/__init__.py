"""Application settings management.

This package provides:
- StoreSettings: User-configurable settings loaded from prefstore.yaml
- ApplicationSettings: Resolved paths and settings for building the store
"""

from prefstore.settings.application import ApplicationSettings, StorePaths
from prefstore.settings.user import StoreSettings

__all__ = ["ApplicationSettings", "StorePaths", "StoreSettings"]
