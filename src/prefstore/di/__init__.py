"""Dependency wiring for the process-wide store."""

from prefstore.di.container import ServiceLocator, create_store, get_store, reset_store

__all__ = ["ServiceLocator", "create_store", "get_store", "reset_store"]
