# filepath: src/prefstore/store/core.py
"""Durable, observable store for named string settings."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import defaultdict
from collections.abc import Mapping
from typing import Final

from prefstore.errors import ObservationError, PersistenceError
from prefstore.store.keys import validate_key, validate_value
from prefstore.store.protocols import PersistenceBackend
from prefstore.store.subscription import Subscription

logger: Final = logging.getLogger(__name__)


class PreferenceStore:
    """Settings store with per-key subscriptions and durable writes.

    The store keeps an in-memory view of the medium, loaded on first use.
    A write commits to the backend (off the event loop) and only then
    updates the view and pushes the new value to the key's subscribers.
    Updating the view and notifying happen without yielding to the event
    loop, so a subscription attaching concurrently sees either the old value
    followed by the new one, or the new one directly.

    Writes to the same key are serialized in call order; writes to
    different keys run concurrently.

    Examples:
        store = PreferenceStore(JsonFileBackend(Path("prefs.json")))
        await store.write("username", "Ada")
        async for name in store.observe("username"):
            ...
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        default: str = "",
        defaults: Mapping[str, str] | None = None,
        subscriber_buffer: int = 0,
    ):
        """Initialize the store.

        Args:
            backend: Durable medium
            default: Value reported for keys that were never written
            defaults: Per-key defaults taking precedence over ``default``
            subscriber_buffer: Pending values each subscription keeps (0 = unbounded)
        """
        self.backend = backend
        self.default = default
        self.defaults: dict[str, str] = {
            validate_key(k): validate_value(k, v) for k, v in (defaults or {}).items()
        }
        self.subscriber_buffer = subscriber_buffer

        self._values: dict[str, str] | None = None
        self._subscribers: dict[str, weakref.WeakSet[Subscription]] = defaultdict(weakref.WeakSet)
        # Keys committed while a reload reads the medium
        self._touched: set[str] | None = None

        # Loop-bound state, rebuilt whenever the store is used from a new event loop
        self._loop: asyncio.AbstractEventLoop | None = None
        self._load_lock = asyncio.Lock()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_users: dict[str, int] = {}
        self._pending_writes: set[asyncio.Task[None]] = set()

    # ---- public API ----
    def observe(self, key: str, default: str | None = None) -> Subscription:
        """Subscribe to the values of a key.

        Args:
            key: Setting identifier
            default: Value reported while the key is unwritten, for this
                subscription only; a per-key default from ``defaults`` still wins

        Returns:
            Subscription yielding the current value, then every committed change

        Raises:
            InvalidKeyError: If the key is malformed
        """
        validate_key(key)
        if default is not None:
            validate_value(key, default)
        return Subscription(self, key, max_buffer=self.subscriber_buffer, default=default)

    def write(self, key: str, value: str) -> asyncio.Future[None]:
        """Durably replace the value at a key.

        The commit runs as its own task: cancelling the caller's await does
        not cancel the write, which completes exactly once.

        Args:
            key: Setting identifier
            value: New value

        Returns:
            Awaitable completing once the value is committed and published

        Raises:
            InvalidKeyError: If the key is malformed (raised at call time)
            TypeError: If the value is not a string (raised at call time)
            PersistenceError: From the awaitable, if the commit fails
        """
        validate_key(key)
        validate_value(key, value)

        loop = asyncio.get_running_loop()
        self._bind_loop(loop)
        task = loop.create_task(self._commit(key, value))
        self._pending_writes.add(task)
        task.add_done_callback(self._write_done)
        return asyncio.shield(task)

    async def get(self, key: str, default: str | None = None) -> str:
        """Return the current value of a key (or its default, see ``observe``)."""
        validate_key(key)
        try:
            values = await self._ensure_loaded()
        except PersistenceError as exc:
            raise ObservationError(exc.message, key=key, original_error=exc) from exc
        return self._resolve(key, values, default)

    async def reload(self) -> None:
        """Re-read the medium and publish values that changed there.

        Keys being written while the medium is read keep the store's value.

        Raises:
            ObservationError: If the medium is unreadable; every active
                subscription is terminated with the same error
        """
        self._bind_loop(asyncio.get_running_loop())
        async with self._load_lock:
            self._touched = set()
            try:
                fresh = await asyncio.to_thread(self.backend.load)
            except (PersistenceError, OSError) as exc:
                error = ObservationError(
                    f"Settings medium became unreadable: {exc}", original_error=exc
                )
                self._fail_all(error)
                raise error from exc
            else:
                touched = self._touched
            finally:
                self._touched = None

            if self._values is None:
                self._values = fresh
                return

            changed = 0
            for key in set(fresh) | set(self._values):
                if key in touched or self._is_writing(key):
                    continue
                old = self._values.get(key)
                new = fresh.get(key)
                if new == old:
                    continue
                if new is None:
                    del self._values[key]
                else:
                    self._values[key] = new
                changed += 1
                self._publish_change(key, old, new)
            logger.debug("Reloaded %s: %d changed keys", self.backend, changed)

    async def drain(self) -> None:
        """Wait until every in-flight write has finished."""
        while self._pending_writes:
            await asyncio.wait(set(self._pending_writes))

    def close(self) -> None:
        """End every active subscription."""
        for subscribers in list(self._subscribers.values()):
            for sub in list(subscribers):
                sub.close()
        self._subscribers.clear()

    def subscriber_count(self, key: str) -> int:
        """Number of live subscriptions attached to a key."""
        return len(self._subscribers.get(key, ()))

    # ---- subscription hooks ----
    async def _attach(self, sub: Subscription) -> None:
        try:
            values = await self._ensure_loaded()
        except PersistenceError as exc:
            error = ObservationError(exc.message, key=sub.key, original_error=exc)
            sub._fail(error)
            raise error from exc

        if sub.closed:
            return
        self._subscribers[sub.key].add(sub)
        sub._push(self._resolve(sub.key, values, sub.default))
        logger.debug("Subscription attached to %r", sub.key)

    def _detach(self, sub: Subscription) -> None:
        subscribers = self._subscribers.get(sub.key)
        if subscribers is not None:
            subscribers.discard(sub)

    # ---- internals ----
    def _bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        if loop is self._loop:
            return
        if self._loop is not None:
            logger.debug("Store used from a new event loop, resetting locks")
        self._loop = loop
        self._load_lock = asyncio.Lock()
        self._key_locks = {}
        self._key_users = {}
        self._pending_writes = set()

    async def _ensure_loaded(self) -> dict[str, str]:
        if self._values is not None:
            return self._values
        self._bind_loop(asyncio.get_running_loop())
        async with self._load_lock:
            if self._values is None:
                try:
                    self._values = await asyncio.to_thread(self.backend.load)
                except OSError as exc:
                    raise PersistenceError(
                        f"Unable to load settings: {exc}", original_error=exc
                    ) from exc
                logger.debug("Loaded %d settings from %s", len(self._values), self.backend)
            return self._values

    async def _commit(self, key: str, value: str) -> None:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                await self._commit_locked(key, value)
        finally:
            # Forget the lock once no write for the key is running or queued
            if self._key_locks.get(key) is lock:
                self._key_users[key] -= 1
                if not self._key_users[key]:
                    del self._key_users[key]
                    del self._key_locks[key]

    async def _commit_locked(self, key: str, value: str) -> None:
        values = await self._ensure_loaded()
        if key in values and values[key] == value:
            logger.debug("Value for %r unchanged, skipping commit", key)
            return

        try:
            await asyncio.to_thread(self.backend.commit, key, value)
        except PersistenceError:
            raise
        except (OSError, ValueError) as exc:
            raise PersistenceError(
                f"Unable to commit: {exc}", key=key, original_error=exc
            ) from exc

        values[key] = value
        if self._touched is not None:
            self._touched.add(key)
        self._publish(key, value)

    def _publish(self, key: str, value: str) -> None:
        for sub in list(self._subscribers.get(key, ())):
            sub._push(value)

    def _publish_change(self, key: str, old: str | None, new: str | None) -> None:
        # None means unwritten: each subscription falls back to its own default
        for sub in list(self._subscribers.get(key, ())):
            before = old if old is not None else self._resolve(key, {}, sub.default)
            after = new if new is not None else self._resolve(key, {}, sub.default)
            if after != before:
                sub._push(after)

    def _fail_all(self, error: ObservationError) -> None:
        for subscribers in list(self._subscribers.values()):
            for sub in list(subscribers):
                sub._fail(error)

    def _is_writing(self, key: str) -> bool:
        return key in self._key_locks

    def _resolve(self, key: str, values: Mapping[str, str], default: str | None = None) -> str:
        if key in values:
            return values[key]
        if key in self.defaults:
            return self.defaults[key]
        return default if default is not None else self.default

    def _write_done(self, task: asyncio.Task[None]) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # The error also reaches whoever awaits the write
            logger.debug("Write failed: %s", exc)
