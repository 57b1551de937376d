"""Typed accessors for individual settings.

The store only holds strings. A ``Preference`` binds a key to a default
and a codec so callers can observe and save ints, floats and booleans
without repeating the conversion at every call site.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from typing import Final, Generic, TypeVar

from prefstore.store.core import PreferenceStore
from prefstore.store.keys import validate_key
from prefstore.store.protocols import SettingsStore

logger: Final = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Codec(Generic[T]):
    """Conversion between a scalar type and its stored string form."""

    encode: Callable[[T], str]
    decode: Callable[[str], T]


def _decode_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


STRING: Final[Codec[str]] = Codec(encode=str, decode=str)
INTEGER: Final[Codec[int]] = Codec(encode=str, decode=int)
FLOAT: Final[Codec[float]] = Codec(encode=repr, decode=float)
BOOLEAN: Final[Codec[bool]] = Codec(
    encode=lambda v: "true" if v else "false", decode=_decode_bool
)


async def read_current(store: SettingsStore, key: str, default: str | None = None) -> str:
    """Return the first value ``store.observe(key)`` produces.

    Works with any SettingsStore; the subscription is released right after.
    ``default`` replaces the store's default for an unwritten key when the
    store supports it.
    """
    if isinstance(store, PreferenceStore):
        return await store.get(key, default)

    values = store.observe(key)
    try:
        return await anext(values)
    finally:
        close = getattr(values, "aclose", None)
        if close is not None:
            await close()


class Preference(Generic[T]):
    """A named setting with a typed default.

    Examples:
        volume = Preference("volume", 5, INTEGER)
        await volume.set(store, 7)
        async for level in volume.observe(store):
            ...
    """

    def __init__(self, key: str, default: T, codec: Codec[T]):
        """Initialize the preference.

        Args:
            key: Store key (validated immediately)
            default: Value used while the key is unwritten or undecodable
            codec: Conversion to and from the stored string

        Raises:
            InvalidKeyError: If the key is malformed
        """
        self.key = validate_key(key)
        self.default = default
        self.codec = codec

    def decode(self, raw: str) -> T:
        """Convert a stored string, falling back to the default."""
        try:
            return self.codec.decode(raw)
        except ValueError:
            if raw:
                logger.warning("Undecodable value %r for %r, using default", raw, self.key)
            return self.default

    async def observe(self, store: SettingsStore) -> AsyncGenerator[T, None]:
        """Yield the decoded current value, then every committed change."""
        if isinstance(store, PreferenceStore):
            values = store.observe(self.key, default=self.codec.encode(self.default))
        else:
            values = store.observe(self.key)
        try:
            async for raw in values:
                yield self.decode(raw)
        finally:
            close = getattr(values, "aclose", None)
            if close is not None:
                await close()

    async def get(self, store: SettingsStore) -> T:
        """Return the decoded current value."""
        raw = await read_current(store, self.key, self.codec.encode(self.default))
        return self.decode(raw)

    async def set(self, store: SettingsStore, value: T) -> None:
        """Encode and durably write a value."""
        await store.write(self.key, self.codec.encode(value))

    def __repr__(self) -> str:
        return f"Preference({self.key!r}, default={self.default!r})"


class UserPreferences:
    """User-facing preferences of the demo application.

    Mirrors the single-screen app: show the saved name and save a new one.
    """

    name = Preference("username", "", STRING)

    def __init__(self, store: SettingsStore):
        self.store = store

    def observe_name(self) -> AsyncGenerator[str, None]:
        return self.name.observe(self.store)

    async def get_name(self) -> str:
        return await self.name.get(self.store)

    async def save_name(self, name: str) -> None:
        await self.name.set(self.store, name)
