"""Live observation of a single key."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from types import TracebackType
from typing import TYPE_CHECKING, Final, Optional

if TYPE_CHECKING:
    from prefstore.store.core import PreferenceStore

logger: Final = logging.getLogger(__name__)


class Subscription:
    """Async iterator over the values of one key.

    The subscription takes effect when iteration starts: the first element
    is the key's current value (or its default) and every later element is
    a committed change. Iteration ends when the subscription is closed and
    raises ``ObservationError`` if the medium becomes unreadable.

    The store only keeps a weak reference, so dropping the last reference
    releases the subscription as well.

    Examples:
        async with store.observe("username") as names:
            async for name in names:
                print(name)
    """

    def __init__(
        self,
        store: PreferenceStore,
        key: str,
        max_buffer: int = 0,
        default: Optional[str] = None,
    ) -> None:
        """Initialize the subscription.

        Args:
            store: Store delivering the values
            key: Observed key
            max_buffer: Pending values kept before the oldest is dropped (0 = unbounded)
            default: Value reported while the key is unwritten (None = store default)
        """
        self._store = store
        self.key = key
        self.max_buffer = max_buffer
        self.default = default
        self._pending: deque[str] = deque()
        self._wakeup = asyncio.Event()
        self._started = False
        self._closed = False
        self._error: Optional[BaseException] = None
        self.dropped = 0

    @property
    def active(self) -> bool:
        """Whether the subscription is attached and still receiving values."""
        return self._started and not self._closed and self._error is None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration

        if not self._started:
            self._started = True
            await self._store._attach(self)

        while not self._pending:
            if self._error is not None:
                raise self._error
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()

        return self._pending.popleft()

    def close(self) -> None:
        """Stop receiving values; pending values are discarded."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._store._detach(self)
        self._wakeup.set()

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    # ---- store-facing hooks ----
    def _push(self, value: str) -> None:
        if self._closed or self._error is not None:
            return
        self._pending.append(value)
        if self.max_buffer and len(self._pending) > self.max_buffer:
            self._pending.popleft()
            self.dropped += 1
            logger.debug("Subscription to %r dropped a stale value", self.key)
        self._wakeup.set()

    def _fail(self, error: BaseException) -> None:
        if self._closed or self._error is not None:
            return
        self._error = error
        self._pending.clear()
        self._store._detach(self)
        self._wakeup.set()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active" if self.active else "pending"
        return f"<Subscription key={self.key!r} {state}>"
