"""Behavior of the observable settings store."""

from __future__ import annotations

import asyncio
import gc
import json
import logging
import time
from pathlib import Path

import pytest

from prefstore.errors import InvalidKeyError, ObservationError, PersistenceError
from prefstore.store import JsonFileBackend, MemoryBackend, PreferenceStore
from prefstore.store.protocols import (
    ErrorSimulatingBackend,
    SlowBackend,
    assert_backend_committed,
    assert_no_commits,
)
from prefstore.utils import file as file_utils


async def _first(store: PreferenceStore, key: str) -> str:
    async with store.observe(key) as values:
        return await anext(values)


def test_unwritten_key_emits_default(file_store: PreferenceStore) -> None:
    assert asyncio.run(_first(file_store, "username")) == ""


def test_configured_defaults() -> None:
    store = PreferenceStore(MemoryBackend(), default="n/a", defaults={"theme": "dark"})

    async def scenario() -> tuple[str, str]:
        return await _first(store, "theme"), await _first(store, "locale")

    assert asyncio.run(scenario()) == ("dark", "n/a")


def test_read_after_write(file_store: PreferenceStore) -> None:
    async def scenario() -> str:
        await file_store.write("username", "Ada")
        return await _first(file_store, "username")

    assert asyncio.run(scenario()) == "Ada"


def test_value_survives_new_store_on_same_file(store_file: Path) -> None:
    asyncio.run(_write_once(PreferenceStore(JsonFileBackend(store_file)), "username", "Ada"))

    reopened = PreferenceStore(JsonFileBackend(store_file))
    assert asyncio.run(_first(reopened, "username")) == "Ada"
    assert json.loads(store_file.read_text()) == {"username": "Ada"}


async def _write_once(store: PreferenceStore, key: str, value: str) -> None:
    await store.write(key, value)


def test_subscriber_sees_default_then_written_value(file_store: PreferenceStore) -> None:
    async def scenario() -> list[str]:
        async with file_store.observe("username") as names:
            seen = [await anext(names)]
            await file_store.write("username", "Ada")
            seen.append(await anext(names))
            fresh = await _first(file_store, "username")
        return seen + [fresh]

    assert asyncio.run(scenario()) == ["", "Ada", "Ada"]


def test_every_subscriber_receives_updates(memory_store: PreferenceStore) -> None:
    async def scenario() -> tuple[list[str], list[str]]:
        first = memory_store.observe("username")
        second = memory_store.observe("username")
        a = [await anext(first)]
        b = [await anext(second)]
        await memory_store.write("username", "Ada")
        await memory_store.write("username", "Grace")
        a += [await anext(first), await anext(first)]
        b += [await anext(second), await anext(second)]
        first.close()
        second.close()
        return a, b

    a, b = asyncio.run(scenario())
    assert a == b == ["", "Ada", "Grace"]


def test_write_does_not_notify_other_keys(memory_store: PreferenceStore) -> None:
    async def scenario() -> None:
        async with memory_store.observe("theme") as themes:
            assert await anext(themes) == ""
            await memory_store.write("username", "Ada")
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(anext(themes), timeout=0.05)

    asyncio.run(scenario())


def test_failed_write_leaves_value_unchanged() -> None:
    backend = ErrorSimulatingBackend(initial={"username": "Ada"})
    store = PreferenceStore(backend)

    async def scenario() -> str:
        async with store.observe("username") as names:
            assert await anext(names) == "Ada"
            backend.fail_on_methods.append("commit")
            with pytest.raises(PersistenceError) as excinfo:
                await store.write("username", "Grace")
            assert excinfo.value.key == "username"
            assert isinstance(excinfo.value.original_error, OSError)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(anext(names), timeout=0.05)
        return await _first(store, "username")

    assert asyncio.run(scenario()) == "Ada"
    assert backend.data == {"username": "Ada"}


def test_failed_file_write_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = PreferenceStore(JsonFileBackend(blocker / "preferences.json"))

    async def scenario() -> str:
        with pytest.raises(PersistenceError):
            await store.write("username", "Ada")
        return await _first(store, "username")

    assert asyncio.run(scenario()) == ""


def test_directory_fsync_failure_after_rename_counts_as_committed(
    store_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = PreferenceStore(JsonFileBackend(store_file))
    asyncio.run(_write_once(store, "username", "Ada"))

    def failing_fsync(directory: Path) -> None:
        raise OSError(5, "Input/output error")

    monkeypatch.setattr(file_utils, "_fsync_directory", failing_fsync)

    asyncio.run(_write_once(store, "username", "Grace"))

    reopened = PreferenceStore(JsonFileBackend(store_file))
    assert asyncio.run(store.get("username")) == "Grace"
    assert asyncio.run(reopened.get("username")) == "Grace"


def test_same_value_twice_commits_once(
    memory_store: PreferenceStore, memory_backend: MemoryBackend
) -> None:
    async def scenario() -> str:
        await memory_store.write("username", "Ada")
        await memory_store.write("username", "Ada")
        return await _first(memory_store, "username")

    assert asyncio.run(scenario()) == "Ada"
    assert len(memory_backend.commit_calls) == 1
    assert_backend_committed(memory_backend, "username", "Ada")


def test_writing_the_default_to_an_unwritten_key_is_persisted(
    memory_store: PreferenceStore, memory_backend: MemoryBackend
) -> None:
    asyncio.run(_write_once(memory_store, "username", ""))
    assert memory_backend.data == {"username": ""}


def test_concurrent_writers_leave_one_whole_value(
    file_store: PreferenceStore, store_file: Path
) -> None:
    async def scenario() -> str:
        await asyncio.gather(
            file_store.write("username", "Ada"),
            file_store.write("username", "Grace"),
        )
        return await _first(file_store, "username")

    value = asyncio.run(scenario())
    assert value in ("Ada", "Grace")
    assert json.loads(store_file.read_text()) == {"username": value}


def test_same_key_writes_apply_in_call_order() -> None:
    backend = SlowBackend(delay=0.01)
    store = PreferenceStore(backend)

    async def scenario() -> list[str]:
        async with store.observe("counter") as values:
            seen = [await anext(values)]
            await asyncio.gather(*(store.write("counter", str(i)) for i in range(5)))
            for _ in range(5):
                seen.append(await anext(values))
        return seen

    assert asyncio.run(scenario()) == ["", "0", "1", "2", "3", "4"]
    assert [call["value"] for call in backend.commit_calls] == ["0", "1", "2", "3", "4"]


def test_writes_to_different_keys_run_concurrently() -> None:
    backend = SlowBackend(delay=0.3)
    store = PreferenceStore(backend)

    async def scenario() -> float:
        await store.get("warmup")
        started = time.perf_counter()
        await asyncio.gather(store.write("a", "1"), store.write("b", "2"))
        return time.perf_counter() - started

    elapsed = asyncio.run(scenario())
    assert elapsed < 0.55
    assert backend.data == {"a": "1", "b": "2"}


def test_cancelled_writer_still_commits() -> None:
    backend = SlowBackend(delay=0.1)
    store = PreferenceStore(backend)

    async def scenario() -> None:
        async def writer() -> None:
            await store.write("username", "Ada")

        task = asyncio.create_task(writer())
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await store.drain()

    asyncio.run(scenario())
    assert_backend_committed(backend, "username", "Ada")
    assert len(backend.commit_calls) == 1


@pytest.mark.parametrize("key", ["", "  padded", "tab\tinside", 42])
def test_invalid_keys_rejected_at_call_time(memory_store: PreferenceStore, key: object) -> None:
    with pytest.raises(InvalidKeyError):
        memory_store.observe(key)  # type: ignore[arg-type]
    with pytest.raises(InvalidKeyError):
        memory_store.write(key, "value")  # type: ignore[arg-type]


def test_non_string_value_rejected(
    memory_store: PreferenceStore, memory_backend: MemoryBackend
) -> None:
    with pytest.raises(TypeError):
        memory_store.write("volume", 5)  # type: ignore[arg-type]
    assert_no_commits(memory_backend)


def test_closing_subscription_ends_iteration(memory_store: PreferenceStore) -> None:
    async def scenario() -> list[str]:
        seen: list[str] = []
        subscription = memory_store.observe("username")
        async for value in subscription:
            seen.append(value)
            if len(seen) == 1:
                await memory_store.write("username", "Ada")
            else:
                subscription.close()
        assert memory_store.subscriber_count("username") == 0
        return seen

    assert asyncio.run(scenario()) == ["", "Ada"]


def test_close_discards_pending_values(memory_store: PreferenceStore) -> None:
    async def scenario() -> None:
        subscription = memory_store.observe("username")
        await anext(subscription)
        await memory_store.write("username", "Ada")
        subscription.close()
        with pytest.raises(StopAsyncIteration):
            await anext(subscription)

    asyncio.run(scenario())


def test_dropped_subscription_is_released(memory_store: PreferenceStore) -> None:
    async def scenario() -> None:
        subscription = memory_store.observe("username")
        await anext(subscription)
        assert memory_store.subscriber_count("username") == 1
        del subscription
        gc.collect()
        assert memory_store.subscriber_count("username") == 0
        await memory_store.write("username", "Ada")

    asyncio.run(scenario())


def test_unreadable_medium_fails_subscription() -> None:
    store = PreferenceStore(ErrorSimulatingBackend(fail_on_methods=["load"]))

    async def scenario() -> None:
        subscription = store.observe("username")
        with pytest.raises(ObservationError) as excinfo:
            await anext(subscription)
        assert excinfo.value.key == "username"
        with pytest.raises(ObservationError):
            await anext(subscription)

    asyncio.run(scenario())


def test_unreadable_medium_fails_write() -> None:
    store = PreferenceStore(ErrorSimulatingBackend(fail_on_methods=["load"]))

    async def scenario() -> None:
        with pytest.raises(PersistenceError):
            await store.write("username", "Ada")

    asyncio.run(scenario())


def test_corrupt_file_fails_subscription(store_file: Path) -> None:
    store_file.parent.mkdir(parents=True)
    store_file.write_text("{not json")
    store = PreferenceStore(JsonFileBackend(store_file))

    with pytest.raises(ObservationError):
        asyncio.run(_first(store, "username"))


def test_reload_publishes_changes_from_the_medium(store_file: Path) -> None:
    reader = PreferenceStore(JsonFileBackend(store_file))
    writer = PreferenceStore(JsonFileBackend(store_file))

    async def scenario() -> list[str]:
        async with reader.observe("username") as names:
            seen = [await anext(names)]
            await writer.write("username", "Grace")
            await reader.reload()
            seen.append(await anext(names))
            await reader.reload()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(anext(names), timeout=0.05)
        return seen

    assert asyncio.run(scenario()) == ["", "Grace"]


def test_reload_of_unreadable_medium_terminates_subscriptions(store_file: Path) -> None:
    store = PreferenceStore(JsonFileBackend(store_file))

    async def scenario() -> None:
        subscription = store.observe("username")
        await store.write("username", "Ada")
        assert await anext(subscription) == "Ada"
        store_file.write_text("[]")
        with pytest.raises(ObservationError):
            await store.reload()
        with pytest.raises(ObservationError):
            await anext(subscription)
        assert store.subscriber_count("username") == 0

    asyncio.run(scenario())


def test_slow_subscriber_keeps_newest_value() -> None:
    store = PreferenceStore(MemoryBackend(), subscriber_buffer=1)

    async def scenario() -> tuple[str, int]:
        async with store.observe("username") as names:
            await anext(names)
            for name in ("Ada", "Grace", "Linus"):
                await store.write("username", name)
            return await anext(names), names.dropped

    assert asyncio.run(scenario()) == ("Linus", 2)


def test_get_returns_current_value(memory_store: PreferenceStore) -> None:
    async def scenario() -> tuple[str, str]:
        before = await memory_store.get("username")
        await memory_store.write("username", "Ada")
        return before, await memory_store.get("username")

    assert asyncio.run(scenario()) == ("", "Ada")


def test_per_call_default_does_not_change_other_consumers() -> None:
    store = PreferenceStore(MemoryBackend(), default="guest")

    async def scenario() -> tuple[str, str, str]:
        first = await store.get("volume", default="5")
        async with store.observe("volume", default="7") as levels:
            second = await anext(levels)
        return first, second, await store.get("volume")

    assert asyncio.run(scenario()) == ("5", "7", "guest")


def test_configured_key_default_wins_over_per_call_default() -> None:
    store = PreferenceStore(MemoryBackend(), defaults={"volume": "3"})
    assert asyncio.run(store.get("volume", default="5")) == "3"


def test_reload_of_removed_key_restores_each_subscribers_default(store_file: Path) -> None:
    store_file.parent.mkdir(parents=True)
    store_file.write_text(json.dumps({"volume": "9"}))
    store = PreferenceStore(JsonFileBackend(store_file))

    async def scenario() -> tuple[list[str], list[str]]:
        plain = store.observe("volume")
        typed = store.observe("volume", default="5")
        a = [await anext(plain)]
        b = [await anext(typed)]
        store_file.write_text("{}")
        await store.reload()
        a.append(await anext(plain))
        b.append(await anext(typed))
        await plain.aclose()
        await typed.aclose()
        return a, b

    assert asyncio.run(scenario()) == (["9", ""], ["9", "5"])


def test_store_survives_consecutive_event_loops() -> None:
    store = PreferenceStore(SlowBackend(delay=0.01))

    async def contended_writes() -> str:
        await asyncio.gather(store.write("counter", "1"), store.write("counter", "2"))
        return await store.get("counter")

    assert asyncio.run(contended_writes()) == "2"
    assert asyncio.run(contended_writes()) == "2"

    async def reload_and_write() -> str:
        await store.reload()
        await asyncio.gather(store.write("counter", "3"), store.write("counter", "4"))
        return await store.get("counter")

    assert asyncio.run(reload_and_write()) == "4"


def test_finished_writes_release_their_locks() -> None:
    store = PreferenceStore(SlowBackend(delay=0.01))

    async def scenario() -> None:
        await asyncio.gather(*(store.write(f"key{i}", "x") for i in range(5)))
        await store.write("key0", "y")
        await store.reload()

    asyncio.run(scenario())
    assert store._key_locks == {}
    assert store._key_users == {}


def test_store_close_ends_all_subscriptions(memory_store: PreferenceStore) -> None:
    async def scenario() -> list[str]:
        seen: list[str] = []
        subscription = memory_store.observe("username")
        seen.append(await anext(subscription))
        memory_store.close()
        async for value in subscription:
            seen.append(value)
        return seen

    assert asyncio.run(scenario()) == [""]


def test_awaited_write_failure_is_not_logged_as_warning(
    caplog: pytest.LogCaptureFixture,
) -> None:
    store = PreferenceStore(ErrorSimulatingBackend(["commit"]))

    async def scenario() -> None:
        with pytest.raises(PersistenceError):
            await store.write("username", "Ada")

    with caplog.at_level(logging.DEBUG, logger="prefstore.store.core"):
        asyncio.run(scenario())

    assert "Write failed" in caplog.text
    assert not [
        r for r in caplog.records if r.name.startswith("prefstore") and r.levelno >= logging.WARNING
    ]
