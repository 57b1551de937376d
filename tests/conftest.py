from collections.abc import Generator
from pathlib import Path

import pytest

from prefstore.di.container import reset_store
from prefstore.store import JsonFileBackend, MemoryBackend, PreferenceStore


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Keep every test away from real config files and the real data directory."""
    monkeypatch.setenv("PREFSTORE_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("PREFSTORE_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    reset_store()
    yield
    reset_store()


@pytest.fixture
def store_file(tmp_path: Path) -> Path:
    return tmp_path / "data" / "preferences.json"


@pytest.fixture
def file_store(store_file: Path) -> PreferenceStore:
    return PreferenceStore(JsonFileBackend(store_file))


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def memory_store(memory_backend: MemoryBackend) -> PreferenceStore:
    return PreferenceStore(memory_backend)
