import pytest
from prefstore.errors import (
    PreferenceStoreError,
    InvalidKeyError,
    PersistenceError,
    ObservationError,
)


def test_error_str_includes_key() -> None:
    err = PersistenceError("disk full", key="username")
    assert str(err) == "[username] disk full"
    assert err.message == "disk full"
    assert err.key == "username"


def test_error_str_without_key() -> None:
    err = ObservationError("medium unreadable")
    assert str(err) == "medium unreadable"
    assert err.key is None
    assert err.original_error is None


@pytest.mark.parametrize(
    "error_type, caller_error",
    [
        (InvalidKeyError, True),
        (PersistenceError, False),
        (ObservationError, False),
    ],
)
def test_hierarchy_and_caller_flag(
    error_type: type[PreferenceStoreError], caller_error: bool
) -> None:
    err = error_type("boom")
    assert isinstance(err, PreferenceStoreError)
    assert err.is_caller_error is caller_error


def test_invalid_key_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        raise InvalidKeyError("key must not be empty")


def test_persistence_error_wraps_exception() -> None:
    try:
        raise OSError(28, "No space left on device")
    except OSError as e:
        err = PersistenceError("Unable to commit", key="username", original_error=e)
        assert isinstance(err.original_error, OSError)
        assert "Unable to commit" in str(err)
