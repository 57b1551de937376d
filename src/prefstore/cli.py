"""Preference store CLI.

This module provides the command-line interface for the preference store:
reading, writing and watching settings, the saved-name screen of the demo
application, and configuration utilities.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Final, NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError

from prefstore.di.container import get_store
from prefstore.errors import ObservationError, PreferenceStoreError
from prefstore.preferences import UserPreferences, read_current
from prefstore.settings.application import ApplicationSettings
from prefstore.settings.user import StoreSettings
from prefstore.store.core import PreferenceStore
from prefstore.store.protocols import SettingsStore

# ── CLI setup ────────────────────────────────────────────────────────────────
app = typer.Typer(help="Preference store CLI", add_completion=False)
config_app = typer.Typer(help="Config helpers")
app.add_typer(config_app, name="config")

logger: Final = logging.getLogger(__name__)  # Will be "prefstore.cli"

# Options shared by the commands
CONFIG_OPTION = typer.Option(None, "--config", "-c", exists=True, dir_okay=False)
DEBUG_OPTION = typer.Option(False, "--debug", help="Enable debug logging")
KEY_ARGUMENT = typer.Argument(..., help="Setting key")
VALUE_ARGUMENT = typer.Argument(..., help="New value")
DST_ARGUMENT = typer.Argument(..., help="Output prefstore.yaml")
COUNT_OPTION = typer.Option(None, "--count", "-n", min=1, help="Stop after N values")
INTERVAL_OPTION = typer.Option(
    1.0, "--interval", "-i", min=0.01, help="Seconds between re-reads of the settings file"
)
SAVE_OPTION = typer.Option(None, "--save", "-s", help="Save a new name before showing it")


def _setup(config: Optional[Path], debug: bool) -> SettingsStore:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        return get_store(ApplicationSettings.load(config))
    except (RuntimeError, FileNotFoundError) as exc:
        _fail(exc)


def _fail(exc: BaseException) -> NoReturn:
    typer.secho(str(exc), fg=typer.colors.RED, err=True)
    # Usage errors exit with 2, like typer's own argument errors
    code = 2 if isinstance(exc, PreferenceStoreError) and exc.is_caller_error else 1
    raise typer.Exit(code=code) from exc


@app.command()
def get(
    key: str = KEY_ARGUMENT,
    config: Path = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Print the current value of a setting."""
    store = _setup(config, debug)
    try:
        value = asyncio.run(read_current(store, key))
    except PreferenceStoreError as exc:
        _fail(exc)
    typer.echo(value)


@app.command("set")
def set_value(
    key: str = KEY_ARGUMENT,
    value: str = VALUE_ARGUMENT,
    config: Path = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Durably write a setting."""
    store = _setup(config, debug)

    async def _write() -> None:
        await store.write(key, value)

    try:
        asyncio.run(_write())
    except PreferenceStoreError as exc:
        _fail(exc)
    typer.secho(f"Saved {key} = {value!r}", fg=typer.colors.GREEN)


@app.command()
def watch(
    key: str = KEY_ARGUMENT,
    count: Optional[int] = COUNT_OPTION,
    interval: float = INTERVAL_OPTION,
    config: Path = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Print a setting and every later change. Press Ctrl+C to exit."""
    store = _setup(config, debug)
    try:
        asyncio.run(_watch(store, key, count, interval))
    except PreferenceStoreError as exc:
        _fail(exc)
    except KeyboardInterrupt:
        raise typer.Exit(code=0)


async def _watch(store: SettingsStore, key: str, count: Optional[int], interval: float) -> None:
    values = store.observe(key)
    reloader = None
    if isinstance(store, PreferenceStore):
        # Picks up edits made by other processes to the settings file
        reloader = asyncio.create_task(_reload_every(store, interval))

    seen = 0
    try:
        async for value in values:
            typer.echo(value)
            seen += 1
            if count is not None and seen >= count:
                break
    finally:
        if reloader is not None:
            reloader.cancel()
        close = getattr(values, "aclose", None)
        if close is not None:
            await close()


async def _reload_every(store: PreferenceStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await store.reload()
        except ObservationError as exc:
            # The subscription receives the same error and ends the watch
            logger.debug("Reload stopped: %s", exc)
            return


@app.command()
def name(
    save: Optional[str] = SAVE_OPTION,
    config: Path = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Show the saved user name, optionally saving a new one first."""
    prefs = UserPreferences(_setup(config, debug))

    async def _run() -> str:
        if save is not None:
            await prefs.save_name(save)
        return await prefs.get_name()

    try:
        saved = asyncio.run(_run())
    except PreferenceStoreError as exc:
        _fail(exc)
    typer.echo(f"Your saved name: {saved}")


# ───────────────────────── config sub-commands ───────────────────────────────
@config_app.command("validate")
def validate_config(file: Path):
    """Validate a YAML config file against the schema."""
    try:
        StoreSettings.load(file)
        typer.echo("✅ Config valid")
    except RuntimeError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


@config_app.command("wizard")
def wizard(dst: Path = DST_ARGUMENT):
    """Interactive prompt to create a config file."""
    typer.echo("Interactive config builder - press Enter for defaults.")

    while True:
        data: dict[str, Any] = {
            "store_path": typer.prompt("Settings file (empty for default)", default="") or None,
            "default_value": typer.prompt("Default value", default=""),
            "subscriber_buffer": typer.prompt("Subscriber buffer (0 = unbounded)", default="0"),
            "fsync": typer.confirm("Fsync every write?", default=True),
        }
        try:
            cfg = StoreSettings(**data)
            break  # valid → exit loop
        except ValidationError as err:
            typer.secho("\nConfig error(s):", fg=typer.colors.RED, err=True)
            for e in err.errors():
                typer.secho(f"  • {e['loc'][0]} - {e['msg']}", fg=typer.colors.RED, err=True)
            typer.echo("Please re-enter the values.\n")

    dump = cfg.model_dump(mode="json", exclude_none=True)
    dst.write_text(yaml.safe_dump(dump, sort_keys=False), encoding="utf-8")
    typer.secho(f"Config written to {dst}", fg=typer.colors.GREEN)


# ───────────────────────── module entrypoint ────────────────────────────────
if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(0)
