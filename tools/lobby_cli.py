#!/usr/bin/env -S uv run
"""
Lobby CLI — drive the jlobby callables against a local filesystem store.

Every command works on the same store directory, so separate invocations
see each other's users, reservations and queue entries. Accounts passed on
the command line are treated as verified.

Usage:
    uv run tools/lobby_cli.py reserve alice testuser123 --email a@example.com
    uv run tools/lobby_cli.py online alice
    uv run tools/lobby_cli.py join alice
    uv run tools/lobby_cli.py leave alice
    uv run tools/lobby_cli.py race testuser123 --callers 20
    uv run tools/lobby_cli.py --help
"""
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "jlobby",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import json
from collections import Counter
from pathlib import Path
from time import perf_counter
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from jlobby import (
    CallableError,
    CallContext,
    LobbyService,
    LobbySettings,
    LocalFileSystemStorage,
    configure_logging,
)
from jlobby.adapters.directory.memory import InMemoryUserDirectory
from jlobby.adapters.presence.storage import StoragePresence

app = typer.Typer(
    help="Exercise jlobby callables against a local store",
    add_completion=False,
)
console = Console()

StoreOption = typer.Option(
    Path(".jlobby"), "--store", "-s", help="Directory holding the documents"
)


def _service(store: Path, uids: list[str], email: str | None = None) -> LobbyService:
    settings = LobbySettings()
    configure_logging(settings.effective_log_level)
    storage = LocalFileSystemStorage(store)
    directory = InMemoryUserDirectory()
    for uid in uids:
        directory.add(uid, email or f"{uid}@example.com")
    return LobbyService(
        storage=storage,
        directory=directory,
        presence=StoragePresence(storage, settings.presence_keyspace),
        settings=settings,
    )


def _run(coro) -> None:
    try:
        result = asyncio.run(coro)
    except CallableError as exc:
        typer.echo(json.dumps(exc.to_dict()))
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(result))


@app.command()
def reserve(
    uid: str,
    username: str,
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Verified email"),
    store: Path = StoreOption,
) -> None:
    """Reserve USERNAME for UID (createNewUser)."""
    service = _service(store, [uid], email)
    _run(service.create_new_user(CallContext(uid=uid), {"username": username}))


@app.command()
def online(uid: str, store: Path = StoreOption) -> None:
    """Write a presence marker for UID."""
    settings = LobbySettings()
    storage = LocalFileSystemStorage(store)
    asyncio.run(
        storage.write(f"{settings.presence_keyspace}/{uid}", b"{}", overwrite=True)
    )
    typer.echo(json.dumps({"success": True}))


@app.command()
def join(uid: str, store: Path = StoreOption) -> None:
    """Put UID in the matchmaking queue (quickMatch)."""
    _run(_service(store, [uid]).quick_match(CallContext(uid=uid)))


@app.command()
def leave(uid: str, store: Path = StoreOption) -> None:
    """Take UID out of the matchmaking queue (cancelQuickMatch)."""
    _run(_service(store, [uid]).cancel_quick_match(CallContext(uid=uid)))


@app.command()
def race(
    username: str,
    callers: int = typer.Option(10, "--callers", "-n", help="Concurrent callers"),
    store: Path = StoreOption,
) -> None:
    """
    Have N callers reserve the same USERNAME at once.

    Exactly one should win; the others should see AlreadyExists.
    """
    uids = [f"racer-{i}" for i in range(callers)]
    service = _service(store, uids)

    async def attempt(uid: str) -> str:
        try:
            await service.create_new_user(CallContext(uid=uid), {"username": username})
        except CallableError as exc:
            return f"{exc.code.value}: {exc.message}"
        return "success"

    async def run_all() -> list[str]:
        return await asyncio.gather(*(attempt(uid) for uid in uids))

    start = perf_counter()
    outcomes = asyncio.run(run_all())
    elapsed = perf_counter() - start

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Outcome", style="cyan")
    table.add_column("Callers", justify="right", style="green")
    for outcome, count in Counter(outcomes).most_common():
        table.add_row(outcome, str(count))
    console.print(table)
    console.print(f"{callers} callers in {elapsed * 1000:.1f}ms")

    if outcomes.count("success") != 1:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
