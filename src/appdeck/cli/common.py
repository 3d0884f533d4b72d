"""Shared CLI plumbing: console, global flags and the open-deck context."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console

from appdeck.cli.errors import (
    err_app_not_found,
    err_config,
    err_conflict,
    err_invalid_input,
    err_operation,
    err_revert_partial,
    err_spawn,
    err_termination,
)
from appdeck.config import ConfigError, load_config
from appdeck.deck import AppDeck
from appdeck.errors import (
    AppDeckError,
    ConflictError,
    NotFoundError,
    RevertError,
    SpawnError,
    TerminationError,
)
from appdeck.log import configure_logging

console = Console()

# Set by the root callback in appdeck.cli.main.
cli_state: dict[str, bool] = {"verbose": False}


@contextmanager
def open_deck() -> Iterator[AppDeck]:
    """Load config, open the store and turn appdeck errors into exit code 1."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None

    configure_logging("DEBUG" if cli_state["verbose"] else cfg.logging.level)
    deck = AppDeck.open(cfg)
    try:
        yield deck
    except NotFoundError as exc:
        console.print(err_app_not_found(str(exc)))
        raise typer.Exit(1) from None
    except ConflictError as exc:
        console.print(err_conflict(str(exc)))
        raise typer.Exit(1) from None
    except SpawnError as exc:
        console.print(err_spawn(str(exc)))
        raise typer.Exit(1) from None
    except TerminationError as exc:
        console.print(err_termination(str(exc)))
        raise typer.Exit(1) from None
    except RevertError as exc:
        console.print(err_revert_partial(exc))
        raise typer.Exit(1) from None
    except AppDeckError as exc:
        console.print(err_operation(str(exc)))
        raise typer.Exit(1) from None
    except ValueError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from None
    finally:
        deck.close()
