"""appdeck CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from appdeck.cli.apps import apps_app
from appdeck.cli.chat import chat_app
from appdeck.cli.common import cli_state
from appdeck.cli.run import run_cmd
from appdeck.cli.versions import versions_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("appdeck")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"appdeck {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="appdeck",
    help=(
        "appdeck: run local app dev servers and move through their version history.\n\n"
        "  appdeck run       Start an app's dev server and stream its output.\n"
        "  appdeck versions  List, preview and revert versions."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log at DEBUG level."),
    ] = False,
) -> None:
    """appdeck: local app process and version manager."""
    cli_state["verbose"] = verbose


app.command("run")(run_cmd)
app.add_typer(apps_app, name="apps")
app.add_typer(versions_app, name="versions")
app.add_typer(chat_app, name="chat")


@app.command("version")
def version_cmd() -> None:
    """Show the installed appdeck version."""
    typer.echo(f"appdeck {_installed_version()}")


if __name__ == "__main__":
    app()
