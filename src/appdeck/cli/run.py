"""appdeck run: start an app's dev server and stream its output.

While it runs, commands are read from stdin:
  r    restart
  rc   restart after removing the dependency cache (clean install)
  q    stop and exit
End of input or Ctrl-C also stops the app.
"""

from __future__ import annotations

import sys
from typing import Annotated

import typer
from rich.markup import escape

from appdeck.cli.common import console, open_deck
from appdeck.runtime.output import OutputEvent, OutputType

_STYLES = {
    OutputType.STDERR: "red",
    OutputType.INFO: "cyan",
    OutputType.CLIENT_ERROR: "bold red",
}


def _print_event(event: OutputEvent) -> None:
    text = event.message.rstrip("\n")
    style = _STYLES.get(event.type)
    if style:
        console.print(f"[{style}]{escape(text)}[/]", highlight=False)
    else:
        console.print(text, markup=False, highlight=False)


def run_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    clean: Annotated[
        bool,
        typer.Option("--clean", help="Remove the dependency cache before starting."),
    ] = False,
) -> None:
    """Run an app's dev server in the foreground."""
    with open_deck() as deck:
        runner = deck.runner
        with deck.broadcaster.subscribe(_print_event, app_id=app_id):
            if clean:
                runner.restart(app_id, remove_dependency_cache=True)
            else:
                runner.run(app_id)
            console.print(
                f"[dim]App {app_id} on port {deck.config.dev_server.port}. "
                "Commands: r = restart, rc = clean restart, q = quit[/]"
            )
            try:
                for line in sys.stdin:
                    command = line.strip()
                    if command == "q":
                        break
                    if command == "r":
                        runner.restart(app_id)
                    elif command == "rc":
                        runner.restart(app_id, remove_dependency_cache=True)
                    elif command:
                        console.print(f"[yellow]Unknown command:[/] {escape(command)}  (r, rc, q)")
            except KeyboardInterrupt:
                console.print("\n[dim]Interrupted.[/]")
            runner.stop(app_id)
        console.print(f"[green]✓[/] Stopped app {app_id}")
