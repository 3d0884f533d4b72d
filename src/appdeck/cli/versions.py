"""appdeck versions CLI commands.

Commands:
  appdeck versions list <id>                  commits, newest first
  appdeck versions checkout <id> <version>    preview a version (detached, no commit)
  appdeck versions revert <id> <version>      restore a version as a new commit
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from appdeck.cli.common import console, open_deck
from appdeck.cli.errors import warn_discarded_changes

versions_app = typer.Typer(
    name="versions",
    help="Browse, preview and revert an app's version history.",
    add_completion=False,
)


@versions_app.command("list")
def versions_list_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
) -> None:
    """List an app's versions, newest first."""
    with open_deck() as deck:
        versions = deck.versions.list_versions(app_id)
        if not versions:
            console.print(f"[yellow]No versions for app {app_id}.[/]")
            raise typer.Exit(0)

        table = Table(title=f"Versions of app {app_id}", show_header=True, header_style="bold")
        table.add_column("Version", style="bold")
        table.add_column("Date")
        table.add_column("Message")
        for version in versions:
            subject = version.message.splitlines()[0] if version.message else ""
            table.add_row(
                version.oid,
                datetime.fromtimestamp(version.timestamp).strftime("%Y-%m-%d %H:%M:%S"),
                escape(subject),
            )
        console.print(table)


@versions_app.command("checkout")
def versions_checkout_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    version: Annotated[str, typer.Argument(help="Version (commit id) to preview.")],
) -> None:
    """Check out a version without creating a commit."""
    with open_deck() as deck:
        deck.versions.checkout_version(app_id, version)
        console.print(f"[green]✓[/] Checked out {escape(version)} for app {app_id}")
        console.print(warn_discarded_changes())


@versions_app.command("revert")
def versions_revert_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    version: Annotated[str, typer.Argument(help="Version (commit id) to restore.")],
) -> None:
    """Restore a version as a new commit and drop later conversation messages."""
    with open_deck() as deck:
        result = deck.versions.revert_version(app_id, version)
        console.print(
            f"[green]✓[/] Reverted app {app_id} to {escape(version)}  (commit {result.commit[:12]})\n"
            f"  Restored: {len(result.restored)}  |  Deleted: {len(result.deleted)}  |  "
            f"Messages removed: {result.pruned_messages}"
        )
