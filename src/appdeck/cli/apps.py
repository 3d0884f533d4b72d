"""appdeck apps CLI commands.

Commands:
  appdeck apps create <name>               new app (scaffold + git + chat)
  appdeck apps list                        registered apps
  appdeck apps import <dir>                copy an existing project in
  appdeck apps scan                        register unknown directories in the apps dir
  appdeck apps delete <id>                 stop, remove files, remove record
  appdeck apps rename <id> <name>          rename, optionally move with --path
  appdeck apps cat <id> <file>             print an app file
  appdeck apps edit <id> <file>            write an app file and commit it
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from appdeck.cli.common import console, open_deck

apps_app = typer.Typer(
    name="apps",
    help="Manage apps (create, import, scan, rename, delete, files).",
    add_completion=False,
)


@apps_app.command("create")
def apps_create_cmd(
    name: Annotated[str, typer.Argument(help="App name; also its directory name.")],
) -> None:
    """Create a new app with an initial chat and a git repository."""
    with open_deck() as deck:
        app, chat = deck.apps.create_app(name)
        console.print(
            f"[green]✓[/] Created app [bold]{escape(app.name)}[/] (id {app.id}, chat {chat.id})\n"
            f"  Path: {escape(str(deck.apps.app_path(app)))}"
        )


@apps_app.command("list")
def apps_list_cmd() -> None:
    """List registered apps, newest first."""
    with open_deck() as deck:
        apps = deck.apps.list_apps()
        if not apps:
            console.print(
                "[yellow]No apps registered.[/]\n"
                "  Run:  appdeck apps create <name>  or  appdeck apps scan"
            )
            raise typer.Exit(0)

        table = Table(title="Apps", show_header=True, header_style="bold")
        table.add_column("ID", justify="right")
        table.add_column("Name", style="bold")
        table.add_column("Path")
        table.add_column("Status")
        table.add_column("Created")
        for app in apps:
            table.add_row(
                str(app.id),
                escape(app.name),
                escape(app.path),
                deck.runner.status(app.id).value,
                app.created_at or "",
            )
        console.print(table)
        console.print(f"\n  Apps directory: {escape(str(deck.apps.base_dir))}")


@apps_app.command("import")
def apps_import_cmd(
    source: Annotated[Path, typer.Argument(help="Project directory to copy in.")],
) -> None:
    """Import an existing project directory."""
    with open_deck() as deck:
        app = deck.apps.import_project(source)
        console.print(f"[green]✓[/] Imported [bold]{escape(app.name)}[/] (id {app.id})")


@apps_app.command("scan")
def apps_scan_cmd() -> None:
    """Register app directories that exist on disk but not in the store."""
    with open_deck() as deck:
        added = deck.apps.scan_for_apps()
        if not added:
            console.print("[dim]No new apps found.[/]")
            return
        for app in added:
            console.print(f"[green]✓[/] Added [bold]{escape(app.name)}[/] (path: {escape(app.path)})")


@apps_app.command("delete")
def apps_delete_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete an app, its files and its conversation log."""
    with open_deck() as deck:
        app = deck.apps.get_app(app_id)
        console.print(f"\nDelete app: [bold]{escape(app.name)}[/]  ({escape(str(deck.apps.app_path(app)))})")
        if not yes and not typer.confirm("Confirm deletion?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        deck.apps.delete_app(app_id)
        console.print(f"[green]✓[/] Deleted app {app_id}")


@apps_app.command("rename")
def apps_rename_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    name: Annotated[str, typer.Argument(help="New app name.")],
    path: Annotated[
        str | None,
        typer.Option("--path", help="New directory name; the app directory is moved."),
    ] = None,
) -> None:
    """Rename an app and optionally move its directory."""
    with open_deck() as deck:
        app = deck.apps.rename_app(app_id, name, path)
        console.print(f"[green]✓[/] App {app.id} is now [bold]{escape(app.name)}[/] at {escape(app.path)}")


@apps_app.command("cat")
def apps_cat_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    file_path: Annotated[str, typer.Argument(help="Path relative to the app directory.")],
) -> None:
    """Print a file from an app."""
    with open_deck() as deck:
        typer.echo(deck.apps.read_file(app_id, file_path), nl=False)


@apps_app.command("edit")
def apps_edit_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    file_path: Annotated[str, typer.Argument(help="Path relative to the app directory.")],
    content: Annotated[
        str | None,
        typer.Option("--content", "-c", help="New file content. Read from stdin when omitted."),
    ] = None,
) -> None:
    """Overwrite an app file and commit the change."""
    if content is None:
        content = sys.stdin.read()
    with open_deck() as deck:
        commit = deck.apps.edit_file(app_id, file_path, content)
        if commit:
            console.print(f"[green]✓[/] Wrote {escape(file_path)}  (commit {commit[:12]})")
        else:
            console.print(f"[green]✓[/] Wrote {escape(file_path)}  [dim](not committed)[/]")
