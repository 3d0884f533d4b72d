"""appdeck chat CLI commands.

Commands:
  appdeck chat log <id>                     the app's current conversation
  appdeck chat add <id> <role> <content>    append a message, optionally tagged with a version
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from appdeck.cli.common import console, open_deck

chat_app = typer.Typer(
    name="chat",
    help="Read and append to an app's conversation log.",
    add_completion=False,
)

_ROLES = ("user", "assistant")


@chat_app.command("log")
def chat_log_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
) -> None:
    """Show the app's current conversation, oldest first."""
    with open_deck() as deck:
        messages = deck.chats.history(app_id)
        if not messages:
            console.print(f"[dim]No messages for app {app_id}.[/]")
            raise typer.Exit(0)

        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Role")
        table.add_column("Version")
        table.add_column("Content")
        for msg in messages:
            table.add_row(
                str(msg.id),
                msg.role,
                (msg.commit_hash or "")[:12],
                escape(msg.content),
            )
        console.print(table)


@chat_app.command("add")
def chat_add_cmd(
    app_id: Annotated[int, typer.Argument(help="App id.")],
    role: Annotated[str, typer.Argument(help="user or assistant.")],
    content: Annotated[str, typer.Argument(help="Message text.")],
    commit: Annotated[
        str | None,
        typer.Option("--commit", help="Version (commit id) this message produced."),
    ] = None,
) -> None:
    """Append a message to the app's current conversation."""
    if role not in _ROLES:
        console.print(f"[red]Error:[/] Unknown role '{escape(role)}'. Use one of: {', '.join(_ROLES)}")
        raise typer.Exit(1)
    with open_deck() as deck:
        msg = deck.chats.record(app_id, role, content, commit_hash=commit)
        console.print(f"[green]✓[/] Added message {msg.id} to chat {msg.chat_id}")
