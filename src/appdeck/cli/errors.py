"""appdeck rich error messages: what went wrong and what to do about it.

Usage:
    from appdeck.cli.errors import err_app_not_found
    console.print(err_app_not_found("App 3 not found"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from appdeck.errors import RevertError


def err_app_not_found(detail: str) -> str:
    """Unknown app, chat, file or version."""
    return (
        f"[red]Error:[/] {escape(detail)}.\n"
        "  Run:  appdeck apps list  to see registered apps."
    )


def err_config(detail: str) -> str:
    """A config file could not be parsed or holds an invalid value."""
    return (
        f"[red]Error:[/] Invalid configuration: {escape(detail)}\n"
        "  Fix ~/.appdeck/config.yaml or ./appdeck.yaml and retry."
    )


def err_conflict(detail: str) -> str:
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  Choose another name or remove the existing directory first."
    )


def err_spawn(detail: str) -> str:
    """The dev server could not be started."""
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  Check that pnpm or npm is installed and on PATH, or configure\n"
        "  dev_server.package_managers in appdeck.yaml."
    )


def err_termination(detail: str) -> str:
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  The process may still hold the dev-server port; it is freed on the next run."
    )


def err_revert_partial(exc: RevertError) -> str:
    """A revert stopped partway; list what was and was not restored."""
    lines = [f"[red]Error:[/] {escape(str(exc))}"]
    if exc.restored:
        lines.append(f"  Restored: {escape(', '.join(exc.restored))}")
    if exc.deleted:
        lines.append(f"  Deleted:  {escape(', '.join(exc.deleted))}")
    if exc.pending:
        lines.append(f"  Not restored: {escape(', '.join(exc.pending))}")
    lines.append("  The working tree is partly reverted. Run the revert again once the cause is fixed.")
    return "\n".join(lines)


def err_invalid_input(detail: str) -> str:
    return f"[red]Error:[/] {escape(detail)}"


def err_operation(detail: str) -> str:
    """Any other appdeck failure."""
    return f"[red]Error:[/] {escape(detail)}"


def warn_discarded_changes() -> str:
    """Shown after a checkout: uncommitted edits are gone and HEAD is detached."""
    return (
        "[yellow]⚠[/] Uncommitted changes were discarded and HEAD is detached.\n"
        "  Run:  appdeck versions revert <app> <version>  to make this state the latest version."
    )
