"""Resolve app directories and app-relative file paths."""

from __future__ import annotations

from pathlib import Path


def resolve_app_path(base_dir: Path, app_path: str) -> Path:
    """Return the absolute directory for an app.

    Absolute *app_path* values (imported projects kept in place) are returned
    unchanged; relative ones are joined onto *base_dir*.
    """
    candidate = Path(app_path).expanduser()
    if candidate.is_absolute():
        return candidate
    return (Path(base_dir).expanduser() / candidate).resolve()


def resolve_inside(root: Path, rel_path: str) -> Path:
    """Join *rel_path* onto *root*, refusing anything that escapes it.

    Raises:
        ValueError: If the resolved path is outside *root*.
    """
    root = root.resolve()
    target = (root / rel_path).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Path escapes the app directory: {rel_path}")
    return target
