"""Tests for appdeck run and the root command."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from appdeck.cli.main import app

runner = CliRunner()

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")


def test_run_then_quit(cli_env: Path) -> None:
    runner.invoke(app, ["apps", "create", "shop"])

    result = runner.invoke(app, ["run", "1"], input="q\n")

    assert result.exit_code == 0, result.output
    assert "App 1 on port 38519" in result.output
    assert "Stopped app 1" in result.output


def test_run_unknown_command_and_restart(cli_env: Path) -> None:
    runner.invoke(app, ["apps", "create", "shop"])

    result = runner.invoke(app, ["run", "1"], input="x\nr\nq\n")

    assert result.exit_code == 0, result.output
    assert "Unknown command" in result.output
    assert "Stopped app 1" in result.output


def test_run_clean_removes_dependency_cache(cli_env: Path) -> None:
    runner.invoke(app, ["apps", "create", "shop"])
    cache = cli_env / "shop" / "node_modules"
    cache.mkdir()
    (cache / "dep.js").write_text("x")

    result = runner.invoke(app, ["run", "1", "--clean"], input="q\n")

    assert result.exit_code == 0, result.output
    assert not cache.exists()


def test_run_stops_on_end_of_input(cli_env: Path) -> None:
    runner.invoke(app, ["apps", "create", "shop"])
    result = runner.invoke(app, ["run", "1"], input="")
    assert result.exit_code == 0, result.output
    assert "Stopped app 1" in result.output


def test_run_unknown_app_exits_1(cli_env: Path) -> None:
    result = runner.invoke(app, ["run", "7"], input="q\n")
    assert result.exit_code == 1
    assert "App 7 not found" in result.output


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("appdeck ")
