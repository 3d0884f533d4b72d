"""Tests for the appdeck config loader."""

from __future__ import annotations

import os
import stat
import sys
import warnings
from pathlib import Path

import pytest
import yaml

from appdeck.config import (
    DEFAULT_DEV_PORT,
    ConfigError,
    PackageManagerCfg,
    ensure_global_config,
    load_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("APPDECK_APPS_DIR", "APPDECK_DB", "APPDECK_DEV_PORT", "APPDECK_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")

    assert cfg.dev_server.port == DEFAULT_DEV_PORT == 32100
    assert [pm.name for pm in cfg.dev_server.package_managers] == ["pnpm", "npm"]
    assert cfg.dev_server.package_managers[1].dev == "npm run dev -- --port {port}"
    assert cfg.dev_server.dependency_cache_dir == "node_modules"
    assert cfg.dev_server.stop_grace_seconds == 5.0
    assert cfg.versions.branch == "main"
    assert cfg.versions.max_versions == 1000
    assert cfg.logging.level == "INFO"
    assert cfg.apps.scaffold_dir is None


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    """Empty global config file → defaults (no crash)."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.dev_server.port == 32100


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"dev_server": {"port": 4000, "stop_grace_seconds": 1}})
    _write_yaml(tmp_path / "appdeck.yaml", {"dev_server": {"port": 5000}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.dev_server.port == 5000
    assert cfg.dev_server.stop_grace_seconds == 1.0  # global value preserved


def test_paths_are_expanded(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "appdeck.yaml",
        {"apps": {"base_dir": "~/my-apps", "scaffold_dir": str(tmp_path / "tpl")}},
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.apps.base_dir == Path.home() / "my-apps"
    assert cfg.apps.scaffold_dir == tmp_path / "tpl"


def test_package_managers_replaced(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "appdeck.yaml",
        {"dev_server": {"package_managers": [{"name": "yarn", "install": "yarn", "dev": "yarn dev"}]}},
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.dev_server.package_managers == [
        PackageManagerCfg(name="yarn", install="yarn", dev="yarn dev")
    ]


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "appdeck.yaml", {"dev_server": {"port": 5000}, "logging": {"level": "info"}})
    monkeypatch.setenv("APPDECK_DEV_PORT", "6000")
    monkeypatch.setenv("APPDECK_APPS_DIR", str(tmp_path / "apps"))
    monkeypatch.setenv("APPDECK_DB", str(tmp_path / "x.db"))
    monkeypatch.setenv("APPDECK_LOG_LEVEL", "debug")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.dev_server.port == 6000
    assert cfg.apps.base_dir == tmp_path / "apps"
    assert cfg.database.path == tmp_path / "x.db"
    assert cfg.logging.level == "DEBUG"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "appdeck.yaml", {"supabase": {"project": "x"}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert any("supabase" in str(w.message) for w in caught)


@pytest.mark.parametrize(
    "data",
    [
        {"dev_server": {"port": 0}},
        {"dev_server": {"port": 70000}},
        {"dev_server": {"port": "abc"}},
        {"dev_server": {"package_managers": []}},
        {"dev_server": {"package_managers": [{"name": "npm"}]}},
        {"dev_server": {"stop_grace_seconds": -1}},
        {"versions": {"max_versions": 0}},
        {"logging": {"level": "LOUD"}},
    ],
)
def test_invalid_values_raise(tmp_path: Path, data: dict) -> None:
    _write_yaml(tmp_path / "appdeck.yaml", data)
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


def test_malformed_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "appdeck.yaml").write_text("dev_server: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


def test_non_mapping_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "appdeck.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_loadable_file(tmp_path: Path) -> None:
    target = tmp_path / ".appdeck" / "config.yaml"
    path = ensure_global_config(target)

    assert path == target
    cfg = load_config(project_dir=tmp_path, global_config_path=target)
    assert [pm.name for pm in cfg.dev_server.package_managers] == ["pnpm", "npm"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_ensure_global_config_permissions(tmp_path: Path) -> None:
    target = tmp_path / ".appdeck" / "config.yaml"
    ensure_global_config(target)
    assert stat.S_IMODE(os.stat(target).st_mode) == 0o600


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("dev_server:\n  port: 4444\n", encoding="utf-8")
    ensure_global_config(target)
    assert "4444" in target.read_text(encoding="utf-8")
