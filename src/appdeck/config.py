"""appdeck configuration loader.

Priority (high → low):
  1. CLI flags              (handled at call site, not in this module)
  2. Environment variables  (APPDECK_APPS_DIR, APPDECK_DB, APPDECK_DEV_PORT, APPDECK_LOG_LEVEL)
  3. Per-project appdeck.yaml  (in the working directory)
  4. Global ~/.appdeck/config.yaml
  5. Hardcoded defaults

All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".appdeck"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "appdeck.yaml"

DEFAULT_DEV_PORT: int = 32100

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["apps", "database", "dev_server", "versions", "git", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class PackageManagerCfg:
    """One package manager the dev-server command may use.

    Attributes:
        name: Executable looked up on PATH; managers that are not found are skipped.
        install: Dependency install command; empty to skip the install step.
        dev: Dev-server command. ``{port}`` is replaced with the configured port.
    """

    name: str
    install: str = ""
    dev: str = ""


def _default_package_managers() -> list[PackageManagerCfg]:
    return [
        PackageManagerCfg(name="pnpm", install="pnpm install", dev="pnpm run dev --port {port}"),
        PackageManagerCfg(name="npm", install="npm install", dev="npm run dev -- --port {port}"),
    ]


@dataclass
class AppsCfg:
    """Where app directories live (appdeck.yaml: apps:)."""

    base_dir: Path = field(default_factory=lambda: Path.home() / "appdeck-apps")
    scaffold_dir: Path | None = None


@dataclass
class DatabaseCfg:
    """SQLite store location (appdeck.yaml: database:)."""

    path: Path = field(default_factory=lambda: _GLOBAL_CONFIG_DIR / "appdeck.db")


@dataclass
class DevServerCfg:
    """Dev-server process settings (appdeck.yaml: dev_server:).

    Attributes:
        port: The single well-known port every dev server binds to.
        package_managers: Tried in order; the first available one runs, the
            next ones are shell fallbacks.
        dependency_cache_dir: Directory removed by ``restart --clean``.
        stop_grace_seconds: Time between the graceful and the forceful signal.
    """

    port: int = DEFAULT_DEV_PORT
    package_managers: list[PackageManagerCfg] = field(default_factory=_default_package_managers)
    dependency_cache_dir: str = "node_modules"
    stop_grace_seconds: float = 5.0


@dataclass
class VersionsCfg:
    """Version history settings (appdeck.yaml: versions:)."""

    branch: str = "main"
    max_versions: int = 1000


@dataclass
class GitCfg:
    """Author identity for commits appdeck creates (appdeck.yaml: git:)."""

    author_name: str = "appdeck"
    author_email: str = "appdeck@localhost"


@dataclass
class LoggingCfg:
    """Log verbosity (appdeck.yaml: logging:)."""

    level: str = "INFO"


@dataclass
class AppDeckConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    apps: AppsCfg = field(default_factory=AppsCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    dev_server: DevServerCfg = field(default_factory=DevServerCfg)
    versions: VersionsCfg = field(default_factory=VersionsCfg)
    git: GitCfg = field(default_factory=GitCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: AppDeckConfig) -> None:
    port = cfg.dev_server.port
    if not 1 <= port <= 65535:
        raise ConfigError(f"dev_server.port must be between 1 and 65535, got {port}")
    if not cfg.dev_server.package_managers:
        raise ConfigError("dev_server.package_managers must list at least one package manager")
    for pm in cfg.dev_server.package_managers:
        if not pm.name or not pm.dev:
            raise ConfigError(
                "Each dev_server.package_managers entry needs a 'name' and a 'dev' command"
            )
    if cfg.dev_server.stop_grace_seconds < 0:
        raise ConfigError("dev_server.stop_grace_seconds must not be negative")
    if cfg.versions.max_versions < 1:
        raise ConfigError("versions.max_versions must be at least 1")
    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, got '{cfg.logging.level}'"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_port(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"dev_server.port must be an integer, got '{value}'") from None


def _parse_package_managers(raw: Any) -> list[PackageManagerCfg]:
    if not isinstance(raw, list):
        raise ConfigError("dev_server.package_managers must be a list")
    managers: list[PackageManagerCfg] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigError("dev_server.package_managers entries must be mappings")
        managers.append(
            PackageManagerCfg(
                name=str(item.get("name", "")),
                install=str(item.get("install") or ""),
                dev=str(item.get("dev") or ""),
            )
        )
    return managers


def _cfg_from_dict(data: dict[str, Any]) -> AppDeckConfig:
    """Build an *AppDeckConfig* from a merged raw YAML dict."""
    cfg = AppDeckConfig()

    if "apps" in data:
        a = data["apps"] or {}
        scaffold = a.get("scaffold_dir")
        cfg.apps = AppsCfg(
            base_dir=Path(a.get("base_dir", cfg.apps.base_dir)).expanduser(),
            scaffold_dir=Path(scaffold).expanduser() if scaffold else None,
        )

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=Path(d.get("path", cfg.database.path)).expanduser())

    if "dev_server" in data:
        s = data["dev_server"] or {}
        cfg.dev_server = DevServerCfg(
            port=_parse_port(s.get("port", cfg.dev_server.port)),
            package_managers=(
                _parse_package_managers(s["package_managers"])
                if "package_managers" in s
                else cfg.dev_server.package_managers
            ),
            dependency_cache_dir=str(
                s.get("dependency_cache_dir", cfg.dev_server.dependency_cache_dir)
            ),
            stop_grace_seconds=float(
                s.get("stop_grace_seconds", cfg.dev_server.stop_grace_seconds)
            ),
        )

    if "versions" in data:
        v = data["versions"] or {}
        cfg.versions = VersionsCfg(
            branch=str(v.get("branch", cfg.versions.branch)),
            max_versions=int(v.get("max_versions", cfg.versions.max_versions)),
        )

    if "git" in data:
        g = data["git"] or {}
        cfg.git = GitCfg(
            author_name=str(g.get("author_name", cfg.git.author_name)),
            author_email=str(g.get("author_email", cfg.git.author_email)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())

    return cfg


def _apply_env_overrides(cfg: AppDeckConfig) -> AppDeckConfig:
    """Apply APPDECK_* environment variable overrides."""
    if apps_dir := os.environ.get("APPDECK_APPS_DIR"):
        cfg.apps.base_dir = Path(apps_dir).expanduser()
    if db_path := os.environ.get("APPDECK_DB"):
        cfg.database.path = Path(db_path).expanduser()
    if port := os.environ.get("APPDECK_DEV_PORT"):
        cfg.dev_server.port = _parse_port(port)
    if level := os.environ.get("APPDECK_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse '{path}': {exc}") from None
    if not isinstance(raw, dict):
        raise ConfigError(f"'{path}' must contain a mapping at the top level")
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> AppDeckConfig:
    """Load and return a merged *AppDeckConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *appdeck.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *AppDeckConfig* with env var overrides applied.

    Raises:
        ConfigError: If a file cannot be parsed or a value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.appdeck/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# appdeck global configuration.\n"
            "\n"
            "apps:\n"
            "  base_dir: ~/appdeck-apps\n"
            "\n"
            "dev_server:\n"
            f"  port: {DEFAULT_DEV_PORT}\n"
            "  package_managers:\n"
            "    - name: pnpm\n"
            "      install: pnpm install\n"
            "      dev: pnpm run dev --port {port}\n"
            "    - name: npm\n"
            "      install: npm install\n"
            "      dev: npm run dev -- --port {port}\n"
            "\n"
            "versions:\n"
            "  branch: main\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
