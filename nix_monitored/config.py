"""Interceptor configuration - reads config.toml with ENV overrides."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
import os
from pathlib import Path
import re
import tomllib
from typing import Any

import tomli_w

DEFAULT_TOOL = "nix"
DEFAULT_FORMATTER = "nom"
DEFAULT_NOTIFY_TIMEOUT_MS = 2000

MONITOR_MODES = ("auto", "force", "disable")
LOG_FORMATS = ("text", "json")

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")
_LEADING_INT = re.compile(r"\s*([-+]?\d+)")


class ConfigError(Exception):
    """Raised when the configuration file or an override is unusable."""


def _require(name: str, value: Any, kind: type) -> None:
    # bool is an int subclass; keep them apart
    if kind is int and isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not isinstance(value, kind):
        raise ConfigError(f"{name} must be {kind.__name__}, got {value!r}")


def _require_str_list(name: str, value: Any) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{name} must be a list of strings, got {value!r}")


@dataclass
class MonitorSettings:
    """Which tool is wrapped and how invocations are routed."""

    mode: str = "auto"  # "auto" | "force" | "disable"
    tool: str = DEFAULT_TOOL
    formatter: str = DEFAULT_FORMATTER
    path_prefix: str = ""
    direct_commands: list[str] = field(
        default_factory=lambda: ["nix-build", "nix-shell"]
    )
    direct_verbs: list[str] = field(
        default_factory=lambda: ["build", "shell", "develop", "--version"]
    )
    piped_verbs: list[str] = field(default_factory=lambda: ["print-dev-env"])

    def validate(self) -> None:
        for key in ("mode", "tool", "formatter", "path_prefix"):
            _require(f"monitor.{key}", getattr(self, key), str)
        for key in ("direct_commands", "direct_verbs", "piped_verbs"):
            _require_str_list(f"monitor.{key}", getattr(self, key))
        if self.mode not in MONITOR_MODES:
            raise ConfigError(f"Invalid monitor mode: {self.mode}")
        if not self.tool:
            raise ConfigError("monitor.tool must not be empty")
        if not self.formatter:
            raise ConfigError("monitor.formatter must not be empty")


@dataclass
class NotifySettings:
    """Completion notification settings."""

    enabled: bool = False
    timeout_ms: int = DEFAULT_NOTIFY_TIMEOUT_MS  # <= 0 disables
    icon: str = ""
    agent: str = "notify-send"
    app_name: str = "Nix"

    def validate(self) -> None:
        _require("notify.enabled", self.enabled, bool)
        _require("notify.timeout_ms", self.timeout_ms, int)
        for key in ("icon", "agent", "app_name"):
            _require(f"notify.{key}", getattr(self, key), str)
        if not self.agent:
            raise ConfigError("notify.agent must not be empty")


@dataclass
class LoggingSettings:
    debug: bool = False
    format: str = "text"

    def validate(self) -> None:
        _require("logging.debug", self.debug, bool)
        _require("logging.format", self.format, str)
        if self.format not in LOG_FORMATS:
            raise ConfigError(f"Invalid log format: {self.format}")


@dataclass
class MonitorConfig:
    """Root configuration, built once per invocation."""

    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    notify: NotifySettings = field(default_factory=NotifySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None

    def validate(self) -> None:
        self.monitor.validate()
        self.notify.validate()
        self.logging.validate()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_timeout_ms(value: str) -> int:
    """Parse like C atoi: the leading integer, or 0 when there is none."""
    m = _LEADING_INT.match(value)
    return int(m.group(1)) if m else 0


def default_config_path(environ: Mapping[str, str]) -> Path:
    explicit = environ.get("NIX_MONITORED_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    xdg = environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path(environ.get("HOME", "~")).expanduser() / ".config"
    return base / "nix-monitored" / "config.toml"


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _apply(target: Any, values: dict[str, Any], section: str) -> None:
    for key, value in values.items():
        if not hasattr(target, key):
            raise ConfigError(f"Unknown setting: {section}.{key}")
        setattr(target, key, value)


def _apply_env(cfg: MonitorConfig, environ: Mapping[str, str]) -> None:
    if "NIX_DEBUG" in environ:
        cfg.logging.debug = True

    mode = environ.get("NIX_MONITOR")
    if mode is not None:
        cfg.monitor.mode = mode if mode in ("force", "disable") else "auto"

    notify = environ.get("NIX_NOTIFY")
    if notify is not None:
        low = notify.strip().lower()
        if low in _TRUTHY:
            cfg.notify.enabled = True
        elif low in _FALSY:
            cfg.notify.enabled = False

    timeout = environ.get("NIX_NOTIFY_TIMEOUT")
    if timeout is not None:
        cfg.notify.timeout_ms = parse_timeout_ms(timeout)


def load_config(
    environ: Mapping[str, str] | None = None,
    path: Path | None = None,
) -> MonitorConfig:
    """
    Resolve the configuration.

    Order: built-in defaults, then the TOML file (if it exists), then
    environment variables.
    """
    if environ is None:
        environ = os.environ
    if path is None:
        path = default_config_path(environ)

    cfg = MonitorConfig()
    if path.is_file():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        _apply(cfg.monitor, _section(data, "monitor"), "monitor")
        _apply(cfg.notify, _section(data, "notify"), "notify")
        _apply(cfg.logging, _section(data, "logging"), "logging")
        cfg.source = str(path)

    _apply_env(cfg, environ)
    cfg.validate()
    return cfg


def save_setting(path: Path, section: str, key: str, value: Any) -> None:
    """Set ``[section] key = value`` in the TOML file at ``path``, keeping the rest."""
    data: dict[str, Any] = {}
    if path.is_file():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
    table = data.setdefault(section, {})
    if not isinstance(table, dict):
        raise ConfigError(f"[{section}] must be a table")
    table[key] = value
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump(data, f)
