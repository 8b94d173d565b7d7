"""Typed configuration loader for the nodedash dashboard."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .contracts.error import BadInputError

MIN_TIMELINE_STEPS = 10

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _coerce_bool(raw: Any, name: str) -> bool:
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
        raise BadInputError(f"{name} must be boolean")
    return bool(raw)


@dataclass
class MonitorPolicy:
    lines_max: int = 100
    ignore_existing: bool = False
    checkpoint_interval: int = 300
    glob_scan: int = 0
    debug_window: bool = False

    def validate(self) -> None:
        if self.lines_max <= 0:
            raise BadInputError("monitor.lines_max must be > 0")
        if self.checkpoint_interval < 0:
            raise BadInputError("monitor.checkpoint_interval must be >= 0 (0 disables)")
        if self.glob_scan < 0:
            raise BadInputError("monitor.glob_scan must be >= 0 (0 disables)")


@dataclass
class TimelinePolicy:
    steps: int = 210
    tick_rate_ms: int = 200

    def validate(self) -> None:
        if self.steps < MIN_TIMELINE_STEPS:
            raise BadInputError(
                f"timeline.steps is too small, minimum is {MIN_TIMELINE_STEPS}"
            )
        if self.tick_rate_ms <= 0:
            raise BadInputError("timeline.tick_rate_ms must be > 0")


@dataclass
class LoggingPolicy:
    json: bool = False
    file: str | None = None
    level: str = "INFO"

    def validate(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise BadInputError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
        self.level = self.level.upper()


@dataclass
class AppConfig:
    monitor: MonitorPolicy = field(default_factory=MonitorPolicy)
    timeline: TimelinePolicy = field(default_factory=TimelinePolicy)
    logging: LoggingPolicy = field(default_factory=LoggingPolicy)

    @classmethod
    def load(cls, path: Path | None) -> AppConfig:
        if path is None:
            cfg = cls()
        else:
            try:
                data = tomllib.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise BadInputError(f"Config file not found: {path}") from exc
            except tomllib.TOMLDecodeError as exc:
                raise BadInputError(f"Invalid TOML: {exc}") from exc
            cfg = cls.from_dict(data)
        cfg.apply_env_overrides(os.environ)
        cfg.validate()
        return cfg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        sections: dict[str, dict[str, Any]] = {}
        for name in ("monitor", "timeline", "logging"):
            section = data.get(name, {})
            if not isinstance(section, dict):
                raise BadInputError(f"[{name}] section must be a table")
            sections[name] = dict(section)

        monitor_data = sections["monitor"]
        for key in ("ignore_existing", "debug_window"):
            if key in monitor_data:
                monitor_data[key] = _coerce_bool(monitor_data[key], f"monitor.{key}")
        logging_data = sections["logging"]
        if "json" in logging_data:
            logging_data["json"] = _coerce_bool(logging_data["json"], "logging.json")

        try:
            return cls(
                monitor=MonitorPolicy(**monitor_data),
                timeline=TimelinePolicy(**sections["timeline"]),
                logging=LoggingPolicy(**logging_data),
            )
        except TypeError as exc:
            raise BadInputError(f"Unknown configuration key: {exc}") from exc

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        mapping: dict[str, tuple[object, str, Callable[[str], Any]]] = {
            "NODEDASH_LINES_MAX": (self.monitor, "lines_max", int),
            "NODEDASH_CHECKPOINT_INTERVAL": (self.monitor, "checkpoint_interval", int),
            "NODEDASH_GLOB_SCAN": (self.monitor, "glob_scan", int),
            "NODEDASH_TIMELINE_STEPS": (self.timeline, "steps", int),
            "NODEDASH_TICK_RATE_MS": (self.timeline, "tick_rate_ms", int),
            "NODEDASH_LOG_FILE": (self.logging, "file", str),
            "NODEDASH_LOG_LEVEL": (self.logging, "level", str),
        }
        for key, (target, attr, caster) in mapping.items():
            raw_value = env.get(key)
            if raw_value is None:
                continue
            try:
                value = caster(raw_value)
            except ValueError as exc:
                raise BadInputError(f"Invalid env override {key}={raw_value!r}") from exc
            setattr(target, attr, value)

        bool_overrides: dict[str, tuple[object, str]] = {
            "NODEDASH_IGNORE_EXISTING": (self.monitor, "ignore_existing"),
            "NODEDASH_DEBUG_WINDOW": (self.monitor, "debug_window"),
            "NODEDASH_LOG_JSON": (self.logging, "json"),
        }
        for key, (target, attr) in bool_overrides.items():
            raw_value = env.get(key)
            if raw_value is None:
                continue
            normalized = raw_value.strip().lower()
            if normalized in _TRUTHY:
                setattr(target, attr, True)
            elif normalized in _FALSY:
                setattr(target, attr, False)
            else:
                raise BadInputError(f"Invalid env override {key}={raw_value!r}")

    def validate(self) -> None:
        self.monitor.validate()
        self.timeline.validate()
        self.logging.validate()


DEFAULT_CONFIG = AppConfig()


def load_app_config(path: str | None) -> AppConfig:
    config_path = Path(path) if path else None
    return AppConfig.load(config_path)
