"""Command-line entry point for the nodedash dashboard."""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
import os
import sys
from collections.abc import Sequence
from logging.handlers import RotatingFileHandler

from ..config import AppConfig, load_app_config
from ..contracts.error import BadInputError, guard_cli
from ..dashboard.control import ControlLoop
from ..dashboard.state import DashState
from ..logfiles.manager import LogfilesManager
from ..logfiles.tailer import LogTailer
from ..tui.app import NodeDashApp

# --------------------------------------------------------------------
# Logging
# --------------------------------------------------------------------
logger = logging.getLogger("nodedash")
logger.setLevel(logging.INFO)
logger.propagate = False

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, DEFAULT_LOG_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    use_json: bool = False,
    log_file: str | None = None,
    level: str = "INFO",
    *,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure console (and optional rotating file) logging."""

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_LOG_DATEFMT)

    for handler in list(logger.handlers):
        with contextlib.suppress(Exception):
            handler.close()
        logger.removeHandler(handler)

    logger.setLevel(level.upper())
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def detach_console_handlers() -> list[logging.Handler]:
    """Remove console handlers while the TUI owns the terminal."""

    detached = [
        handler
        for handler in logger.handlers
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler)
    ]
    for handler in detached:
        logger.removeHandler(handler)
    return detached


def reattach_handlers(handlers: Sequence[logging.Handler]) -> None:
    for handler in handlers:
        logger.addHandler(handler)


configure_logging()


# --------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="nodedash",
        description="Terminal dashboard that tails node logfiles and charts their metrics.",
    )
    p.add_argument("logfiles", nargs="*", metavar="LOGFILE", help="Logfile(s) to monitor")
    p.add_argument(
        "-g",
        "--glob-path",
        action="append",
        default=[],
        dest="glob_paths",
        metavar="GLOB",
        help="Glob pattern of logfiles to monitor (repeatable; quote it to stop shell expansion)",
    )
    p.add_argument(
        "--glob-scan",
        type=int,
        default=None,
        help="Seconds between rescans of the glob patterns (0 disables)",
    )
    p.add_argument(
        "--checkpoint-interval",
        type=int,
        default=None,
        help="Seconds of log time between checkpoints (0 disables)",
    )
    p.add_argument("-l", "--lines-max", type=int, default=None, help="Recent lines kept per logfile")
    p.add_argument(
        "-t", "--timeline-steps", type=int, default=None, help="Number of columns per timeline"
    )
    p.add_argument(
        "-i",
        "--ignore-existing",
        action="store_true",
        default=None,
        help="Skip existing logfile content (unless resuming from a checkpoint)",
    )
    p.add_argument("--tick-rate", type=int, default=None, help="UI tick interval in milliseconds")
    p.add_argument(
        "-d", "--debug-window", action="store_true", default=None, help="Enable the debug window"
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to TOML config file (CLI flags override it and NODEDASH_* env overrides)",
    )
    p.add_argument("--log-json", action="store_true", default=None, help="Emit logs in JSON format")
    p.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path (rotates at 5MB, keeps 5 backups by default)",
    )
    p.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    return p


def build_config(args: argparse.Namespace) -> AppConfig:
    """Layer CLI flags over the TOML file and environment overrides."""

    cfg_path = args.config or os.getenv("NODEDASH_CONFIG")
    cfg = load_app_config(cfg_path)
    overrides = (
        (cfg.monitor, "lines_max", args.lines_max),
        (cfg.monitor, "ignore_existing", args.ignore_existing),
        (cfg.monitor, "checkpoint_interval", args.checkpoint_interval),
        (cfg.monitor, "glob_scan", args.glob_scan),
        (cfg.monitor, "debug_window", args.debug_window),
        (cfg.timeline, "steps", args.timeline_steps),
        (cfg.timeline, "tick_rate_ms", args.tick_rate),
        (cfg.logging, "json", args.log_json),
        (cfg.logging, "file", args.log_file),
        (cfg.logging, "level", args.log_level),
    )
    for target, attr, value in overrides:
        if value is not None:
            setattr(target, attr, value)
    cfg.validate()
    return cfg


def build_dashboard(
    cfg: AppConfig,
    logfiles: Sequence[str],
    glob_paths: Sequence[str],
    tailer: LogTailer | None = None,
) -> tuple[LogfilesManager, DashState, ControlLoop]:
    if not logfiles and not glob_paths:
        raise BadInputError(
            "No logfiles to monitor",
            hint="Pass one or more LOGFILE arguments or --glob-path patterns.",
        )
    tailer = tailer or LogTailer()
    state = DashState(debug_window=cfg.monitor.debug_window)
    manager = LogfilesManager(cfg, tailer, status=state.status.set)
    manager.monitor_multi_paths(logfiles)
    manager.scan_multi_globpaths(glob_paths)
    if manager.logfiles_failed:
        logger.warning("%d logfile(s) could not be monitored", len(manager.logfiles_failed))
    monitors = manager.sorted_monitors()
    if monitors:
        state.logfile_with_focus = monitors[0].logfile
        state.dash_node_focus = monitors[0].logfile
    control = ControlLoop(
        manager,
        state,
        tailer,
        tick_interval=cfg.timeline.tick_rate_ms / 1000.0,
    )
    return manager, state, control


@guard_cli
def run_dashboard(args: argparse.Namespace) -> int:
    cfg = build_config(args)
    configure_logging(cfg.logging.json, cfg.logging.file, cfg.logging.level)
    if args.config:
        logger.info("Loaded config from %s", args.config)

    manager, state, control = build_dashboard(cfg, args.logfiles, args.glob_paths)

    app = NodeDashApp(control, manager, state)
    detached = detach_console_handlers()
    try:
        app.run()
    finally:
        reattach_handlers(detached)
    if app.control_error is not None:
        raise app.control_error
    return 0


def main(argv: Sequence[str]) -> int:
    args = build_parser().parse_args(list(argv))
    return run_dashboard(args)


def console_main() -> None:
    """Entry point for console_scripts."""

    try:
        raise SystemExit(main(sys.argv[1:]))
    except SystemExit:
        raise
    except Exception as e:  # noqa: BLE001
        logger.exception("Fatal error: %s", e)
        raise SystemExit(2) from e


__all__ = [
    "JsonFormatter",
    "build_config",
    "build_dashboard",
    "build_parser",
    "configure_logging",
    "console_main",
    "detach_console_handlers",
    "main",
    "run_dashboard",
]
