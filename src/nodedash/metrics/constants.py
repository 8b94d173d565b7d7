"""Shared constants for the nodedash metrics subsystem."""

from __future__ import annotations

SCHEMA_VERSION = "v1"

CHECKPOINT_SCHEMA = f"nodedash.checkpoint.{SCHEMA_VERSION}"
CHECKPOINT_EXTENSION = ".nodedash"
CHECKPOINT_TMP_SUFFIX = ".nodedash-tmp"

NODE_INACTIVITY_TIMEOUT_S = 20

EARNINGS_UNITS_TEXT = " nanos"
STORAGE_COST_UNITS_TEXT = " nanos/MB"
RAM_UNITS_TEXT = " MB"

EARNINGS_TIMELINE_KEY = "earnings"
STORAGE_COST_TIMELINE_KEY = "storage"
PUTS_TIMELINE_KEY = "puts"
GETS_TIMELINE_KEY = "gets"
ERRORS_TIMELINE_KEY = "errors"
CONNECTIONS_TIMELINE_KEY = "connections"
RAM_TIMELINE_KEY = "ram"

# (key, display name, units, is_mmm, is_cumulative, colour)
APP_TIMELINES: tuple[tuple[str, str, str, bool, bool, str], ...] = (
    (EARNINGS_TIMELINE_KEY, "Earnings", EARNINGS_UNITS_TEXT, False, True, "bright_cyan"),
    (STORAGE_COST_TIMELINE_KEY, "Storage Cost", STORAGE_COST_UNITS_TEXT, True, False, "bright_blue"),
    (PUTS_TIMELINE_KEY, "PUTS", "", False, True, "yellow"),
    (GETS_TIMELINE_KEY, "GETS", "", False, True, "green"),
    (ERRORS_TIMELINE_KEY, "ERRORS", "", False, True, "red"),
    (CONNECTIONS_TIMELINE_KEY, "Connections", "", True, False, "magenta"),
    (RAM_TIMELINE_KEY, "RAM", RAM_UNITS_TEXT, True, False, "bright_magenta"),
)

__all__ = [
    "SCHEMA_VERSION",
    "CHECKPOINT_SCHEMA",
    "CHECKPOINT_EXTENSION",
    "CHECKPOINT_TMP_SUFFIX",
    "NODE_INACTIVITY_TIMEOUT_S",
    "EARNINGS_UNITS_TEXT",
    "STORAGE_COST_UNITS_TEXT",
    "RAM_UNITS_TEXT",
    "EARNINGS_TIMELINE_KEY",
    "STORAGE_COST_TIMELINE_KEY",
    "PUTS_TIMELINE_KEY",
    "GETS_TIMELINE_KEY",
    "ERRORS_TIMELINE_KEY",
    "CONNECTIONS_TIMELINE_KEY",
    "RAM_TIMELINE_KEY",
    "APP_TIMELINES",
]
