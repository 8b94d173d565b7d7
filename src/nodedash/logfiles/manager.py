"""Discover logfiles, create monitors and keep their ordinal indices unique."""

from __future__ import annotations

import glob
import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime
from functools import partial
from typing import Protocol

from ..config import AppConfig
from ..io.checkpoint import restore_checkpoint
from .monitor import LogMonitor

logger = logging.getLogger(__name__)

GlobExpander = Callable[[str], list[str]]
StatusSink = Callable[[str], None]


class Tailer(Protocol):
    def add_file(self, path: str, *, from_end: bool = False) -> None: ...


def default_glob_expander(pattern: str) -> list[str]:
    expand = partial(glob.glob, recursive=True)
    return [os.path.abspath(path) for path in expand(os.path.expanduser(pattern))]


class LogfilesManager:
    """Owns every :class:`LogMonitor`, keyed by absolute logfile path."""

    def __init__(
        self,
        config: AppConfig,
        tailer: Tailer,
        *,
        glob_expander: GlobExpander = default_glob_expander,
        status: StatusSink | None = None,
    ) -> None:
        self.config = config
        self.tailer = tailer
        self.glob_expander = glob_expander
        self.status = status
        self.monitors: dict[str, LogMonitor] = {}
        self.logfiles_added: list[str] = []
        self.logfiles_failed: list[str] = []
        self.globpaths: list[str] = []
        self.globpaths_failed: list[str] = []
        self._last_scan: float | None = None
        self._seq = 0

    @staticmethod
    def _key(path: str) -> str:
        return os.path.abspath(os.path.expanduser(path))

    def _report(self, message: str) -> None:
        logger.warning(message)
        if self.status is not None:
            self.status(message)

    def __len__(self) -> int:
        return len(self.monitors)

    def sorted_monitors(self) -> list[LogMonitor]:
        return sorted(self.monitors.values(), key=lambda m: m.index)

    def monitor_for_path(self, path: str) -> LogMonitor | None:
        return self.monitors.get(self._key(path))

    def next_unused_index(self) -> int:
        used = {monitor.index for monitor in self.monitors.values()}
        index = 0
        while index in used:
            index += 1
        return index

    def canonicalise_index(self, monitor: LogMonitor) -> None:
        """Resolve an index shared with another live monitor.

        The pair receives {shared index, next unused index}; the monitor whose
        node started first (then the one added first) gets the lower value.
        """

        clash = next(
            (
                other
                for other in self.monitors.values()
                if other is not monitor and other.index == monitor.index
            ),
            None,
        )
        if clash is None:
            return
        spare = self.next_unused_index()
        low, high = sorted((monitor.index, spare))
        senior, junior = sorted((monitor, clash), key=LogMonitor.seniority)
        senior.index, junior.index = low, high
        logger.info(
            "index collision resolved: %s -> %d, %s -> %d",
            senior.logfile,
            senior.index,
            junior.logfile,
            junior.index,
        )

    def monitor_path(self, path: str) -> LogMonitor | None:
        """Start monitoring ``path``. Re-adding a tracked path returns its monitor.

        A path that failed before is tried again; only its first failure is
        reported.
        """

        key = self._key(path)
        existing = self.monitors.get(key)
        if existing is not None:
            return existing

        policy = self.config.monitor
        monitor = LogMonitor(
            key,
            self.next_unused_index(),
            lines_max=policy.lines_max,
            timeline_steps=self.config.timeline.steps,
            checkpoint_interval=policy.checkpoint_interval,
            insertion_seq=self._seq,
        )
        restored = restore_checkpoint(monitor)
        from_end = policy.ignore_existing and not restored
        try:
            self.tailer.add_file(key, from_end=from_end)
        except OSError as exc:
            if key not in self.logfiles_failed:
                self.logfiles_failed.append(key)
                self._report(f"Failed to monitor {key}: {exc}")
            return None

        if key in self.logfiles_failed:
            self.logfiles_failed.remove(key)
            logger.info("recovered logfile %s", key)
        self._seq += 1
        self.monitors[key] = monitor
        self.logfiles_added.append(key)
        if restored:
            self.canonicalise_index(monitor)
        logger.info("monitoring %s (index=%d, restored=%s)", key, monitor.index, restored)
        return monitor

    def monitor_multi_paths(self, paths: Iterable[str]) -> list[LogMonitor]:
        added: list[LogMonitor] = []
        for path in paths:
            monitor = self.monitor_path(path)
            if monitor is not None:
                added.append(monitor)
        return added

    def scan_globpath(self, pattern: str) -> list[LogMonitor]:
        """Expand ``pattern`` now and monitor matches not already tracked."""

        if pattern not in self.globpaths:
            self.globpaths.append(pattern)
        try:
            matches = self.glob_expander(pattern)
        except (OSError, ValueError) as exc:
            if pattern not in self.globpaths_failed:
                self.globpaths_failed.append(pattern)
                self._report(f"Failed to expand {pattern!r}: {exc}")
            return []

        added: list[LogMonitor] = []
        for path in sorted(matches):
            if self._key(path) in self.monitors:
                continue
            monitor = self.monitor_path(path)
            if monitor is not None:
                added.append(monitor)
        return added

    def scan_multi_globpaths(self, patterns: Iterable[str]) -> list[LogMonitor]:
        added: list[LogMonitor] = []
        for pattern in patterns:
            added.extend(self.scan_globpath(pattern))
        return added

    def rescan(self) -> list[LogMonitor]:
        return self.scan_multi_globpaths(list(self.globpaths))

    def maybe_rescan(self, now: float) -> list[LogMonitor]:
        """Rescan known patterns when ``glob_scan`` seconds have passed since the last scan."""

        interval = self.config.monitor.glob_scan
        if interval <= 0 or not self.globpaths:
            return []
        if self._last_scan is None:
            self._last_scan = now
            return []
        if now - self._last_scan < interval:
            return []
        self._last_scan = now
        added = self.rescan()
        if added:
            logger.info("rescan added %d logfile(s)", len(added))
        return added

    def update_timelines(self, now: datetime) -> None:
        for monitor in self.monitors.values():
            monitor.metrics.update_timelines(now)
            monitor.metrics.update_node_status_string(now)


__all__ = ["LogfilesManager", "Tailer", "default_glob_expander"]
