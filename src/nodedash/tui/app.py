"""Textual dashboard for monitored node logfiles."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from textual import events
from textual.app import App, ComposeResult
from textual.widgets import Footer, Header, Sparkline, Static

from ..contracts.error import EnvelopeError
from ..core.timelines import get_duration_text
from ..dashboard.control import ControlLoop
from ..dashboard.state import DEBUG_WINDOW_NAME, SUMMARY_COLUMNS, DashState, DashView
from ..logfiles.manager import LogfilesManager
from ..logfiles.monitor import LogMonitor

logger = logging.getLogger(__name__)

HELP_LINES: tuple[tuple[str, str], ...] = (
    ("q", "Quit"),
    ("enter", "Toggle Summary / Node view (leaves Help)"),
    ("s", "Summary view"),
    ("n", "Node view"),
    ("h ?", "Help"),
    ("g", "Debug view (with --debug-window)"),
    ("space", "Reverse summary sort order"),
    ("left right", "Summary: choose sort column. Node: change node"),
    ("up down", "Change node"),
    ("+ i / - o", "Timeline scale in / out"),
    ("t / T", "Next / previous top timeline"),
    ("m", "Cycle min / mean / max"),
    ("l", "Show / hide node logfile"),
    ("r", "Rescan glob paths"),
)


def _summary_row(monitor: LogMonitor) -> tuple[Any, ...]:
    metrics = monitor.metrics
    return (
        monitor.name,
        metrics.node_status_string or metrics.node_status.value,
        metrics.running_version or "-",
        metrics.activity_gets.total,
        metrics.activity_puts.total,
        metrics.activity_errors.total,
        metrics.storage_payments.total,
        metrics.storage_cost.most_recent,
        metrics.peers_connected.most_recent,
        metrics.memory_used_mb.most_recent,
    )


def format_summary_table(monitors: Iterable[LogMonitor], state: DashState) -> str:
    rows = [(monitor, _summary_row(monitor)) for monitor in monitors]
    if not rows:
        return "No logfiles monitored yet."
    column = state.summary_sort_column
    rows.sort(key=lambda item: item[1][column], reverse=not state.summary_sort_ascending)

    widths = [len(name) for name in SUMMARY_COLUMNS]
    for _, values in rows:
        widths = [max(width, len(str(value))) for width, value in zip(widths, values, strict=True)]

    def fmt(values: Iterable[Any]) -> str:
        return "  ".join(str(value).ljust(width) for value, width in zip(values, widths, strict=True))

    arrow = "^" if state.summary_sort_ascending else "v"
    headings = [
        f"{name}{arrow}" if index == column else name for index, name in enumerate(SUMMARY_COLUMNS)
    ]
    widths = [max(width, len(heading)) for width, heading in zip(widths, headings, strict=True)]
    lines = ["  " + fmt(headings)]
    for monitor, values in rows:
        marker = "> " if monitor.logfile == state.logfile_with_focus else "  "
        lines.append(marker + fmt(values))
    return "\n".join(lines)


def timeline_values(monitor: LogMonitor, state: DashState) -> list[int]:
    bucket = monitor.metrics.timelines.get_timeline_buckets(state.top_timeline, state.timescale_name)
    if bucket is None:
        return []
    return bucket.values(state.mmm_ui_mode)


def format_node_detail(monitor: LogMonitor, state: DashState, now: datetime | None = None) -> str:
    metrics = monitor.metrics
    current = now or datetime.now(tz=UTC)
    started = metrics.node_started
    uptime = get_duration_text(current - started) if started is not None else "-"
    lines = [
        f"Node {monitor.index}: {monitor.logfile}",
        f"Status: {metrics.node_status_string or metrics.node_status.value}  Version: {metrics.running_version or '-'}",
        f"PID: {metrics.node_process_id or '-'}  PeerId: {metrics.node_peer_id or '-'}",
        f"Started: {started.isoformat() if started else '-'}  Uptime: {uptime}",
        (
            f"GETS {metrics.activity_gets.total}  PUTS {metrics.activity_puts.total}  "
            f"ERRORS {metrics.activity_errors.total}"
        ),
        (
            f"Earnings {metrics.storage_payments.total} nanos  "
            f"Storage cost {metrics.storage_cost.most_recent} nanos/MB  "
            f"Peers {metrics.peers_connected.most_recent}"
        ),
        (
            f"CPU {metrics.cpu_usage_percent:.1f}% (max {metrics.cpu_usage_percent_max:.1f}%)  "
            f"RAM {metrics.memory_used_mb.most_recent} MB  "
            f"Disk {metrics.used_space}/{metrics.max_capacity}"
        ),
        (
            f"Net {metrics.interface_name}: rx {metrics.total_mb_received:.1f} MB  "
            f"tx {metrics.total_mb_transmitted:.1f} MB"
        ),
    ]
    timeline = metrics.timelines.get_timeline_by_index(state.top_timeline)
    if timeline is not None:
        bucket = timeline.get_bucket_set(state.timescale_name)
        mode = f" {state.mmm_ui_mode.value}" if timeline.is_mmm else ""
        covered = get_duration_text(bucket.duration_covered()) if bucket is not None else "-"
        lines.append(
            f"Timeline: {timeline.name}{timeline.units_text}{mode} ({state.timescale_name}, covering {covered})"
        )
    return "\n".join(lines)


def format_logfile(monitor: LogMonitor) -> str:
    return "\n".join(monitor.content)


def format_help() -> str:
    width = max(len(keys) for keys, _ in HELP_LINES)
    return "\n".join(f"{keys.ljust(width)}  {text}" for keys, text in HELP_LINES)


def format_debug(state: DashState) -> str:
    if not state.debug_lines:
        return f"{DEBUG_WINDOW_NAME}: no parser output yet."
    return "\n".join(state.debug_lines)


class NodeDashApp(App[None]):
    """Terminal dashboard driven by a :class:`ControlLoop`."""

    CSS = """
    Screen { layout: vertical; }
    #status { padding: 0 2; background: #1f2937; color: #e5e7eb; }
    #body { padding: 1 2; }
    #timeline { height: 6; margin: 0 2; }
    #logfile { padding: 0 2; color: #94a3b8; }
    """

    def __init__(self, control: ControlLoop, manager: LogfilesManager, state: DashState) -> None:
        super().__init__()
        self.control = control
        self.manager = manager
        self.dash_state = state
        self.control_error: EnvelopeError | None = None
        control.render = self.refresh_view

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(self.dash_state.status.text(), id="status", markup=False)
        yield Static("", id="body", markup=False)
        yield Sparkline([], id="timeline")
        yield Static("", id="logfile", markup=False)
        yield Footer()

    async def on_mount(self) -> None:
        self._status_view = self.query_one("#status", Static)
        self._body_view = self.query_one("#body", Static)
        self._timeline_view = self.query_one("#timeline", Sparkline)
        self._logfile_view = self.query_one("#logfile", Static)
        self.refresh_view()
        self.run_worker(self._run_control(), exclusive=True)

    async def _run_control(self) -> None:
        try:
            await self.control.run()
        except EnvelopeError as exc:
            logger.error("control loop stopped: %s", exc)
            self.control_error = exc
        finally:
            self.exit()

    def on_key(self, event: events.Key) -> None:
        character = event.character
        if character and len(character) == 1 and character.isprintable():
            key = character
        else:
            key = event.key
        if key == "tab":
            event.prevent_default()
        event.stop()
        self.control.post_key(key)

    def _focused_monitor(self) -> LogMonitor | None:
        focus = self.dash_state.logfile_with_focus
        if focus:
            monitor = self.manager.monitor_for_path(focus)
            if monitor is not None:
                return monitor
        monitors = self.manager.sorted_monitors()
        return monitors[0] if monitors else None

    def refresh_view(self) -> None:
        if not hasattr(self, "_body_view"):
            return
        state = self.dash_state
        self._status_view.update(state.status.text())
        monitor = self._focused_monitor()
        show_node = state.main_view is DashView.NODE and monitor is not None
        self._timeline_view.display = show_node
        self._logfile_view.display = show_node and state.node_logfile_visible

        if state.main_view is DashView.HELP:
            self._body_view.update(format_help())
        elif state.main_view is DashView.DEBUG:
            self._body_view.update(format_debug(state))
        elif show_node and monitor is not None:
            self._body_view.update(format_node_detail(monitor, state))
            self._timeline_view.data = timeline_values(monitor, state)
            if state.node_logfile_visible:
                self._logfile_view.update(format_logfile(monitor))
        else:
            self._body_view.update(format_summary_table(self.manager.sorted_monitors(), state))


__all__ = [
    "NodeDashApp",
    "format_debug",
    "format_help",
    "format_logfile",
    "format_node_detail",
    "format_summary_table",
    "timeline_values",
]
