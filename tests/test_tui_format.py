from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

from nodedash.config import AppConfig
from nodedash.core.timelines import MinMeanMax
from nodedash.dashboard.control import ControlLoop
from nodedash.dashboard.state import DashState, DashView
from nodedash.logfiles.manager import LogfilesManager
from nodedash.logfiles.monitor import LogMonitor
from nodedash.metrics.constants import APP_TIMELINES, GETS_TIMELINE_KEY
from nodedash.tui.app import (
    NodeDashApp,
    format_debug,
    format_help,
    format_node_detail,
    format_summary_table,
    timeline_values,
)
from tests.util.logs import RecordingTailer, log_line

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _monitor(name: str, index: int, gets: int) -> LogMonitor:
    monitor = LogMonitor(f"/logs/{name}", index, timeline_steps=10)
    monitor.append_line(log_line("INFO", T0, "Running safenode v2.0.0"))
    for offset in range(gets):
        monitor.append_line(log_line("INFO", T0 + timedelta(seconds=offset), "Retrieved record from disk"))
    return monitor


def test_summary_table_sorts_and_marks_focus() -> None:
    busy = _monitor("busy.log", 0, gets=5)
    idle = _monitor("idle.log", 1, gets=1)
    state = DashState(logfile_with_focus=idle.logfile, summary_sort_column=3, summary_sort_ascending=False)

    lines = format_summary_table([idle, busy], state).splitlines()
    assert "GETSv" in lines[0]
    assert lines[1].lstrip().startswith("busy.log")
    assert lines[2].startswith("> idle.log")

    state.summary_sort_ascending = True
    lines = format_summary_table([idle, busy], state).splitlines()
    assert "GETS^" in lines[0]
    assert "idle.log" in lines[1]


def test_summary_table_without_monitors() -> None:
    assert format_summary_table([], DashState()) == "No logfiles monitored yet."


def test_node_detail_reports_uptime_and_timeline() -> None:
    monitor = _monitor("node.log", 3, gets=2)
    gets_index = [entry[0] for entry in APP_TIMELINES].index(GETS_TIMELINE_KEY)
    state = DashState(top_timeline=gets_index)
    text = format_node_detail(monitor, state, now=T0 + timedelta(minutes=2))
    assert "Node 3: /logs/node.log" in text
    assert "Version: v2.0.0" in text
    assert "Uptime: 2m 0s" in text
    assert "GETS 2" in text
    assert "Timeline: GETS (1 second columns, covering 1s)" in text
    assert timeline_values(monitor, state) == [2]


def test_node_detail_shows_mmm_mode_for_statistical_timelines() -> None:
    monitor = _monitor("node.log", 0, gets=0)
    ram_index = len(APP_TIMELINES) - 1
    state = DashState(top_timeline=ram_index, mmm_ui_mode=MinMeanMax.MAX, active_timescale=1)
    text = format_node_detail(monitor, state, now=T0)
    assert "Timeline: RAM MB max (1 minute columns" in text


def test_help_and_debug_text() -> None:
    help_text = format_help()
    assert "Quit" in help_text and "Rescan glob paths" in help_text
    state = DashState(debug_window=True)
    assert "no parser output yet" in format_debug(state)
    state.debug("node.log: PUT")
    assert format_debug(state) == "node.log: PUT"


def test_app_follows_keys_until_quit(app_config: AppConfig, tmp_path: Path) -> None:
    tailer = RecordingTailer()
    manager = LogfilesManager(app_config, tailer)
    manager.monitor_path(str(tmp_path / "node.log"))
    state = DashState()
    control = ControlLoop(manager, state, tailer, tick_interval=0.05)
    dash_app = NodeDashApp(control, manager, state)

    async def scenario() -> None:
        async with dash_app.run_test() as pilot:
            await pilot.press("h")
            await pilot.pause(0.2)
            assert state.main_view is DashView.HELP
            await pilot.press("q")
            await pilot.pause(0.2)

    asyncio.run(scenario())
    assert state.quit_requested
    assert dash_app.control_error is None
