from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from nodedash.config import AppConfig
from nodedash.contracts.error import TailError
from nodedash.core.timelines import MinMeanMax
from nodedash.dashboard.control import DISPATCH_HISTORY, KEY_SOURCE, LINE_SOURCE, TICK_SOURCE, ControlLoop
from nodedash.dashboard.state import DEBUG_WINDOW_NAME, SUMMARY_COLUMNS, DashState, DashView
from nodedash.logfiles.manager import LogfilesManager
from nodedash.metrics.constants import APP_TIMELINES
from tests.util.logs import RecordingTailer, log_line

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _control(
    cfg: AppConfig,
    paths: list[str],
    *,
    tailer: object | None = None,
    debug_window: bool = False,
    **kwargs: object,
) -> ControlLoop:
    recording = RecordingTailer()
    manager = LogfilesManager(cfg, recording, **kwargs)  # type: ignore[arg-type]
    manager.monitor_multi_paths(paths)
    state = DashState(debug_window=debug_window)
    if paths:
        state.logfile_with_focus = manager.sorted_monitors()[0].logfile
    return ControlLoop(manager, state, tailer or recording, tick_interval=60.0)  # type: ignore[arg-type]


def _press(control: ControlLoop, *keys: str) -> None:
    for key in keys:
        control.handle_key(key)


def test_run_applies_lines_then_quits(app_config: AppConfig, tmp_path: Path) -> None:
    path = str(tmp_path / "node.log")
    control = _control(app_config, [path])
    tailer = control.tailer
    assert isinstance(tailer, RecordingTailer)
    tailer.lines = [
        (path, log_line("INFO", T0 + timedelta(seconds=offset), "Retrieved record from disk"))
        for offset in range(3)
    ]

    def render() -> None:
        if not control.lines_open and control.keys.empty():
            control.post_key("q")

    control.render = render
    asyncio.run(control.run())

    monitor = control.manager.monitor_for_path(path)
    assert monitor is not None
    assert monitor.metrics.activity_gets.total == 3
    assert len(monitor.content) == 3
    assert list(control.dispatched) == [LINE_SOURCE] * 4 + [KEY_SOURCE]
    assert control.state.quit_requested


class EndlessTailer:
    def __init__(self, path: str) -> None:
        self.path = path
        self.served = 0

    async def next_line(self) -> tuple[str, str]:
        self.served += 1
        return self.path, log_line("INFO", T0, "Wrote record")


def test_busy_logfile_does_not_starve_keys(app_config: AppConfig, tmp_path: Path) -> None:
    path = str(tmp_path / "node.log")
    control = _control(app_config, [path], tailer=EndlessTailer(path))
    control.post_key("q")
    asyncio.run(control.run())
    assert control.state.quit_requested
    assert control.dispatched[-1] == KEY_SOURCE
    assert len(control.dispatched) <= 2


def test_dispatch_history_is_bounded(app_config: AppConfig) -> None:
    control = _control(app_config, [])
    for _ in range(DISPATCH_HISTORY * 40):
        control.dispatch(TICK_SOURCE, None)
    control.dispatch(KEY_SOURCE, "s")
    assert len(control.dispatched) == DISPATCH_HISTORY
    assert control.dispatched[-1] == KEY_SOURCE


class BrokenTailer:
    async def next_line(self) -> tuple[str, str]:
        raise TailError("failed to read node.log: permission denied")


def test_tail_error_propagates(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "node.log")], tailer=BrokenTailer())
    with pytest.raises(TailError):
        asyncio.run(control.run())


def test_checkpoint_failure_sets_status(app_config: AppConfig, tmp_path: Path) -> None:
    app_config.monitor.checkpoint_interval = 1
    path = str(tmp_path / "missing" / "node.log")
    control = _control(app_config, [path])
    control.handle_line(path, log_line("INFO", T0, "Retrieved record from disk"))
    assert control.state.status.text() == "Checkpoint failed: node.log"
    monitor = control.manager.monitor_for_path(path)
    assert monitor is not None and monitor.metrics.activity_gets.total == 1


def test_lines_feed_debug_window_and_initial_focus(app_config: AppConfig, tmp_path: Path) -> None:
    path = str(tmp_path / "node.log")
    control = _control(app_config, [], debug_window=True)
    control.manager.monitor_path(path)
    control.handle_line(str(tmp_path / "other.log"), log_line("INFO", T0, "Wrote record"))
    assert control.state.logfile_with_focus == ""
    control.handle_line(path, log_line("INFO", T0, "Wrote record"))
    assert control.state.logfile_with_focus == path
    assert list(control.state.debug_lines) == ["node.log: PUT"]


def test_line_source_end_only_closes_lines(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "node.log")])
    control.dispatch(LINE_SOURCE, None)
    assert control.lines_open is False
    assert control.state.quit_requested is False


def test_tick_advances_timelines_and_rescans(app_config: AppConfig, tmp_path: Path) -> None:
    app_config.monitor.glob_scan = 1
    late = str(tmp_path / "late.log")
    matches: list[str] = []
    control = _control(app_config, [], glob_expander=lambda pattern: list(matches))
    control.manager.scan_globpath("*.log")
    clock = iter([0.0, 5.0])
    control.clock = lambda: next(clock)
    control.wall_clock = lambda: T0 + timedelta(minutes=1)

    control.handle_tick()
    matches.append(late)
    control.handle_tick()
    assert control.manager.monitor_for_path(late) is not None
    assert control.state.status.text() == "Added 1 logfile(s)"


def test_quit_key(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "a.log")])
    assert control.handle_key("n") is True
    assert control.handle_key("q") is False
    assert control.state.quit_requested


def test_enter_toggles_views_and_leaves_help(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "a.log")])
    state = control.state
    _press(control, "enter")
    assert state.main_view is DashView.NODE
    _press(control, "?")
    assert state.main_view is DashView.HELP
    _press(control, "enter")
    assert state.main_view is DashView.NODE
    _press(control, "enter")
    assert state.main_view is DashView.SUMMARY


def test_node_view_needs_logfiles(app_config: AppConfig) -> None:
    control = _control(app_config, [])
    _press(control, "n", "enter")
    assert control.state.main_view is DashView.SUMMARY
    _press(control, "h")
    assert control.state.main_view is DashView.HELP


def test_summary_sorting_keys(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "a.log"), str(tmp_path / "b.log")])
    state = control.state
    focus = state.logfile_with_focus
    _press(control, "right", "right", "tab")
    assert state.summary_sort_column == 3
    assert state.logfile_with_focus == focus
    _press(control, *["right"] * 20)
    assert state.summary_sort_column == len(SUMMARY_COLUMNS) - 1
    _press(control, *["left"] * 20)
    assert state.summary_sort_column == 0
    _press(control, " ")
    assert state.summary_sort_ascending is False


def test_focus_wraps_through_debug_window(app_config: AppConfig, tmp_path: Path) -> None:
    a, b = str(tmp_path / "a.log"), str(tmp_path / "b.log")
    control = _control(app_config, [a, b], debug_window=True)
    state = control.state
    _press(control, "down")
    assert state.logfile_with_focus == b
    _press(control, "down")
    assert state.debug_window_has_focus
    assert state.focus_targets([a, b])[-1] == DEBUG_WINDOW_NAME
    _press(control, "down")
    assert not state.debug_window_has_focus and state.logfile_with_focus == a
    _press(control, "up")
    assert state.debug_window_has_focus


def test_node_view_arrows_move_focus(app_config: AppConfig, tmp_path: Path) -> None:
    a, b = str(tmp_path / "a.log"), str(tmp_path / "b.log")
    control = _control(app_config, [a, b])
    _press(control, "n", "right")
    assert control.state.logfile_with_focus == b
    _press(control, "left", "left")
    assert control.state.logfile_with_focus == b


def test_timeline_and_display_keys(app_config: AppConfig, tmp_path: Path) -> None:
    control = _control(app_config, [str(tmp_path / "a.log")])
    state = control.state
    _press(control, "+")
    assert state.active_timescale == 0
    _press(control, "-", "o", "O")
    assert state.active_timescale == 3
    _press(control, "i")
    assert state.timescale_name == "1 hour columns"
    _press(control, "T")
    assert state.top_timeline == len(APP_TIMELINES) - 1
    _press(control, "t")
    assert state.top_timeline == 0
    _press(control, "m")
    assert state.mmm_ui_mode is MinMeanMax.MAX
    _press(control, "l")
    assert state.node_logfile_visible is False


def test_debug_view_only_when_enabled(app_config: AppConfig, tmp_path: Path) -> None:
    plain = _control(app_config, [str(tmp_path / "a.log")])
    _press(plain, "g")
    assert plain.state.main_view is DashView.SUMMARY

    debug = _control(app_config, [str(tmp_path / "a.log")], debug_window=True)
    _press(debug, "g")
    assert debug.state.main_view is DashView.DEBUG
    assert debug.state.change_focus([str(tmp_path / "a.log")], 1) is None


def test_rescan_key_reports_count(app_config: AppConfig) -> None:
    control = _control(app_config, [])
    _press(control, "r")
    assert control.state.status.text() == "Rescan found 0 new logfile(s)"
