from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from nodedash.config import AppConfig
from nodedash.io.checkpoint import save_checkpoint
from nodedash.logfiles.manager import LogfilesManager, default_glob_expander
from nodedash.logfiles.monitor import LogMonitor
from tests.util.logs import RecordingTailer, log_line

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class FakeGlob:
    """Glob expander backed by a mutable list of matches."""

    def __init__(self, *matches: str) -> None:
        self.matches = list(matches)
        self.calls = 0

    def __call__(self, pattern: str) -> list[str]:
        self.calls += 1
        return list(self.matches)


def _checkpoint(logfile: Path, started: datetime, index: int = 0) -> None:
    monitor = LogMonitor(str(logfile), index, timeline_steps=10)
    monitor.append_line(log_line("INFO", started, "Running safenode v1.0.0"))
    save_checkpoint(monitor)


def test_rescan_adds_only_new_matches(app_config: AppConfig, tmp_path: Path) -> None:
    first = str(tmp_path / "node1.log")
    second = str(tmp_path / "node2.log")
    fake = FakeGlob(first)
    tailer = RecordingTailer()
    manager = LogfilesManager(app_config, tailer, glob_expander=fake)

    added = manager.scan_globpath(str(tmp_path / "*.log"))
    assert [monitor.logfile for monitor in added] == [first]

    fake.matches.append(second)
    added = manager.rescan()
    assert [monitor.logfile for monitor in added] == [second]
    assert len(manager) == 2
    assert manager.rescan() == []
    assert len(manager) == 2
    assert [path for path, _ in tailer.added] == [first, second]
    assert manager.globpaths == [str(tmp_path / "*.log")]


def test_monitor_path_is_idempotent(app_config: AppConfig, tmp_path: Path) -> None:
    manager = LogfilesManager(app_config, RecordingTailer())
    path = str(tmp_path / "node.log")
    first = manager.monitor_path(path)
    again = manager.monitor_path(path)
    assert first is not None and again is first
    assert manager.logfiles_added == [path]


def test_indices_fill_the_lowest_gap(app_config: AppConfig, tmp_path: Path) -> None:
    manager = LogfilesManager(app_config, RecordingTailer())
    monitors = manager.monitor_multi_paths([str(tmp_path / f"n{i}.log") for i in range(3)])
    assert [monitor.index for monitor in monitors] == [0, 1, 2]
    del manager.monitors[monitors[1].logfile]
    assert manager.next_unused_index() == 1


def test_failed_paths_are_recorded_once(app_config: AppConfig, tmp_path: Path) -> None:
    messages: list[str] = []
    manager = LogfilesManager(
        app_config, RecordingTailer(fail_for={"bad.log"}), status=messages.append
    )
    bad = str(tmp_path / "bad.log")
    assert manager.monitor_path(bad) is None
    assert manager.monitor_path(bad) is None
    assert manager.logfiles_failed == [bad]
    assert len(messages) == 1 and "bad.log" in messages[0]
    assert len(manager) == 0


def test_failed_path_is_picked_up_by_a_later_rescan(app_config: AppConfig, tmp_path: Path) -> None:
    messages: list[str] = []
    path = str(tmp_path / "later" / "node.log")
    tailer = RecordingTailer(fail_for={"node.log"})
    manager = LogfilesManager(
        app_config, tailer, glob_expander=FakeGlob(path), status=messages.append
    )
    assert manager.scan_globpath(str(tmp_path / "*" / "*.log")) == []
    assert manager.rescan() == []
    assert manager.logfiles_failed == [path]
    assert len(messages) == 1

    # the parent directory appears
    tailer.fail_for.clear()
    added = manager.rescan()
    assert [monitor.logfile for monitor in added] == [path]
    assert manager.logfiles_failed == []
    assert manager.logfiles_added == [path]
    assert added[0].index == 0
    assert manager.rescan() == []
    assert len(messages) == 1


def test_glob_failure_is_reported_once(app_config: AppConfig) -> None:
    def broken(pattern: str) -> list[str]:
        raise OSError("permission denied")

    messages: list[str] = []
    manager = LogfilesManager(app_config, RecordingTailer(), glob_expander=broken, status=messages.append)
    assert manager.scan_globpath("/root/*.log") == []
    assert manager.scan_globpath("/root/*.log") == []
    assert manager.globpaths_failed == ["/root/*.log"]
    assert len(messages) == 1


def test_ignore_existing_tails_from_end_unless_restored(app_config: AppConfig, tmp_path: Path) -> None:
    app_config.monitor.ignore_existing = True
    restored = tmp_path / "restored.log"
    _checkpoint(restored, T0)
    tailer = RecordingTailer()
    manager = LogfilesManager(app_config, tailer)
    fresh = str(tmp_path / "fresh.log")
    manager.monitor_multi_paths([fresh, str(restored)])
    assert tailer.added == [(fresh, True), (str(restored), False)]

    monitor = manager.monitor_for_path(str(restored))
    assert monitor is not None
    assert monitor.resume_after == T0
    assert monitor.metrics.running_version == "v1.0.0"


@pytest.mark.parametrize("reverse", [False, True])
def test_index_collision_favours_earlier_start(app_config: AppConfig, tmp_path: Path, reverse: bool) -> None:
    older = tmp_path / "older.log"
    newer = tmp_path / "newer.log"
    _checkpoint(older, T0)
    _checkpoint(newer, T0 + timedelta(hours=1))

    manager = LogfilesManager(app_config, RecordingTailer())
    order = [str(newer), str(older)]
    if reverse:
        order.reverse()
    manager.monitor_multi_paths(order)

    indices = {Path(monitor.logfile).name: monitor.index for monitor in manager.sorted_monitors()}
    assert indices == {"older.log": 0, "newer.log": 1}


def test_maybe_rescan_waits_for_interval(app_config: AppConfig, tmp_path: Path) -> None:
    app_config.monitor.glob_scan = 10
    fake = FakeGlob()
    manager = LogfilesManager(app_config, RecordingTailer(), glob_expander=fake)
    manager.scan_globpath("*.log")
    calls = fake.calls

    assert manager.maybe_rescan(100.0) == []
    fake.matches.append(str(tmp_path / "late.log"))
    assert manager.maybe_rescan(105.0) == []
    assert fake.calls == calls
    added = manager.maybe_rescan(110.0)
    assert [monitor.name for monitor in added] == ["late.log"]


def test_maybe_rescan_disabled(app_config: AppConfig) -> None:
    fake = FakeGlob()
    manager = LogfilesManager(app_config, RecordingTailer(), glob_expander=fake)
    manager.scan_globpath("*.log")
    assert manager.maybe_rescan(0.0) == []
    assert manager.maybe_rescan(10_000.0) == []
    assert fake.calls == 1


def test_update_timelines_refreshes_status(app_config: AppConfig, tmp_path: Path) -> None:
    manager = LogfilesManager(app_config, RecordingTailer())
    monitor = manager.monitor_path(str(tmp_path / "node.log"))
    assert monitor is not None
    monitor.append_line(log_line("INFO", T0, "Connected to the Network"))
    manager.update_timelines(datetime.now(tz=UTC) + timedelta(minutes=5))
    assert monitor.metrics.node_status_string.startswith("INACTIVE")


def test_default_glob_expander_is_recursive(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.log").write_text("", encoding="utf-8")
    (tmp_path / "sub" / "b.log").write_text("", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")
    found = sorted(default_glob_expander(str(tmp_path / "**" / "*.log")))
    assert found == sorted([str(tmp_path / "a.log"), str(tmp_path / "sub" / "b.log")])
