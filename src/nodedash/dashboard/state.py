"""View, focus and status-line state for the dashboard."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum

from ..core.timelines import TIMESCALES, MinMeanMax
from ..metrics.constants import APP_TIMELINES

DEBUG_WINDOW_NAME = "Debug Window"
UI_STATUS_DEFAULT_MESSAGE = "Press '?' for Help"
UI_STATUS_DEFAULT_DURATION_S = 5.0
MAX_DEBUG_LINES = 1000

SUMMARY_COLUMNS: tuple[str, ...] = (
    "Node",
    "Status",
    "Version",
    "GETS",
    "PUTS",
    "Errors",
    "Earnings",
    "Storage Cost",
    "Peers",
    "RAM MB",
)


class DashView(StrEnum):
    SUMMARY = "summary"
    NODE = "node"
    HELP = "help"
    DEBUG = "debug"


@dataclass
class StatusMessage:
    """Status line text that reverts to a default once it expires."""

    default: str = UI_STATUS_DEFAULT_MESSAGE
    message: str = ""
    expires_at: float | None = None

    def set(self, message: str, duration: float = UI_STATUS_DEFAULT_DURATION_S, *, now: float | None = None) -> None:
        current = time.monotonic() if now is None else now
        self.message = message
        self.expires_at = current + duration

    def text(self, now: float | None = None) -> str:
        current = time.monotonic() if now is None else now
        if self.expires_at is None or current >= self.expires_at:
            return self.default
        return self.message


@dataclass
class DashState:
    main_view: DashView = DashView.SUMMARY
    previous_main_view: DashView = DashView.SUMMARY

    logfile_with_focus: str = ""
    dash_node_focus: str = ""
    debug_window: bool = False
    debug_window_has_focus: bool = False

    active_timescale: int = 0
    top_timeline: int = 0
    mmm_ui_mode: MinMeanMax = MinMeanMax.MEAN
    node_logfile_visible: bool = True

    summary_sort_column: int = 0
    summary_sort_ascending: bool = True

    debug_lines: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_DEBUG_LINES))
    status: StatusMessage = field(default_factory=StatusMessage)
    quit_requested: bool = False

    def set_main_view(self, view: DashView) -> None:
        if view is self.main_view:
            return
        if self.main_view in (DashView.SUMMARY, DashView.NODE) and self.logfile_with_focus:
            self.dash_node_focus = self.logfile_with_focus
        self.previous_main_view = self.main_view
        self.main_view = view
        if view in (DashView.SUMMARY, DashView.NODE) and self.dash_node_focus:
            self.logfile_with_focus = self.dash_node_focus
            self.debug_window_has_focus = False

    def debug(self, line: str) -> None:
        if self.debug_window:
            self.debug_lines.append(line)

    def focus_targets(self, logfiles: list[str]) -> list[str]:
        targets = list(logfiles)
        if self.debug_window:
            targets.append(DEBUG_WINDOW_NAME)
        return targets

    def _current_focus(self) -> str:
        return DEBUG_WINDOW_NAME if self.debug_window_has_focus else self.logfile_with_focus

    def _apply_focus(self, target: str) -> None:
        if target == DEBUG_WINDOW_NAME:
            self.debug_window_has_focus = True
        else:
            self.debug_window_has_focus = False
            self.logfile_with_focus = target

    def change_focus(self, logfiles: list[str], step: int) -> str | None:
        """Move focus ``step`` places through ``logfiles``, wrapping at either end."""

        targets = self.focus_targets(logfiles)
        if not logfiles or self.main_view is DashView.DEBUG:
            return None
        current = self._current_focus()
        if current in targets:
            position = (targets.index(current) + step) % len(targets)
        else:
            position = 0 if step > 0 else len(targets) - 1
        self._apply_focus(targets[position])
        return targets[position]

    def focus_next(self, logfiles: list[str]) -> str | None:
        return self.change_focus(logfiles, 1)

    def focus_previous(self, logfiles: list[str]) -> str | None:
        return self.change_focus(logfiles, -1)

    def scale_timeline_up(self) -> None:
        if self.active_timescale > 0:
            self.active_timescale -= 1

    def scale_timeline_down(self) -> None:
        if self.active_timescale < len(TIMESCALES) - 1:
            self.active_timescale += 1

    @property
    def timescale_name(self) -> str:
        return TIMESCALES[self.active_timescale][0]

    def top_timeline_next(self) -> None:
        self.top_timeline = (self.top_timeline + 1) % len(APP_TIMELINES)

    def top_timeline_previous(self) -> None:
        self.top_timeline = (self.top_timeline - 1) % len(APP_TIMELINES)

    def bump_mmm_ui_mode(self) -> None:
        self.mmm_ui_mode = self.mmm_ui_mode.next()

    def toggle_logfile_area(self) -> None:
        self.node_logfile_visible = not self.node_logfile_visible

    def toggle_sort_direction(self) -> None:
        self.summary_sort_ascending = not self.summary_sort_ascending

    def sort_column_next(self) -> None:
        if self.summary_sort_column < len(SUMMARY_COLUMNS) - 1:
            self.summary_sort_column += 1

    def sort_column_previous(self) -> None:
        if self.summary_sort_column > 0:
            self.summary_sort_column -= 1


__all__ = [
    "DEBUG_WINDOW_NAME",
    "SUMMARY_COLUMNS",
    "UI_STATUS_DEFAULT_MESSAGE",
    "DashState",
    "DashView",
    "StatusMessage",
]
