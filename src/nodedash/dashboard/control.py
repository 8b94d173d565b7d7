"""Single-writer control loop merging logfile lines, ticks and key presses."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from ..contracts.error import CheckpointError
from ..logfiles.manager import LogfilesManager
from .state import DashState, DashView

logger = logging.getLogger(__name__)

LINE_SOURCE = "line"
TICK_SOURCE = "tick"
KEY_SOURCE = "key"
SOURCES: tuple[str, ...] = (LINE_SOURCE, TICK_SOURCE, KEY_SOURCE)
DISPATCH_HISTORY = 256


class LineSource(Protocol):
    async def next_line(self) -> tuple[str, str] | None: ...


class ControlLoop:
    """Dispatch exactly one ready event per turn, then render.

    When several sources are ready together the one served least recently
    goes first, so a busy logfile cannot starve the keyboard or the tick.
    Only this loop mutates monitors. ``dispatched`` keeps the most recent
    sources served, newest last.
    """

    def __init__(
        self,
        manager: LogfilesManager,
        state: DashState,
        tailer: LineSource,
        *,
        tick_interval: float = 0.2,
        render: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        self.manager = manager
        self.state = state
        self.tailer = tailer
        self.tick_interval = tick_interval
        self.render = render
        self.clock = clock
        self.wall_clock = wall_clock
        self.keys: asyncio.Queue[str] = asyncio.Queue()
        self.lines_open = True
        self.dispatched: deque[str] = deque(maxlen=DISPATCH_HISTORY)
        self._rotation = 0

    def post_key(self, key: str) -> None:
        self.keys.put_nowait(key)

    async def _next_tick(self) -> None:
        await asyncio.sleep(self.tick_interval)

    def _factory(self, source: str) -> Callable[[], Awaitable[Any]]:
        if source == LINE_SOURCE:
            return self.tailer.next_line
        if source == TICK_SOURCE:
            return self._next_tick
        return self.keys.get

    def _pick(self, ready: set[str]) -> str:
        for offset in range(len(SOURCES)):
            candidate = SOURCES[(self._rotation + offset) % len(SOURCES)]
            if candidate in ready:
                self._rotation = (SOURCES.index(candidate) + 1) % len(SOURCES)
                return candidate
        raise RuntimeError("no ready source")

    async def run(self) -> None:
        """Run until quit is requested. A hard tail error propagates."""

        pending: dict[str, asyncio.Future[Any]] = {}
        try:
            while not self.state.quit_requested:
                for source in SOURCES:
                    if source == LINE_SOURCE and not self.lines_open:
                        continue
                    if source not in pending:
                        pending[source] = asyncio.ensure_future(self._factory(source)())
                await asyncio.wait(pending.values(), return_when=asyncio.FIRST_COMPLETED)
                ready = {source for source, task in pending.items() if task.done()}
                source = self._pick(ready)
                result = pending.pop(source).result()
                self.dispatch(source, result)
                if self.render is not None:
                    self.render()
        finally:
            for task in pending.values():
                task.cancel()
            if pending:
                await asyncio.gather(*pending.values(), return_exceptions=True)

    def dispatch(self, source: str, payload: Any) -> None:
        self.dispatched.append(source)
        if source == LINE_SOURCE:
            if payload is None:
                logger.info("line source closed")
                self.lines_open = False
                return
            path, line = payload
            self.handle_line(path, line)
        elif source == TICK_SOURCE:
            self.handle_tick()
        else:
            self.handle_key(payload)

    def handle_line(self, path: str, line: str) -> None:
        monitor = self.manager.monitor_for_path(path)
        if monitor is None:
            logger.debug("line for unmonitored file %s", path)
            return
        try:
            applied = monitor.append_line(line)
        except CheckpointError as exc:
            logger.warning("%s", exc)
            self.state.status.set(f"Checkpoint failed: {monitor.name}")
            return
        if applied:
            self.state.debug(f"{monitor.name}: {monitor.metrics.parser_output}")
        if not self.state.logfile_with_focus:
            self.state.logfile_with_focus = monitor.logfile

    def handle_tick(self) -> None:
        self.manager.update_timelines(self.wall_clock())
        added = self.manager.maybe_rescan(self.clock())
        if added:
            self.state.status.set(f"Added {len(added)} logfile(s)")

    def _logfiles(self) -> list[str]:
        return [monitor.logfile for monitor in self.manager.sorted_monitors()]

    def handle_key(self, key: str) -> bool:
        """Apply one key press. Returns ``False`` when the key requests quit."""

        state = self.state
        has_files = len(self.manager) > 0
        if key in ("q", "Q"):
            state.quit_requested = True
            return False
        if key == "enter":
            if state.main_view is DashView.HELP:
                state.set_main_view(state.previous_main_view)
            elif has_files and state.main_view is DashView.NODE:
                state.set_main_view(DashView.SUMMARY)
            elif has_files and state.main_view is DashView.SUMMARY:
                state.set_main_view(DashView.NODE)
        elif key in (" ", "space"):
            if state.main_view is DashView.SUMMARY:
                state.toggle_sort_direction()
        elif key in ("s", "S"):
            state.set_main_view(DashView.SUMMARY)
        elif key in ("h", "H", "?"):
            state.set_main_view(DashView.HELP)
        elif key in ("n", "N"):
            if has_files:
                state.set_main_view(DashView.NODE)
        elif key in ("+", "i", "I"):
            state.scale_timeline_up()
        elif key in ("-", "o", "O"):
            state.scale_timeline_down()
        elif key in ("l", "L"):
            state.toggle_logfile_area()
        elif key in ("m", "M"):
            state.bump_mmm_ui_mode()
        elif key in ("r", "R"):
            added = self.manager.rescan()
            state.status.set(f"Rescan found {len(added)} new logfile(s)")
        elif key == "t":
            state.top_timeline_next()
        elif key == "T":
            state.top_timeline_previous()
        elif key == "g":
            if state.debug_window:
                state.set_main_view(DashView.DEBUG)
        elif key == "down":
            state.focus_next(self._logfiles())
        elif key == "up":
            state.focus_previous(self._logfiles())
        elif key in ("right", "tab"):
            if state.main_view is DashView.SUMMARY:
                state.sort_column_next()
            else:
                state.focus_next(self._logfiles())
        elif key == "left":
            if state.main_view is DashView.SUMMARY:
                state.sort_column_previous()
            else:
                state.focus_previous(self._logfiles())
        return True


__all__ = ["ControlLoop", "DISPATCH_HISTORY", "KEY_SOURCE", "LINE_SOURCE", "SOURCES", "TICK_SOURCE"]
