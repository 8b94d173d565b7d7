"""Polling file tailer producing ``(path, line)`` events.

Files are polled rather than watched so the tailer behaves the same on every
platform. A file that does not exist yet is simply not ready; it is picked up
once it appears. Truncation resets the read offset and partial trailing lines
are buffered until their newline arrives.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path

from ..contracts.error import TailError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.25


class FileTail:
    """Track the read offset of one logfile."""

    def __init__(self, path: Path, *, from_end: bool = False) -> None:
        self.path = path
        self.offset = 0
        self.partial = ""
        if from_end:
            try:
                self.offset = path.stat().st_size
            except FileNotFoundError:
                self.offset = 0

    def read_new_lines(self) -> list[str]:
        """Return complete lines appended since the last call.

        Raises ``OSError`` for failures other than the file being absent.
        """

        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return []

        if size < self.offset:
            logger.info("logfile truncated, reading from start: %s", self.path)
            self.offset = 0
            self.partial = ""
        if size == self.offset:
            return []

        try:
            with self.path.open("rb") as fh:
                fh.seek(self.offset)
                data = fh.read()
        except FileNotFoundError:
            return []
        self.offset += len(data)

        text = self.partial + data.decode("utf-8", errors="replace")
        # a trailing "\r" may be the first half of "\r\n"; wait for the next byte
        held = "\r" if text.endswith("\r") else ""
        if held:
            text = text[:-1]
        lines = text.splitlines()
        if not text or text.endswith(("\n", "\r")):
            self.partial = held
        else:
            self.partial = lines.pop() + held
        return lines


class LogTailer:
    """Multiplex several :class:`FileTail` instances into one async stream."""

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL_S) -> None:
        self.poll_interval = poll_interval
        self.tails: dict[str, FileTail] = {}
        self._pending: deque[tuple[str, str]] = deque()
        self._closed = False

    def add_file(self, path: str, *, from_end: bool = False) -> None:
        """Start tailing ``path``.

        The file itself may be missing, but its parent directory must exist.
        Adding a path twice is a no-op.
        """

        if path in self.tails:
            return
        target = Path(path)
        if not target.parent.is_dir():
            raise FileNotFoundError(f"parent directory does not exist: {target.parent}")
        self.tails[path] = FileTail(target, from_end=from_end)
        logger.debug("tailing %s (from_end=%s)", path, from_end)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def poll(self) -> int:
        """Read every tracked file once and queue new lines. Returns the count queued."""

        queued = 0
        for path, tail in self.tails.items():
            try:
                lines = tail.read_new_lines()
            except OSError as exc:
                raise TailError(f"failed to read {path}: {exc}") from exc
            for line in lines:
                self._pending.append((path, line))
            queued += len(lines)
        return queued

    async def next_line(self) -> tuple[str, str] | None:
        """Wait for the next line. Returns ``None`` once the tailer is closed."""

        while not self._closed:
            if self._pending:
                return self._pending.popleft()
            if not self.poll():
                await asyncio.sleep(self.poll_interval)
        return None


__all__ = ["DEFAULT_POLL_INTERVAL_S", "FileTail", "LogTailer"]
