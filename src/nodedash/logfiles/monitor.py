"""Live state for one monitored logfile."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path

from ..io.checkpoint import save_checkpoint
from ..metrics.registry import DEFAULT_TIMELINE_STEPS, NodeMetrics
from ..parsing.decoder import decode_metadata

logger = logging.getLogger(__name__)


class LogMonitor:
    """Recent lines plus the metrics registry for a single logfile.

    ``resume_after`` holds the restored checkpoint time while lines already
    folded into the checkpoint are being skipped; it is cleared by the first
    line with a later embedded time.
    """

    def __init__(
        self,
        logfile: str,
        index: int,
        *,
        lines_max: int = 100,
        timeline_steps: int = DEFAULT_TIMELINE_STEPS,
        checkpoint_interval: int = 0,
        insertion_seq: int = 0,
    ) -> None:
        self.logfile = logfile
        self.index = index
        self.content: deque[str] = deque(maxlen=lines_max)
        self.metrics = NodeMetrics(timeline_steps=timeline_steps)
        self.checkpoint_interval = checkpoint_interval
        self.latest_checkpoint_time: datetime | None = None
        self.resume_after: datetime | None = None
        self.has_focus = False
        self.insertion_seq = insertion_seq

    def __repr__(self) -> str:
        return f"LogMonitor(index={self.index}, logfile={self.logfile!r})"

    @property
    def name(self) -> str:
        return Path(self.logfile).name

    @property
    def start_time(self) -> datetime | None:
        return self.metrics.node_started

    def seniority(self) -> tuple[bool, float, int]:
        """Sort key giving earlier-started monitors the lower index."""

        start = self.start_time
        return (start is None, start.timestamp() if start is not None else 0.0, self.insertion_seq)

    def append_line(self, line: str) -> bool:
        """Fold one raw line into this monitor.

        Returns ``False`` when the line was skipped because it predates the
        restored checkpoint. May raise ``CheckpointError`` after the line has
        been applied.
        """

        meta = decode_metadata(line)
        if self.resume_after is not None:
            if meta is None or meta.message_time <= self.resume_after:
                return False
            logger.debug("%s: caught up with checkpoint at %s", self.name, self.resume_after)
            self.resume_after = None

        self.content.append(line)
        if meta is None:
            return True
        self.metrics.gather_metrics(meta, line)
        self.update_checkpoint(meta.message_time)
        return True

    def update_checkpoint(self, message_time: datetime) -> Path | None:
        """Save a checkpoint when enough embedded log time has passed.

        A log clock that moves backwards never triggers a save.
        """

        if self.checkpoint_interval <= 0:
            return None
        if self.latest_checkpoint_time is not None:
            elapsed = message_time - self.latest_checkpoint_time
            if elapsed < timedelta(seconds=self.checkpoint_interval):
                return None
        return save_checkpoint(self)


__all__ = ["LogMonitor"]
