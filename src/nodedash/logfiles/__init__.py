"""Logfile discovery, tailing and per-file monitor state."""

from .manager import LogfilesManager, default_glob_expander
from .monitor import LogMonitor
from .tailer import FileTail, LogTailer

__all__ = ["FileTail", "LogMonitor", "LogTailer", "LogfilesManager", "default_glob_expander"]
