"""Per-node metrics registry and shared constants."""

from .registry import AppTimelines, MmmStat, NodeMetrics

__all__ = ["AppTimelines", "MmmStat", "NodeMetrics"]
