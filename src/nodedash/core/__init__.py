"""Time-bucket aggregation engine."""

from .timelines import TIMESCALES, Bucket, MinMeanMax, StatSlot, Timeline, get_duration_text

__all__ = ["TIMESCALES", "Bucket", "MinMeanMax", "StatSlot", "Timeline", "get_duration_text"]
