"""Line decoding and metric detection for node logfiles."""

from .decoder import ERROR_CATEGORY, LogLineMetadata, decode_metadata, parse_timestamp
from .detectors import DETECTORS, Effect, NodeStatus, run_cascade

__all__ = [
    "DETECTORS",
    "ERROR_CATEGORY",
    "Effect",
    "LogLineMetadata",
    "NodeStatus",
    "decode_metadata",
    "parse_timestamp",
    "run_cascade",
]
