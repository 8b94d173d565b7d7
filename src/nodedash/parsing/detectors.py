"""Ordered cascade of textual detectors for node logfile lines.

Each detector is a pure function ``(metadata, line) -> Effect | None``. The
cascade stops at the first detector that returns an effect, so the order of
``DETECTORS`` decides which metric a line is attributed to when its text
matches more than one pattern.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .decoder import LogLineMetadata

_INT_DELIMITERS = (" ", ",", "}", ")")
_WORD_DELIMITERS = (" ", ",", "}")


class NodeStatus(StrEnum):
    STARTED = "Started"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    STOPPED = "Stopped"


class ActivityKind(StrEnum):
    GET = "get"
    PUT = "put"


@dataclass(slots=True)
class Effect:
    """Base class for detector outcomes. ``diagnostic`` feeds the debug view."""

    diagnostic: str = ""


@dataclass(slots=True)
class StatusChange(Effect):
    status: NodeStatus | None = None


@dataclass(slots=True)
class ActivityEvent(Effect):
    kind: ActivityKind = ActivityKind.GET
    time: datetime | None = None


@dataclass(slots=True)
class StorageCost(Effect):
    time: datetime | None = None
    cost: int | None = None


@dataclass(slots=True)
class PaymentReceived(Effect):
    time: datetime | None = None
    amount: int | None = None


@dataclass(slots=True)
class PeersConnected(Effect):
    time: datetime | None = None
    peers: int | None = None


@dataclass(slots=True)
class ResourceSample(Effect):
    """Values parsed from a structured ``sn_logging::metrics`` block.

    Only the fields present in the block are set.
    """

    time: datetime | None = None
    values: dict[str, float | int | str] = field(default_factory=dict)


@dataclass(slots=True)
class CapacityUpdate(Effect):
    used_space: int | None = None
    max_capacity: int | None = None


@dataclass(slots=True)
class NodeStarted(Effect):
    time: datetime | None = None
    message: str = ""
    version: str = ""


@dataclass(slots=True)
class NodeIdentity(Effect):
    process_id: int | None = None
    peer_id: str | None = None


Detector = Callable[[LogLineMetadata, str], Effect | None]


class _Diagnostics:
    """Collects sub-parse failures for a single line."""

    def __init__(self) -> None:
        self.failures: list[str] = []

    def note(self, text: str) -> None:
        self.failures.append(text)

    def render(self, summary: str) -> str:
        if not self.failures:
            return summary
        return "; ".join([summary, *self.failures])


def _first_token(text: str, delimiters: tuple[str, ...]) -> str:
    end = len(text)
    for delimiter in delimiters:
        position = text.find(delimiter)
        if position != -1 and position < end:
            end = position
    return text[:end]


def _after(prefix: str, content: str) -> str | None:
    position = content.find(prefix)
    if position == -1:
        return None
    return content[position + len(prefix) :]


def parse_int(prefix: str, content: str, diag: _Diagnostics | None = None) -> int | None:
    """Parse the unsigned integer following ``prefix`` in ``content``."""

    rest = _after(prefix, content)
    if rest is None:
        return None
    word = _first_token(rest.strip(), _INT_DELIMITERS)
    if word.isascii() and word.isdigit():
        return int(word)
    if diag is not None:
        diag.note(f"failed to parse '{word}' as integer from: '{rest}'")
    return None


def parse_float(prefix: str, content: str, diag: _Diagnostics | None = None) -> float | None:
    rest = _after(prefix, content)
    if rest is None:
        return None
    word = _first_token(rest.strip(), _WORD_DELIMITERS)
    try:
        return float(word)
    except ValueError:
        if diag is not None:
            diag.note(f"failed to parse '{word}' as float from: '{rest}'")
        return None


def parse_word(prefix: str, content: str, diag: _Diagnostics | None = None) -> str | None:
    rest = _after(prefix, content)
    if rest is None:
        return None
    word = _first_token(rest.lstrip(), _WORD_DELIMITERS)
    if word:
        return word
    if diag is not None:
        diag.note(f"failed to parse word after '{prefix}'")
    return None


def parse_string(prefix: str, content: str, diag: _Diagnostics | None = None) -> str | None:
    """Return the text after ``prefix`` up to the next double quote."""

    rest = _after(prefix, content)
    if rest is None:
        return None
    end = rest.find('"')
    text = rest if end == -1 else rest[:end]
    if text:
        return text
    if diag is not None:
        diag.note(f"failed to parse string after '{prefix}'")
    return None


def detect_status(meta: LogLineMetadata, line: str) -> Effect | None:
    if "Getting closest peers" in line:
        return StatusChange(status=NodeStatus.CONNECTING, diagnostic="Node status: Connecting")
    if "Connected to the Network" in line:
        return StatusChange(status=NodeStatus.CONNECTED, diagnostic="Node status: Connected")
    if "Node events channel closed" in line:
        return StatusChange(status=NodeStatus.STOPPED, diagnostic="Node status: Disconnected")
    if "Skipping " in line:
        diag = _Diagnostics()
        skipped = parse_int("Skipping ", line, diag)
        summary = "Connected (lag)" if skipped is None else f"Connected (lag {skipped})"
        return StatusChange(status=None, diagnostic=diag.render(summary))
    return None


def detect_activity(meta: LogLineMetadata, line: str) -> Effect | None:
    if "Retrieved record from disk" in line:
        return ActivityEvent(kind=ActivityKind.GET, time=meta.message_time, diagnostic="GET")
    if (
        "Wrote record" in line
        or "ValidSpendRecordPutFromNetwork" in line
        or "Editing Register success" in line
    ):
        return ActivityEvent(kind=ActivityKind.PUT, time=meta.message_time, diagnostic="PUT")
    return None


def detect_storage_cost(meta: LogLineMetadata, line: str) -> Effect | None:
    if "Cost is now" not in line:
        return None
    diag = _Diagnostics()
    cost = parse_int("Cost is now ", line, diag)
    summary = f"Storage cost: {cost}" if cost is not None else "Storage cost: ?"
    return StorageCost(time=meta.message_time, cost=cost, diagnostic=diag.render(summary))


def detect_payment(meta: LogLineMetadata, line: str) -> Effect | None:
    if "nanos accepted for record" not in line:
        return None
    diag = _Diagnostics()
    amount = parse_int("payment of NanoTokens(", line, diag)
    summary = f"Payment received: {amount}" if amount is not None else "Payment received: ?"
    return PaymentReceived(time=meta.message_time, amount=amount, diagnostic=diag.render(summary))


def detect_connections(meta: LogLineMetadata, line: str) -> Effect | None:
    if "PeersInRoutingTable" not in line:
        return None
    diag = _Diagnostics()
    peers = parse_int("PeersInRoutingTable(", line, diag)
    summary = "connected peers:" if peers is None else f"connected peers: {peers}"
    return PeersConnected(time=meta.message_time, peers=peers, diagnostic=diag.render(summary))


# (registry field, json key, parser)
RESOURCE_FIELDS: tuple[tuple[str, str, Callable[..., float | int | str | None]], ...] = (
    ("system_cpu", 'system_cpu_usage_percent":', parse_float),
    ("system_memory", 'system_total_memory_mb":', parse_float),
    ("system_memory_used_mb", 'system_memory_used_mb":', parse_float),
    ("system_memory_usage_percent", 'system_memory_usage_percent":', parse_float),
    ("interface_name", 'interface_name":', parse_word),
    ("bytes_received", 'bytes_received":', parse_int),
    ("bytes_transmitted", 'bytes_transmitted":', parse_int),
    ("total_mb_received", 'total_mb_received":', parse_float),
    ("total_mb_transmitted", 'total_mb_transmitted":', parse_float),
    ("cpu_usage_percent", '"cpu_usage_percent":', parse_float),
    ("memory_used_mb", '"memory_used_mb":', parse_float),
    ("bytes_read", 'bytes_read":', parse_int),
    ("bytes_written", 'bytes_written":', parse_int),
    ("total_mb_read", 'total_mb_read":', parse_float),
    ("total_mb_written", 'total_mb_written":', parse_float),
)


def detect_resource_metrics(meta: LogLineMetadata, line: str) -> Effect | None:
    if "sn_logging::metrics" not in line:
        return None
    diag = _Diagnostics()
    values: dict[str, float | int | str] = {}
    for name, key, parser in RESOURCE_FIELDS:
        parsed = parser(key, line, diag)
        if parsed is not None:
            values[name] = parsed
    summary = "metrics: " + ", ".join(f"{name}={value}" for name, value in values.items())
    return ResourceSample(time=meta.message_time, values=values, diagnostic=diag.render(summary))


def detect_capacity(meta: LogLineMetadata, line: str) -> Effect | None:
    if "Used space:" in line:
        diag = _Diagnostics()
        used = parse_int("Used space:", line, diag)
        return CapacityUpdate(used_space=used, diagnostic=diag.render(f"Used space: {used}"))
    if "Max capacity:" in line:
        diag = _Diagnostics()
        capacity = parse_int("Max capacity:", line, diag)
        return CapacityUpdate(
            max_capacity=capacity, diagnostic=diag.render(f"Max capacity: {capacity}")
        )
    return None


RUNNING_PREFIX = "Running safenode "
PROCESS_ID_PREFIX = "Node (PID: "


def detect_start(meta: LogLineMetadata, line: str) -> Effect | None:
    message = meta.message.strip()
    if message.startswith(RUNNING_PREFIX) or line.startswith(RUNNING_PREFIX):
        text = message if message.startswith(RUNNING_PREFIX) else line
        version = text[len(RUNNING_PREFIX) :].strip()
        return NodeStarted(
            time=meta.message_time,
            message=text,
            version=version,
            diagnostic=f"START node {version} at {meta.message_time.isoformat()}",
        )
    if PROCESS_ID_PREFIX in line:
        diag = _Diagnostics()
        process_id = parse_int(PROCESS_ID_PREFIX, line, diag)
        peer_id = parse_string("PeerId: ", line, diag)
        pid_text = "unknown" if process_id is None else str(process_id)
        return NodeIdentity(
            process_id=process_id,
            peer_id=peer_id,
            diagnostic=diag.render(f"Node pid: {pid_text} peer_id: {peer_id}"),
        )
    return None


DETECTORS: tuple[Detector, ...] = (
    detect_status,
    detect_activity,
    detect_storage_cost,
    detect_payment,
    detect_connections,
    detect_resource_metrics,
    detect_capacity,
    detect_start,
)


def run_cascade(
    meta: LogLineMetadata,
    line: str,
    detectors: tuple[Detector, ...] = DETECTORS,
) -> Effect | None:
    """Return the effect of the first detector that claims ``line``."""

    for detector in detectors:
        effect = detector(meta, line)
        if effect is not None:
            return effect
    return None


__all__ = [
    "DETECTORS",
    "ActivityEvent",
    "ActivityKind",
    "CapacityUpdate",
    "Detector",
    "Effect",
    "NodeIdentity",
    "NodeStarted",
    "NodeStatus",
    "PaymentReceived",
    "PeersConnected",
    "ResourceSample",
    "StatusChange",
    "StorageCost",
    "detect_activity",
    "detect_capacity",
    "detect_connections",
    "detect_payment",
    "detect_resource_metrics",
    "detect_start",
    "detect_status",
    "detect_storage_cost",
    "parse_float",
    "parse_int",
    "parse_string",
    "parse_word",
    "run_cascade",
]
