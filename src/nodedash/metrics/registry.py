"""Per-node metrics state updated from decoded logfile lines."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from typing import Any

from ..core.timelines import TIMESCALES, Bucket, Timeline, build_timeline, get_duration_text
from ..parsing.decoder import ERROR_CATEGORY, LogLineMetadata
from ..parsing.detectors import (
    ActivityEvent,
    ActivityKind,
    CapacityUpdate,
    Effect,
    NodeIdentity,
    NodeStarted,
    NodeStatus,
    PaymentReceived,
    PeersConnected,
    ResourceSample,
    StatusChange,
    StorageCost,
    run_cascade,
)
from .constants import (
    APP_TIMELINES,
    CONNECTIONS_TIMELINE_KEY,
    EARNINGS_TIMELINE_KEY,
    ERRORS_TIMELINE_KEY,
    GETS_TIMELINE_KEY,
    NODE_INACTIVITY_TIMEOUT_S,
    PUTS_TIMELINE_KEY,
    RAM_TIMELINE_KEY,
    STORAGE_COST_TIMELINE_KEY,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_STEPS = 210


@dataclass
class MmmStat:
    """Running min/mean/max over every sample seen since the last reset."""

    sample_count: int = 0
    most_recent: int = 0
    total: int = 0
    min: int | None = None
    mean: int = 0
    max: int = 0

    def add_sample(self, value: int) -> None:
        self.most_recent = value
        self.sample_count += 1
        self.total += value
        self.mean = self.total // self.sample_count
        if self.min is None or value < self.min:
            self.min = value
        if value > self.max:
            self.max = value

    def to_dict(self) -> dict[str, int | None]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MmmStat:
        return cls(**{f.name: data.get(f.name, getattr(cls(), f.name)) for f in fields(cls)})


@dataclass
class AppTimelines:
    """The fixed set of Timelines tracked for one node, in display order."""

    steps: int = DEFAULT_TIMELINE_STEPS
    timelines: dict[str, Timeline] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timelines:
            return
        for key, name, units_text, is_mmm, is_cumulative, colour in APP_TIMELINES:
            self.timelines[key] = build_timeline(
                name,
                units_text=units_text,
                is_mmm=is_mmm,
                is_cumulative=is_cumulative,
                colour=colour,
                steps=self.steps,
                timescales=TIMESCALES,
            )

    def __len__(self) -> int:
        return len(self.timelines)

    def __iter__(self) -> Iterator[Timeline]:
        return iter(self.timelines.values())

    def keys(self) -> list[str]:
        return list(self.timelines)

    def update_timelines(self, now: datetime) -> None:
        for timeline in self.timelines.values():
            timeline.update_current_time(now)

    def get_timeline_by_key(self, key: str) -> Timeline | None:
        return self.timelines.get(key)

    def get_timeline_by_index(self, index: int) -> Timeline | None:
        keys = self.keys()
        if not 0 <= index < len(keys):
            return None
        return self.timelines[keys[index]]

    def get_timeline_buckets(self, index: int, timescale_name: str) -> Bucket | None:
        timeline = self.get_timeline_by_index(index)
        if timeline is None:
            return None
        return timeline.get_bucket_set(timescale_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": self.steps,
            "timelines": {key: timeline.to_dict() for key, timeline in self.timelines.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppTimelines:
        timelines = {key: Timeline.from_dict(raw) for key, raw in data["timelines"].items()}
        return cls(steps=int(data["steps"]), timelines=timelines)


_STAT_FIELDS = (
    "activity_gets",
    "activity_puts",
    "activity_errors",
    "storage_payments",
    "storage_cost",
    "peers_connected",
    "memory_used_mb",
)

_SCALAR_FIELDS = (
    "running_message",
    "running_version",
    "node_process_id",
    "node_peer_id",
    "node_status_string",
    "node_inactive",
    "used_space",
    "max_capacity",
    "system_cpu",
    "system_memory",
    "system_memory_used_mb",
    "system_memory_usage_percent",
    "interface_name",
    "bytes_received",
    "bytes_transmitted",
    "total_mb_received",
    "total_mb_transmitted",
    "cpu_usage_percent",
    "cpu_usage_percent_max",
    "bytes_read",
    "bytes_written",
    "total_mb_read",
    "total_mb_written",
    "parser_output",
)


@dataclass
class NodeMetrics:
    timeline_steps: int = DEFAULT_TIMELINE_STEPS

    node_started: datetime | None = None
    running_message: str | None = None
    running_version: str | None = None
    node_process_id: int | None = None
    node_peer_id: str | None = None
    category_count: dict[str, int] = field(default_factory=dict)

    app_timelines: AppTimelines | None = None

    entry_metadata: LogLineMetadata | None = None
    node_status: NodeStatus = NodeStatus.STOPPED
    node_status_string: str = ""
    node_inactive: bool = False

    activity_gets: MmmStat = field(default_factory=MmmStat)
    activity_puts: MmmStat = field(default_factory=MmmStat)
    activity_errors: MmmStat = field(default_factory=MmmStat)
    storage_payments: MmmStat = field(default_factory=MmmStat)
    storage_cost: MmmStat = field(default_factory=MmmStat)
    peers_connected: MmmStat = field(default_factory=MmmStat)
    memory_used_mb: MmmStat = field(default_factory=MmmStat)

    used_space: int = 0
    max_capacity: int = 0

    system_cpu: float = 0.0
    system_memory: float = 0.0
    system_memory_used_mb: float = 0.0
    system_memory_usage_percent: float = 0.0

    interface_name: str = "unknown"
    bytes_received: int = 0
    bytes_transmitted: int = 0
    total_mb_received: float = 0.0
    total_mb_transmitted: float = 0.0

    cpu_usage_percent: float = 0.0
    cpu_usage_percent_max: float = 0.0
    bytes_read: int = 0
    bytes_written: int = 0
    total_mb_read: float = 0.0
    total_mb_written: float = 0.0

    parser_output: str = "-"

    def __post_init__(self) -> None:
        if self.app_timelines is None:
            self.app_timelines = AppTimelines(steps=self.timeline_steps)

    @property
    def timelines(self) -> AppTimelines:
        assert self.app_timelines is not None
        return self.app_timelines

    def is_node_active(self) -> bool:
        return not self.node_inactive

    def update_node_status_string(self, now: datetime | None = None) -> str:
        """Refresh the status text, flagging nodes that have gone quiet."""

        status_text = self.node_status.value
        if self.entry_metadata is not None:
            current = now or datetime.now(tz=UTC)
            idle_time = current - self.entry_metadata.system_time
            if idle_time > timedelta(seconds=NODE_INACTIVITY_TIMEOUT_S):
                self.node_inactive = True
                status_text = f"INACTIVE ({get_duration_text(idle_time)})"
            else:
                self.node_inactive = False
        self.node_status_string = status_text
        return status_text

    def reset_metrics(self) -> None:
        self.node_status = NodeStatus.STARTED
        self.activity_gets = MmmStat()
        self.activity_puts = MmmStat()
        self.activity_errors = MmmStat()
        self.storage_cost = MmmStat()
        self.peers_connected = MmmStat()
        self.memory_used_mb = MmmStat()

    def update_timelines(self, now: datetime) -> None:
        self.timelines.update_timelines(now)

    def gather_metrics(self, meta: LogLineMetadata, line: str) -> str:
        """Apply one decoded line and return the parser diagnostic for it."""

        self.entry_metadata = meta
        self.category_count[meta.category] = self.category_count.get(meta.category, 0) + 1
        self.update_timelines(meta.message_time)
        self.parser_output = meta.parser_output

        if meta.category == ERROR_CATEGORY:
            self.count_error(meta.message_time)

        effect = run_cascade(meta, line)
        if effect is not None:
            self.apply_effect(effect)
        logger.debug("gather_metrics %s: %s", meta.message_time.isoformat(), self.parser_output)
        return self.parser_output

    def apply_effect(self, effect: Effect) -> None:
        if isinstance(effect, StatusChange):
            if effect.status is not None:
                self.node_status = effect.status
        elif isinstance(effect, ActivityEvent):
            if effect.time is not None:
                if effect.kind is ActivityKind.GET:
                    self.count_get(effect.time)
                else:
                    self.count_put(effect.time)
            self.node_status = NodeStatus.CONNECTED
        elif isinstance(effect, StorageCost):
            if effect.cost is not None and effect.time is not None:
                self.count_storage_cost(effect.time, effect.cost)
        elif isinstance(effect, PaymentReceived):
            if effect.amount is not None and effect.time is not None:
                self.count_storage_payment(effect.time, effect.amount)
        elif isinstance(effect, PeersConnected):
            if effect.peers is not None and effect.time is not None:
                self.count_peers_connected(effect.time, effect.peers)
        elif isinstance(effect, ResourceSample):
            self._apply_resources(effect)
        elif isinstance(effect, CapacityUpdate):
            if effect.used_space is not None:
                self.used_space = effect.used_space
            if effect.max_capacity is not None:
                self.max_capacity = effect.max_capacity
        elif isinstance(effect, NodeStarted):
            self.node_started = effect.time
            self.running_message = effect.message
            self.running_version = effect.version
            self.reset_metrics()
        elif isinstance(effect, NodeIdentity):
            if effect.process_id is not None:
                self.node_process_id = effect.process_id
            if effect.peer_id is not None:
                self.node_peer_id = effect.peer_id
        if effect.diagnostic:
            self.parser_output = effect.diagnostic

    def _apply_resources(self, effect: ResourceSample) -> None:
        for name, value in effect.values.items():
            if name == "memory_used_mb":
                if effect.time is not None:
                    self.count_memory_used_mb(effect.time, int(value))
            elif name == "cpu_usage_percent":
                self.cpu_usage_percent = float(value)
                self.cpu_usage_percent_max = max(self.cpu_usage_percent_max, float(value))
            else:
                setattr(self, name, value)

    def _apply_timeline_sample(self, key: str, time: datetime, value: int) -> None:
        timeline = self.timelines.get_timeline_by_key(key)
        if timeline is not None:
            timeline.update_value(time, value)

    def count_get(self, time: datetime) -> None:
        self.activity_gets.add_sample(1)
        self._apply_timeline_sample(GETS_TIMELINE_KEY, time, 1)

    def count_put(self, time: datetime) -> None:
        self.activity_puts.add_sample(1)
        self._apply_timeline_sample(PUTS_TIMELINE_KEY, time, 1)

    def count_error(self, time: datetime) -> None:
        self.activity_errors.add_sample(1)
        self._apply_timeline_sample(ERRORS_TIMELINE_KEY, time, 1)

    def count_storage_payment(self, time: datetime, amount: int) -> None:
        self.storage_payments.add_sample(amount)
        self._apply_timeline_sample(EARNINGS_TIMELINE_KEY, time, amount)

    def count_storage_cost(self, time: datetime, cost: int) -> None:
        self.storage_cost.add_sample(cost)
        self._apply_timeline_sample(STORAGE_COST_TIMELINE_KEY, time, cost)

    def count_peers_connected(self, time: datetime, peers: int) -> None:
        self.peers_connected.add_sample(peers)
        self._apply_timeline_sample(CONNECTIONS_TIMELINE_KEY, time, peers)

    def count_memory_used_mb(self, time: datetime, memory_used_mb: int) -> None:
        self.memory_used_mb.add_sample(memory_used_mb)
        self._apply_timeline_sample(RAM_TIMELINE_KEY, time, memory_used_mb)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot every field into JSON-compatible values."""

        payload: dict[str, Any] = {name: getattr(self, name) for name in _SCALAR_FIELDS}
        payload.update({name: getattr(self, name).to_dict() for name in _STAT_FIELDS})
        payload["timeline_steps"] = self.timeline_steps
        payload["node_started"] = None if self.node_started is None else self.node_started.isoformat()
        payload["category_count"] = dict(self.category_count)
        payload["entry_metadata"] = None if self.entry_metadata is None else self.entry_metadata.to_dict()
        payload["node_status"] = self.node_status.value
        payload["app_timelines"] = self.timelines.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeMetrics:
        """Rebuild a registry from :meth:`to_dict` output.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` on malformed input
        and ``InvariantError`` when a timeline bucket is inconsistent.
        """

        kwargs: dict[str, Any] = {name: data[name] for name in _SCALAR_FIELDS if name in data}
        kwargs.update({name: MmmStat.from_dict(data[name]) for name in _STAT_FIELDS if name in data})
        raw_started = data.get("node_started")
        raw_meta = data.get("entry_metadata")
        return cls(
            timeline_steps=int(data.get("timeline_steps", DEFAULT_TIMELINE_STEPS)),
            node_started=None if raw_started is None else datetime.fromisoformat(raw_started),
            category_count={str(k): int(v) for k, v in data.get("category_count", {}).items()},
            app_timelines=AppTimelines.from_dict(data["app_timelines"]),
            entry_metadata=None if raw_meta is None else LogLineMetadata.from_dict(raw_meta),
            node_status=NodeStatus(data.get("node_status", NodeStatus.STOPPED.value)),
            **kwargs,
        )


__all__ = ["AppTimelines", "DEFAULT_TIMELINE_STEPS", "MmmStat", "NodeMetrics"]
