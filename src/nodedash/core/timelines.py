"""Multi-granularity sliding time buckets.

A :class:`Bucket` holds a fixed number of fixed-width slots for one
granularity. The newest slot is always last; advancing time pushes empty
slots and evicts the oldest once ``max_buckets`` is exceeded. Long gaps are
skipped in one step, so the cost of advancing is bounded by ``max_buckets``. A
:class:`Timeline` owns one Bucket per granularity and advances them together.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..contracts.error import InvariantError


class MinMeanMax(StrEnum):
    MIN = "min"
    MEAN = "mean"
    MAX = "max"

    def next(self) -> MinMeanMax:
        order = list(MinMeanMax)
        return order[(order.index(self) + 1) % len(order)]


TIMESCALES: tuple[tuple[str, timedelta], ...] = (
    ("1 second columns", timedelta(seconds=1)),
    ("1 minute columns", timedelta(minutes=1)),
    ("1 hour columns", timedelta(hours=1)),
    ("1 day columns", timedelta(days=1)),
    ("1 week columns", timedelta(days=7)),
    ("1 year columns", timedelta(days=365)),
)


@dataclass(slots=True)
class StatSlot:
    """Running aggregate for one statistical slot.

    ``count == 0`` marks a slot that has not received a sample since it was
    pushed; ``min is None`` means no minimum has been recorded yet.
    """

    count: int = 0
    total: int = 0
    min: int | None = None
    mean: int = 0
    max: int = 0

    def add(self, value: int) -> None:
        if self.count == 0:
            self.min = value
            self.max = value
        self.count += 1
        self.total += value
        self.mean = self.total // self.count
        if self.min is None or value < self.min:
            self.min = value
        if value > self.max:
            self.max = value

    def project(self, mode: MinMeanMax) -> int:
        if mode is MinMeanMax.MIN:
            return self.min if self.min is not None else 0
        if mode is MinMeanMax.MAX:
            return self.max
        return self.mean

    def to_dict(self) -> dict[str, int | None]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "mean": self.mean,
            "max": self.max,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatSlot:
        return cls(
            count=int(data["count"]),
            total=int(data["total"]),
            min=None if data.get("min") is None else int(data["min"]),
            mean=int(data["mean"]),
            max=int(data["max"]),
        )


@dataclass(slots=True)
class Bucket:
    """One granularity's sliding window of slots."""

    name: str
    bucket_duration: timedelta
    max_buckets: int
    is_mmm: bool = False
    is_cumulative: bool = False
    bucket_time: datetime | None = None
    ring: list[Any] = field(default_factory=list)
    running_total: int = 0

    def __post_init__(self) -> None:
        if self.max_buckets <= 0:
            raise ValueError("max_buckets must be positive")
        if self.bucket_duration <= timedelta(0):
            raise ValueError("bucket_duration must be positive")
        if not self.ring:
            self.ring.append(self._empty_slot())

    def _empty_slot(self) -> Any:
        return StatSlot() if self.is_mmm else 0

    @property
    def total_duration(self) -> timedelta:
        return self.bucket_duration * self.max_buckets

    def duration_covered(self) -> timedelta:
        return self.bucket_duration * len(self.ring)

    def update_current_time(self, now: datetime) -> None:
        """Roll the window forward so that ``now`` falls in the newest slot."""

        if self.bucket_time is None:
            self.bucket_time = now
            return
        steps = self.steps_until(now)
        if steps == 0:
            return
        self.bucket_time += self.bucket_duration * steps
        # a gap of max_buckets or more slots leaves only empty slots
        self.ring.extend(self._empty_slot() for _ in range(min(steps, self.max_buckets)))
        overflow = len(self.ring) - self.max_buckets
        if overflow > 0:
            evicted = self.ring[:overflow]
            del self.ring[:overflow]
            if self.is_cumulative:
                self.running_total -= sum(evicted)

    def steps_until(self, now: datetime) -> int:
        """Number of slots to push so that ``now`` falls in the newest slot.

        The newest slot covers ``[bucket_time, bucket_time + bucket_duration]``
        with both ends included.
        """

        if self.bucket_time is None:
            return 0
        gap = now - self.bucket_time
        if gap <= self.bucket_duration:
            return 0
        return -(-gap // self.bucket_duration) - 1

    def slot_index(self, sample_time: datetime) -> int | None:
        """Return the ring index for ``sample_time`` or ``None`` to drop it."""

        if self.bucket_time is None:
            self.bucket_time = sample_time
        behind = 0
        if sample_time < self.bucket_time:
            behind = (self.bucket_time - sample_time) // self.bucket_duration
        if behind >= len(self.ring):
            return None
        return len(self.ring) - 1 - behind

    def increment(self, sample_time: datetime, value: int = 1) -> bool:
        index = self.slot_index(sample_time)
        if index is None:
            return False
        self.ring[index] += value
        if self.is_cumulative:
            self.running_total += value
        return True

    def set_value(self, sample_time: datetime, value: int) -> bool:
        index = self.slot_index(sample_time)
        if index is None:
            return False
        self.ring[index] = value
        return True

    def add_sample(self, sample_time: datetime, value: int) -> bool:
        index = self.slot_index(sample_time)
        if index is None:
            return False
        self.ring[index].add(value)
        return True

    def update_value(self, sample_time: datetime, value: int) -> bool:
        if self.is_mmm:
            return self.add_sample(sample_time, value)
        if self.is_cumulative:
            return self.increment(sample_time, value)
        return self.set_value(sample_time, value)

    def values(self, mode: MinMeanMax = MinMeanMax.MEAN) -> list[int]:
        if self.is_mmm:
            return [slot.project(mode) for slot in self.ring]
        return list(self.ring)

    def check_invariants(self) -> None:
        """Raise :class:`InvariantError` when the ring cannot have come from this bucket."""

        if len(self.ring) > self.max_buckets:
            raise InvariantError(
                f"bucket {self.name!r} holds {len(self.ring)} slots, limit is {self.max_buckets}"
            )
        if self.is_cumulative and not self.is_mmm and self.running_total != sum(self.ring):
            raise InvariantError(
                f"bucket {self.name!r} total {self.running_total} does not match its slots"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "bucket_duration_s": self.bucket_duration.total_seconds(),
            "max_buckets": self.max_buckets,
            "is_mmm": self.is_mmm,
            "is_cumulative": self.is_cumulative,
            "bucket_time": None if self.bucket_time is None else self.bucket_time.isoformat(),
            "ring": [slot.to_dict() for slot in self.ring] if self.is_mmm else list(self.ring),
            "running_total": self.running_total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bucket:
        is_mmm = bool(data["is_mmm"])
        raw_ring = data.get("ring") or []
        ring = [StatSlot.from_dict(item) for item in raw_ring] if is_mmm else [int(v) for v in raw_ring]
        raw_time = data.get("bucket_time")
        bucket = cls(
            name=str(data["name"]),
            bucket_duration=timedelta(seconds=float(data["bucket_duration_s"])),
            max_buckets=int(data["max_buckets"]),
            is_mmm=is_mmm,
            is_cumulative=bool(data["is_cumulative"]),
            bucket_time=None if raw_time is None else datetime.fromisoformat(raw_time),
            ring=ring,
            running_total=int(data.get("running_total", 0)),
        )
        bucket.check_invariants()
        return bucket


@dataclass(slots=True)
class Timeline:
    """One metric's history across every configured granularity."""

    name: str
    units_text: str = ""
    is_mmm: bool = False
    is_cumulative: bool = False
    colour: str = "white"
    buckets: dict[str, Bucket] = field(default_factory=dict)

    def add_bucket_set(self, name: str, duration: timedelta, max_buckets: int) -> Bucket:
        bucket = Bucket(
            name=name,
            bucket_duration=duration,
            max_buckets=max_buckets,
            is_mmm=self.is_mmm,
            is_cumulative=self.is_cumulative,
        )
        self.buckets[name] = bucket
        return bucket

    def get_bucket_set(self, name: str) -> Bucket | None:
        return self.buckets.get(name)

    def update_current_time(self, now: datetime) -> None:
        for bucket in self.buckets.values():
            bucket.update_current_time(now)

    def increment_value(self, sample_time: datetime, value: int = 1) -> None:
        for bucket in self.buckets.values():
            bucket.increment(sample_time, value)

    def update_value(self, sample_time: datetime, value: int) -> None:
        for bucket in self.buckets.values():
            bucket.update_value(sample_time, value)

    def __iter__(self) -> Iterator[Bucket]:
        return iter(self.buckets.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "units_text": self.units_text,
            "is_mmm": self.is_mmm,
            "is_cumulative": self.is_cumulative,
            "colour": self.colour,
            "buckets": [bucket.to_dict() for bucket in self.buckets.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Timeline:
        timeline = cls(
            name=str(data["name"]),
            units_text=str(data.get("units_text", "")),
            is_mmm=bool(data["is_mmm"]),
            is_cumulative=bool(data["is_cumulative"]),
            colour=str(data.get("colour", "white")),
        )
        for raw in data.get("buckets", []):
            bucket = Bucket.from_dict(raw)
            timeline.buckets[bucket.name] = bucket
        return timeline


def build_timeline(
    name: str,
    *,
    units_text: str = "",
    is_mmm: bool = False,
    is_cumulative: bool = False,
    colour: str = "white",
    steps: int,
    timescales: Iterable[tuple[str, timedelta]] = TIMESCALES,
) -> Timeline:
    timeline = Timeline(
        name=name,
        units_text=units_text,
        is_mmm=is_mmm,
        is_cumulative=is_cumulative,
        colour=colour,
    )
    for scale_name, duration in timescales:
        timeline.add_bucket_set(scale_name, duration, steps)
    return timeline


def get_duration_text(duration: timedelta) -> str:
    """Render ``duration`` as ``"1d 2h 3m 4s"``, omitting leading zero units."""

    total = int(duration.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rest = divmod(total, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, seconds = divmod(rest, 60)
    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return sign + " ".join(parts)


__all__ = [
    "TIMESCALES",
    "Bucket",
    "MinMeanMax",
    "StatSlot",
    "Timeline",
    "build_timeline",
    "get_duration_text",
]
