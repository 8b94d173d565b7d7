"""Decode the metadata prefix of a node logfile line.

Example input lines::

    INFO 2024-01-01T00:00:00.000000000Z [sn_node/src/put.rs:L211]: Wrote record
    ERROR 2022-01-15T20:21:07.643598Z [sn/src/node/routing/api/dispatcher.rs:L450]:
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime

LOG_LINE_PATTERN = re.compile(
    r"^\s*(?P<category>[A-Z]{4,6})\s+"
    r"(?P<time_string>\S+)\s+"
    r"\[(?P<source>[^\]]*)\]:?"
    r"(?P<message>.*)$"
)

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|z|[+-]\d{2}:\d{2})$"
)

ERROR_CATEGORY = "ERROR"


@dataclass(frozen=True, slots=True)
class LogLineMetadata:
    """Metadata decoded from the start of one logfile line."""

    category: str
    message_time: datetime
    system_time: datetime
    source: str
    message: str
    parser_output: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category,
            "message_time": self.message_time.isoformat(),
            "system_time": self.system_time.isoformat(),
            "source": self.source,
            "message": self.message,
            "parser_output": self.parser_output,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> LogLineMetadata:
        return cls(
            category=data["category"],
            message_time=datetime.fromisoformat(data["message_time"]),
            system_time=datetime.fromisoformat(data["system_time"]),
            source=data["source"],
            message=data["message"],
            parser_output=data.get("parser_output", ""),
        )


def parse_timestamp(text: str) -> datetime | None:
    """Parse an RFC3339 timestamp into an aware UTC datetime.

    Fractional seconds beyond microsecond precision are truncated.
    """

    match = _RFC3339.match(text)
    if match is None:
        return None
    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset in {"Z", "z"}:
        offset = "+00:00"
    try:
        parsed = datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
    except ValueError:
        return None
    return parsed.astimezone(UTC)


def decode_metadata(line: str) -> LogLineMetadata | None:
    """Return the metadata of ``line`` or ``None`` when it carries none."""

    if not line:
        return None
    captures = LOG_LINE_PATTERN.match(line)
    if captures is None:
        return None

    category = captures.group("category")
    time_string = captures.group("time_string")
    source = captures.group("source")
    message = captures.group("message")

    message_time = parse_timestamp(time_string)
    if message_time is None:
        return None

    return LogLineMetadata(
        category=category,
        message_time=message_time,
        system_time=datetime.now(tz=UTC),
        source=source,
        message=message,
        parser_output=f"c: {category}, t: {message_time.isoformat()}, s: {source}, m: {message}",
    )


__all__ = [
    "ERROR_CATEGORY",
    "LOG_LINE_PATTERN",
    "LogLineMetadata",
    "decode_metadata",
    "parse_timestamp",
]
