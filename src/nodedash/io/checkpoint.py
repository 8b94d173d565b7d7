"""Checkpoint sidecar persistence for monitored logfiles."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import suppress
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..contracts.error import CheckpointError, InvariantError
from ..metrics.constants import CHECKPOINT_EXTENSION, CHECKPOINT_SCHEMA, CHECKPOINT_TMP_SUFFIX
from ..metrics.registry import NodeMetrics

if TYPE_CHECKING:
    from ..logfiles.monitor import LogMonitor

logger = logging.getLogger(__name__)


class CheckpointRecord(BaseModel):
    """On-disk shape of a checkpoint sidecar."""

    model_config = ConfigDict(populate_by_name=True)

    schema_id: str = Field(default=CHECKPOINT_SCHEMA, alias="schema")
    latest_entry_time: datetime | None = Field(
        default=None, description="Embedded time of the last line folded into the metrics."
    )
    monitor_index: int = Field(..., ge=0, description="Ordinal index of the monitor.")
    monitor_metrics: dict[str, Any] = Field(..., description="NodeMetrics.to_dict() snapshot.")

    @field_validator("schema_id")
    @classmethod
    def _check_schema(cls, value: str) -> str:
        if value != CHECKPOINT_SCHEMA:
            raise ValueError(f"unsupported checkpoint schema {value!r}")
        return value


def checkpoint_path(logfile: str | Path) -> Path:
    """Return the sidecar path for ``logfile`` (same stem, checkpoint extension)."""

    return Path(logfile).with_suffix(CHECKPOINT_EXTENSION)


def _atomic_write_text(target: Path, text: str) -> None:
    tmp = tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        delete=False,
        dir=target.parent,
        prefix=f".{target.stem}.",
        suffix=CHECKPOINT_TMP_SUFFIX,
    )
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, target)
    except Exception:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


def save_checkpoint(monitor: LogMonitor) -> Path:
    """Write ``monitor``'s metrics to its sidecar and record the checkpoint time."""

    target = checkpoint_path(monitor.logfile)
    meta = monitor.metrics.entry_metadata
    latest = meta.message_time if meta is not None else None
    record = CheckpointRecord(
        latest_entry_time=latest,
        monitor_index=monitor.index,
        monitor_metrics=monitor.metrics.to_dict(),
    )
    try:
        _atomic_write_text(target, record.model_dump_json(by_alias=True))
    except OSError as exc:
        raise CheckpointError(
            f"Failed to write checkpoint {target}: {exc}",
            hint="Check that the logfile directory is writable.",
        ) from exc
    monitor.latest_checkpoint_time = latest
    logger.debug("checkpoint saved: %s (index=%d)", target, monitor.index)
    return target


def load_checkpoint(path: str | Path) -> CheckpointRecord:
    """Read and validate a sidecar. Raises on any I/O or decode error."""

    raw = Path(path).read_text(encoding="utf-8")
    return CheckpointRecord.model_validate(json.loads(raw))


def restore_checkpoint(monitor: LogMonitor) -> bool:
    """Restore ``monitor`` from its sidecar.

    Returns ``False`` when there is nothing usable to restore; the caller then
    replays the logfile in full.
    """

    target = checkpoint_path(monitor.logfile)
    try:
        record = load_checkpoint(target)
        metrics = NodeMetrics.from_dict(record.monitor_metrics)
    except FileNotFoundError:
        logger.debug("no checkpoint for %s", monitor.logfile)
        return False
    except (OSError, ValueError, ValidationError, KeyError, TypeError, InvariantError) as exc:
        logger.debug("discarding checkpoint %s: %s", target, exc)
        return False

    monitor.metrics = metrics
    monitor.index = record.monitor_index
    monitor.latest_checkpoint_time = record.latest_entry_time
    monitor.resume_after = record.latest_entry_time
    logger.info("restored checkpoint for %s (index=%d)", monitor.logfile, monitor.index)
    return True


__all__ = [
    "CheckpointRecord",
    "checkpoint_path",
    "load_checkpoint",
    "restore_checkpoint",
    "save_checkpoint",
]
