"""I/O helpers for nodedash checkpoints."""

from .checkpoint import (
    CheckpointRecord,
    checkpoint_path,
    load_checkpoint,
    restore_checkpoint,
    save_checkpoint,
)

__all__ = [
    "CheckpointRecord",
    "checkpoint_path",
    "load_checkpoint",
    "restore_checkpoint",
    "save_checkpoint",
]
