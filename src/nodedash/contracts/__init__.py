"""Contract helpers for the nodedash CLI."""

from .error import (
    BadInputError,
    CheckpointError,
    EnvelopeError,
    ErrorEnvelope,
    Exit,
    InvariantError,
    IOErrorEnvelope,
    TailError,
    die,
    guard_cli,
)

__all__ = [
    "Exit",
    "ErrorEnvelope",
    "EnvelopeError",
    "BadInputError",
    "InvariantError",
    "IOErrorEnvelope",
    "CheckpointError",
    "TailError",
    "guard_cli",
    "die",
]
