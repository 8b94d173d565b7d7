import os
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if SRC.exists():
    sys.path.insert(0, str(SRC))

# Register shared Hypothesis profiles for deterministic CI runs and fast local loops.
from tests.util import hypothesis_profiles  # noqa: E402,F401  pylint: disable=unused-import

from nodedash.config import AppConfig  # noqa: E402


@pytest.fixture(name="app_config")
def app_config_fixture(monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    """Small-window config with checkpoints off and no env overrides leaking in."""

    for key in list(os.environ):
        if key.startswith("NODEDASH_"):
            monkeypatch.delenv(key, raising=False)
    cfg = AppConfig()
    cfg.timeline.steps = 10
    cfg.monitor.checkpoint_interval = 0
    return cfg


@pytest.fixture(name="t0")
def t0_fixture() -> datetime:
    return datetime(2024, 1, 1, tzinfo=UTC)
