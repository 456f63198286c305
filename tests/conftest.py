from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from nomadops.core.blocking import WatchSettings  # noqa: E402


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def settings(sleeps) -> WatchSettings:
    """Watch settings that never actually sleep."""
    return WatchSettings(
        eval_wait=1.0,
        deployment_wait=1.0,
        job_wait=1.0,
        diagnostics_workers=4,
        sleep=sleeps.append,
        clock=lambda: 0.0,
    )
