from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from test.fixtures.reference_models import ManualClock  # noqa: E402


@pytest.fixture
def clock() -> ManualClock:
    """Deterministic clock starting at an arbitrary non-zero reading."""
    return ManualClock(start=100.0)
