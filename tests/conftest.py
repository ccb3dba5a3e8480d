"""
Shared fixtures for the planner tests.

Every test runs against a fixed "now" in early March 2026 (no DST change in
the following weeks) so windows and rankings are deterministic.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from planner.config import PLANNER_TZ  # noqa: E402
from planner.gcal import InMemoryCalendarGateway  # noqa: E402
from planner.models import BusyInterval, FreeInterval, TaskSpec  # noqa: E402


def at(day: int, hour: int = 0, minute: int = 0, month: int = 3) -> datetime:
    """Planner-local datetime in 2026."""
    return datetime(2026, month, day, hour, minute, tzinfo=PLANNER_TZ)


def busy(start: datetime, end: datetime, **kwargs) -> BusyInterval:
    return BusyInterval(start=start, end=end, **kwargs)


def free(start: datetime, end: datetime) -> FreeInterval:
    return FreeInterval(start=start, end=end)


@pytest.fixture
def early_morning():
    """Monday 2 March 2026, 07:00."""
    return at(2, 7, 0)


@pytest.fixture
def make_task():
    def _make(total=60, **kwargs) -> TaskSpec:
        data = {"id": "t1", "title": "Write report", "total_duration_minutes": total}
        data.update(kwargs)
        return TaskSpec(**data)

    return _make


@pytest.fixture
def gateway():
    return InMemoryCalendarGateway()
