from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Optional

from .config import PLANNER_TZ, QUARTER_MINUTES


def now_local() -> datetime:
    return datetime.now(PLANNER_TZ)


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are read as planner-local wall clock."""
    if value.tzinfo is None:
        return value.replace(tzinfo=PLANNER_TZ)
    return value


def to_local(value: datetime) -> datetime:
    return ensure_aware(value).astimezone(PLANNER_TZ)


def parse_google_datetime(raw: Any) -> Optional[datetime]:
    if not isinstance(raw, str) or not raw.strip():
        return None
    candidate = raw.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return ensure_aware(parsed)


def span_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def clock_to_minutes(clock: str) -> int:
    hh, mm = clock.split(":")
    return int(hh) * 60 + int(mm)


def minute_of_day(value: datetime) -> int:
    local = to_local(value)
    return local.hour * 60 + local.minute


def end_of_day(value: datetime) -> datetime:
    local = to_local(value)
    return local.replace(hour=23, minute=59, second=59, microsecond=999999)


def is_quarter_aligned(value: datetime) -> bool:
    local = to_local(value)
    return (local.minute % QUARTER_MINUTES == 0 and local.second == 0
            and local.microsecond == 0)


def _hour_floor(local: datetime) -> datetime:
    return local.replace(minute=0, second=0, microsecond=0)


def round_to_quarter(value: datetime) -> datetime:
    """Nearest :00/:15/:30/:45 (halves round up)."""
    local = to_local(value)
    offset = local.minute + local.second / 60 + local.microsecond / 60_000_000
    quarters = math.floor(offset / QUARTER_MINUTES + 0.5)
    return _hour_floor(local) + timedelta(minutes=quarters * QUARTER_MINUTES)


def round_up_to_quarter(value: datetime) -> datetime:
    local = to_local(value)
    if is_quarter_aligned(local):
        return local
    quarters = local.minute // QUARTER_MINUTES + 1
    return _hour_floor(local) + timedelta(minutes=quarters * QUARTER_MINUTES)


def align_start(value: datetime) -> datetime:
    """Nearest quarter hour, or the next one when nearest would precede value."""
    rounded = round_to_quarter(value)
    if rounded < value:
        return round_up_to_quarter(value)
    return rounded


def format_local(value: datetime) -> str:
    return to_local(value).strftime("%Y-%m-%d %H:%M")
