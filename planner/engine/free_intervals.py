from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Optional

from ..config import SCAN_STEP_MINUTES
from ..models import BusyInterval, FreeInterval, TimeWindow, WorkingHoursPolicy
from ..utils import minute_of_day, span_minutes

logger = logging.getLogger(__name__)


def _within_policy(policy: Optional[WorkingHoursPolicy], step_start, step_end) -> bool:
    if policy is None or not policy.bands:
        return True
    start_minute = minute_of_day(step_start)
    return policy.allows(start_minute, start_minute + span_minutes(step_start, step_end))


def free_intervals(window: TimeWindow,
                   busy: Iterable[BusyInterval],
                   policy: Optional[WorkingHoursPolicy] = None,
                   step_minutes: int = SCAN_STEP_MINUTES) -> List[FreeInterval]:
    """
    Walk the window in fixed steps and coalesce the free ones.

    A step is free when it overlaps no busy interval (half-open) and, if a
    working-hours policy is given, lies inside one of its enabled bands.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    busy_spans = sorted(((b.start, b.end) for b in busy if b.end > b.start),
                        key=lambda span: span[0])
    step = timedelta(minutes=step_minutes)

    result: List[FreeInterval] = []
    open_start = None
    open_end = None
    cursor = window.start
    while cursor < window.end:
        step_end = min(cursor + step, window.end)
        is_busy = any(b_start < step_end and cursor < b_end
                      for b_start, b_end in busy_spans)
        if not is_busy and _within_policy(policy, cursor, step_end):
            if open_start is None:
                open_start = cursor
            open_end = step_end
        elif open_start is not None:
            result.append(FreeInterval(start=open_start, end=open_end))
            open_start = None
        cursor = step_end
    if open_start is not None:
        result.append(FreeInterval(start=open_start, end=open_end))

    logger.debug("free intervals: %d over %s -> %s (busy=%d)",
                 len(result), window.start.isoformat(), window.end.isoformat(),
                 len(busy_spans))
    return result


def total_free_minutes(intervals: Iterable[FreeInterval]) -> int:
    return sum(f.minutes for f in intervals)
