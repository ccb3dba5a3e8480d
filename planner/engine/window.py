from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Union

from ..config import DEFAULT_HORIZON_DAYS, MAX_HORIZON_DAYS, SEARCH_LEAD_MINUTES
from ..models import TimeWindow
from ..utils import end_of_day, format_local, round_up_to_quarter, to_local
from .results import FailedAllocation


def compute_window(now: datetime,
                   deadline: Optional[datetime] = None,
                   preferred: Optional[datetime] = None
                   ) -> Union[TimeWindow, FailedAllocation]:
    """
    Search window for one scheduling call.

    A deadline earlier today still leaves the rest of today searchable; only a
    deadline on a previous calendar day is refused.
    """
    now = to_local(now)
    if deadline is not None and to_local(deadline).date() < now.date():
        return FailedAllocation(
            code="deadline_passed",
            reason=(f"The deadline of this task ({to_local(deadline).date():%Y-%m-%d}) "
                    "is in the past. It cannot be scheduled."),
        )

    if preferred is not None:
        start = round_up_to_quarter(preferred)
    else:
        start = round_up_to_quarter(now + timedelta(minutes=SEARCH_LEAD_MINUTES))

    if deadline is not None:
        end = min(end_of_day(deadline), now + timedelta(days=MAX_HORIZON_DAYS))
    else:
        end = now + timedelta(days=DEFAULT_HORIZON_DAYS)

    if start >= end:
        deadline_text = (f"{to_local(deadline).date():%Y-%m-%d}"
                         if deadline is not None else "none")
        return FailedAllocation(
            code="invalid_window",
            reason=("The search period is empty: it would start at "
                    f"{format_local(start)} and end at {format_local(end)} "
                    f"(deadline: {deadline_text})."),
        )
    return TimeWindow(start=start, end=end)


def horizon_days(window: TimeWindow) -> int:
    seconds = (window.end - window.start).total_seconds()
    return max(1, int(-(-seconds // 86400)))
