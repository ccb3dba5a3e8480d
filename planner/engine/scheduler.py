from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple, Union

from ..config import MAX_ALTERNATIVES, PRIORITY_ANCHOR, SPLIT_THRESHOLD_MINUTES
from ..gcal import CalendarGateway
from ..models import Block, FreeInterval, TaskSpec, TimeWindow, WorkingHoursPolicy
from ..utils import format_local, now_local, to_local
from .candidates import generate_candidates
from .free_intervals import free_intervals
from .progress import remaining_minutes
from .ranking import rank_candidates
from .results import (
    AllocationResult,
    FailedAllocation,
    SingleAllocation,
    allocation_violations,
    no_capacity,
)
from .splitter import split_uniform
from .subunits import outstanding_subunits, split_by_subunits
from .window import compute_window, horizon_days

logger = logging.getLogger(__name__)

_Search = Tuple[TimeWindow, List[FreeInterval], List[datetime]]


def block_title(task: TaskSpec) -> str:
    if task.completion.blocks:
        return f"{task.title} (continued)"
    return task.title


def _nothing_remaining(task: TaskSpec) -> FailedAllocation:
    if any(not b.completed for b in task.completion.blocks):
        reason = (f"Task '{task.title}' already has scheduled blocks that are "
                  "not completed.")
    else:
        reason = (f"Task '{task.title}' is completed or has no time left to "
                  "schedule.")
    return FailedAllocation(code="nothing_remaining", reason=reason)


def duration_to_schedule(task: TaskSpec) -> int:
    """
    Remaining minutes, except that a task whose blocks are all completed
    but whose tracked time falls short of the total gets the difference.
    """
    duration = remaining_minutes(task)
    blocks = task.completion.blocks
    if duration == 0 and blocks and all(b.completed for b in blocks):
        duration = max(0, task.total_duration_minutes
                       - task.completion.time_spent_minutes)
    return duration


def _search_space(task: TaskSpec,
                  gateway: CalendarGateway,
                  preferred_date: Optional[datetime],
                  policy: Optional[WorkingHoursPolicy],
                  now: datetime) -> Union[_Search, FailedAllocation]:
    window = compute_window(now, task.deadline, preferred_date)
    if isinstance(window, FailedAllocation):
        logger.info("task %s: %s", task.id, window.code)
        return window
    logger.debug("task %s: window %s -> %s", task.id,
                 format_local(window.start), format_local(window.end))

    busy = gateway.get_busy_intervals(window)
    free = free_intervals(window, busy, policy)
    logger.debug("task %s: %d busy, %d free intervals",
                 task.id, len(busy), len(free))
    return window, free, [b.end for b in busy]


def _single_slot(task: TaskSpec,
                 duration: int,
                 search: _Search,
                 preferred_date: Optional[datetime],
                 now: datetime) -> Optional[SingleAllocation]:
    window, free, busy_ends = search
    candidates = generate_candidates(free, busy_ends, duration, window.end)
    ranked = rank_candidates(candidates, now, preferred_date, task.deadline)
    if not ranked:
        return None
    best = ranked[0]
    path = "anchor" if best.priority >= PRIORITY_ANCHOR else "interval_fit"
    return SingleAllocation(
        block=Block(start=best.start, end=best.end, title=block_title(task)),
        alternatives=ranked[1:1 + MAX_ALTERNATIVES],
        priority_path=path,
        scheduled_minutes=duration,
    )


def _checked(result: AllocationResult,
             free: List[FreeInterval]) -> AllocationResult:
    problems = allocation_violations(result, free)
    if problems:
        logger.warning("allocation breaks invariants: %s", "; ".join(problems))
    return result


def find_single_slot(task: TaskSpec,
                     gateway: CalendarGateway,
                     preferred_date: Optional[datetime] = None,
                     policy: Optional[WorkingHoursPolicy] = None,
                     now: Optional[datetime] = None,
                     duration_minutes: Optional[int] = None) -> AllocationResult:
    """One contiguous block or a ``no_capacity`` failure; never splits."""
    now = to_local(now) if now is not None else now_local()
    if preferred_date is not None:
        preferred_date = to_local(preferred_date)
    if duration_minutes is not None:
        duration = duration_minutes
    else:
        duration = duration_to_schedule(task)
    if duration <= 0:
        return _nothing_remaining(task)

    search = _search_space(task, gateway, preferred_date, policy, now)
    if isinstance(search, FailedAllocation):
        return search
    window, free, _ = search

    found = _single_slot(task, duration, search, preferred_date, now)
    if found is None:
        return no_capacity(free, duration, "single", horizon_days(window))
    return _checked(found, free)


def schedule_task(task: TaskSpec,
                  gateway: CalendarGateway,
                  preferred_date: Optional[datetime] = None,
                  explicit_duration_override: Optional[int] = None,
                  allow_splitting: bool = True,
                  policy: Optional[WorkingHoursPolicy] = None,
                  now: Optional[datetime] = None) -> AllocationResult:
    """
    Place a task in the calendar's free time.

    The duration is the explicit override when given, else the task's
    remaining minutes. A single contiguous slot is tried first; when none
    exists and the task is longer than an hour (and splitting is allowed),
    uniform splitting and then sub-unit packing follow. Expected outcomes
    (past deadline, empty window, no room) come back as ``FailedAllocation``;
    only gateway errors raise.
    """
    now = to_local(now) if now is not None else now_local()
    if preferred_date is not None:
        preferred_date = to_local(preferred_date)
    if explicit_duration_override is not None:
        duration = explicit_duration_override
    else:
        duration = duration_to_schedule(task)
    if duration <= 0:
        return _nothing_remaining(task)

    search = _search_space(task, gateway, preferred_date, policy, now)
    if isinstance(search, FailedAllocation):
        return search
    window, free, _ = search

    found = _single_slot(task, duration, search, preferred_date, now)
    if found is not None:
        logger.info("task %s: %d minutes at %s (%s)", task.id, duration,
                    format_local(found.block.start), found.priority_path)
        return _checked(found, free)

    if not allow_splitting or duration <= SPLIT_THRESHOLD_MINUTES:
        return no_capacity(free, duration, "single", horizon_days(window))

    result = split_uniform(free, duration, title=block_title(task))
    if not isinstance(result, FailedAllocation):
        return _checked(result, free)

    if outstanding_subunits(task, duration):
        logger.debug("task %s: falling back to sub-unit packing", task.id)
        result = split_by_subunits(free, task, duration)
    if isinstance(result, FailedAllocation):
        logger.info("task %s: no room for %d minutes (%s)",
                    task.id, duration, result.stage)
        return result
    return _checked(result, free)


def reschedule_remaining(task: TaskSpec,
                         gateway: CalendarGateway,
                         preferred_date: Optional[datetime] = None,
                         policy: Optional[WorkingHoursPolicy] = None,
                         now: Optional[datetime] = None) -> AllocationResult:
    if remaining_minutes(task) <= 0:
        return _nothing_remaining(task)
    return schedule_task(task,
                         gateway,
                         preferred_date=preferred_date,
                         policy=policy,
                         now=now)
