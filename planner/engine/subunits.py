from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from ..config import MAX_GAP_DAYS
from ..models import Block, FreeInterval, SubUnit, TaskSpec
from ..utils import align_start, round_up_to_quarter, span_minutes
from .results import AllocationResult, SubtaskSplitAllocation, no_capacity

logger = logging.getLogger(__name__)


def schedulable_subunits(task: TaskSpec) -> List[SubUnit]:
    return [s for s in task.sub_units if s.duration_minutes and s.duration_minutes > 0]


def outstanding_subunits(task: TaskSpec,
                         duration_minutes: Optional[int] = None) -> Optional[List[SubUnit]]:
    """
    Sub-units that make up exactly ``duration_minutes``: all of them, or the
    trailing ones when earlier sub-units are already done. None when no such
    tail exists.
    """
    units = schedulable_subunits(task)
    if duration_minutes is None or sum(s.duration_minutes for s in units) == duration_minutes:
        return units
    covered = 0
    for i in range(len(units) - 1, -1, -1):
        covered += units[i].duration_minutes
        if covered == duration_minutes:
            return units[i:]
        if covered > duration_minutes:
            break
    return None


def _group_title(task_title: str, group: Sequence[SubUnit]) -> str:
    if len(group) == 1:
        return f"{task_title} - {group[0].title}"
    return f"{task_title} ({', '.join(s.title for s in group)})"


def split_by_subunits(free: Sequence[FreeInterval],
                      task: TaskSpec,
                      duration_minutes: Optional[int] = None) -> AllocationResult:
    """
    Last-resort packing along sub-task boundaries.

    When every sub-unit fits back to back in one free interval a single block
    is emitted. Otherwise whole sub-units are packed, in order, into the free
    intervals one group per interval, until all are placed or the next
    interval is more than seven days after the last block.

    With ``duration_minutes`` only the trailing sub-units summing to it are
    placed.
    """
    units = outstanding_subunits(task, duration_minutes)
    if not units:
        required = duration_minutes if duration_minutes is not None else 0
        return no_capacity(free, required, "subunit_split")
    total = sum(s.duration_minutes for s in units)

    for interval in free:
        start = align_start(interval.start)
        if span_minutes(start, interval.end) >= total:
            logger.info("all %d sub-units fit in one block", len(units))
            block = Block(start=start,
                          end=start + timedelta(minutes=total),
                          title=task.title,
                          sub_unit_ids=[s.id for s in units])
            return SubtaskSplitAllocation(blocks=[block], scheduled_minutes=total)

    max_gap = timedelta(days=MAX_GAP_DAYS)
    groups: List[List[SubUnit]] = []
    blocks: List[Block] = []
    index = 0
    last_end = None
    for interval in free:
        if index >= len(units):
            break
        if last_end is not None and interval.start - last_end > max_gap:
            break
        start = align_start(interval.start)
        if last_end is not None and start < last_end:
            start = round_up_to_quarter(last_end)
        span = span_minutes(start, interval.end)
        group: List[SubUnit] = []
        used = 0
        while index < len(units) and used + units[index].duration_minutes <= span:
            group.append(units[index])
            used += units[index].duration_minutes
            index += 1
        if not group:
            continue
        end = start + timedelta(minutes=used)
        groups.append(group)
        blocks.append(Block(start=start, end=end))
        last_end = end

    if index < len(units) or not blocks:
        logger.debug("sub-unit packing placed %d of %d sub-units",
                     index, len(units))
        return no_capacity(free, total, "subunit_split")

    count = len(blocks)
    titled: List[Block] = []
    for i, (block, group) in enumerate(zip(blocks, groups)):
        title = _group_title(task.title, group)
        if count > 1:
            title = f"{title} ({i + 1}/{count})"
        titled.append(block.model_copy(update={
            "title": title,
            "sub_unit_ids": [s.id for s in group],
        }))
    logger.info("sub-units packed into %d block(s)", count)
    return SubtaskSplitAllocation(blocks=titled, scheduled_minutes=total)
