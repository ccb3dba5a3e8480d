from __future__ import annotations

import logging
from datetime import timedelta
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import MAX_GAP_DAYS, SPLIT_STRATEGIES
from ..models import Block, FreeInterval
from ..utils import align_start, round_up_to_quarter, span_minutes
from .candidates import fit_candidate, interval_chains
from .results import AllocationResult, SingleAllocation, SplitAllocation, no_capacity

logger = logging.getLogger(__name__)

Carver = Callable[[Sequence[FreeInterval], int], Optional[List[Block]]]


def carve_uniform(free: Sequence[FreeInterval],
                  total_minutes: int,
                  min_block: Optional[int] = None,
                  max_blocks: int = 1) -> Optional[List[Block]]:
    """
    Walk the free intervals in order, carving at most one block from each.

    Each block is ``min(span, remaining, max(min_block, remaining //
    blocks_left))`` minutes and is dropped when smaller than ``min_block``.
    Gives up once the next interval opens more than seven days after the
    last block. ``min_block=None`` means the whole duration in one block.
    """
    if min_block is None:
        min_block = total_minutes
    max_gap = timedelta(days=MAX_GAP_DAYS)
    blocks: List[Block] = []
    remaining = total_minutes
    last_end = None
    for interval in free:
        if remaining <= 0 or len(blocks) >= max_blocks:
            break
        if last_end is not None and interval.start - last_end > max_gap:
            break
        start = align_start(interval.start)
        if last_end is not None and start < last_end:
            start = round_up_to_quarter(last_end)
        span = span_minutes(start, interval.end)
        if span <= 0:
            continue
        blocks_left = max_blocks - len(blocks)
        size = min(span, remaining, max(min_block, remaining // blocks_left))
        if size < min_block:
            continue
        end = start + timedelta(minutes=size)
        blocks.append(Block(start=start, end=end))
        remaining -= size
        last_end = end
    if remaining <= 0 and blocks:
        return blocks
    return None


def _first_fit(spans, total_minutes: int) -> Optional[List[Block]]:
    for start, end in spans:
        candidate = fit_candidate(start, end, total_minutes)
        if candidate is not None:
            return [Block(start=candidate.start, end=candidate.end)]
    return None


def late_single_interval(free: Sequence[FreeInterval],
                         total_minutes: int) -> Optional[List[Block]]:
    return _first_fit(((f.start, f.end) for f in free), total_minutes)


def late_chain(free: Sequence[FreeInterval],
               total_minutes: int) -> Optional[List[Block]]:
    return _first_fit(interval_chains(free, total_minutes), total_minutes)


def _strategy_label(min_block: Optional[int], max_blocks: int) -> str:
    if min_block is None:
        return "whole"
    return f">={min_block}min x{max_blocks}"


UNIFORM_CASCADE: List[Tuple[str, Carver]] = [
    (_strategy_label(min_block, max_blocks),
     partial(carve_uniform, min_block=min_block, max_blocks=max_blocks))
    for min_block, max_blocks in SPLIT_STRATEGIES
] + [
    ("late_single_interval", late_single_interval),
    ("late_chain", late_chain),
]


def numbered_titles(blocks: List[Block], title: str) -> List[Block]:
    total = len(blocks)
    titled: List[Block] = []
    for i, block in enumerate(blocks):
        label = title if i == 0 or total == 1 else f"{title} ({i + 1}/{total})"
        titled.append(block.model_copy(update={"title": label}))
    return titled


def split_uniform(free: Sequence[FreeInterval],
                  total_minutes: int,
                  title: str = "") -> AllocationResult:
    """
    Cover ``total_minutes`` with as few, as large blocks as the free time
    allows. The first carver of the cascade that succeeds wins.
    """
    for label, carver in UNIFORM_CASCADE:
        blocks = carver(free, total_minutes)
        if blocks is None:
            logger.debug("split strategy %s failed for %d minutes",
                         label, total_minutes)
            continue
        logger.info("split strategy %s placed %d minutes in %d block(s)",
                    label, total_minutes, len(blocks))
        if len(blocks) == 1:
            return SingleAllocation(
                block=blocks[0].model_copy(update={"title": title}),
                priority_path="late_single",
                scheduled_minutes=total_minutes,
            )
        return SplitAllocation(blocks=numbered_titles(blocks, title),
                               strategy=label,
                               scheduled_minutes=total_minutes)
    return no_capacity(free, total_minutes, "uniform_split")
