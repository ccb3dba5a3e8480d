from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from ..config import (
    CANDIDATE_STRIDE_MINUTES,
    MERGE_TOLERANCE_MINUTES,
    PRIORITY_ANCHOR,
    PRIORITY_INTERVAL_FIT,
)
from ..models import Candidate, FreeInterval
from ..utils import align_start, is_quarter_aligned, round_up_to_quarter

logger = logging.getLogger(__name__)


def merged_chains(free: Sequence[FreeInterval],
                  required_minutes: int) -> List[Tuple[datetime, datetime]]:
    """
    For each free interval too short on its own, the shortest run of
    following intervals, separated by at most the merge tolerance, that is
    long enough for ``required_minutes``.
    """
    required = timedelta(minutes=required_minutes)
    tolerance = timedelta(minutes=MERGE_TOLERANCE_MINUTES)
    spans: List[Tuple[datetime, datetime]] = []
    for i, first in enumerate(free):
        if first.end - first.start >= required:
            continue
        chain_end = first.end
        for nxt in free[i + 1:]:
            if nxt.start > chain_end + tolerance:
                break
            chain_end = max(chain_end, nxt.end)
            if chain_end - first.start >= required:
                spans.append((first.start, chain_end))
                break
    return spans


def interval_chains(free: Sequence[FreeInterval],
                    required_minutes: int) -> List[Tuple[datetime, datetime]]:
    """Single free intervals long enough, then merged chains."""
    required = timedelta(minutes=required_minutes)
    singles = [(f.start, f.end) for f in free if f.end - f.start >= required]
    return singles + merged_chains(free, required_minutes)


def fit_candidate(start: datetime,
                  end: datetime,
                  required_minutes: int,
                  priority: int = PRIORITY_INTERVAL_FIT) -> Optional[Candidate]:
    begin = align_start(start)
    finish = begin + timedelta(minutes=required_minutes)
    if begin < start or finish > end:
        return None
    return Candidate(start=begin,
                     end=finish,
                     priority=priority,
                     quarter_aligned=is_quarter_aligned(start))


def anchor_candidates(free: Sequence[FreeInterval],
                      busy_ends: Iterable[datetime],
                      required_minutes: int,
                      window_end: Optional[datetime] = None) -> List[Candidate]:
    required = timedelta(minutes=required_minutes)
    out: List[Candidate] = []
    for raw_end in sorted(busy_ends):
        anchor = round_up_to_quarter(raw_end)
        finish = anchor + required
        if window_end is not None and finish > window_end:
            continue
        if any(f.contains(anchor, finish) for f in free):
            out.append(Candidate(start=anchor,
                                 end=finish,
                                 priority=PRIORITY_ANCHOR,
                                 quarter_aligned=is_quarter_aligned(raw_end)))
    return out


def generate_candidates(free: Sequence[FreeInterval],
                        busy_ends: Iterable[datetime],
                        required_minutes: int,
                        window_end: Optional[datetime] = None) -> List[Candidate]:
    """
    Every exact-duration, quarter-aligned single-block placement.

    Long enough free intervals are sampled every stride; a merged chain only
    offers its start.
    """
    stride = timedelta(minutes=CANDIDATE_STRIDE_MINUTES)
    required = timedelta(minutes=required_minutes)
    out: List[Candidate] = []
    for interval in free:
        offset_start = interval.start
        while offset_start + required <= interval.end:
            candidate = fit_candidate(offset_start, interval.end, required_minutes)
            if candidate is not None:
                out.append(candidate)
            offset_start += stride
    for start, end in merged_chains(free, required_minutes):
        candidate = fit_candidate(start, end, required_minutes)
        if candidate is not None:
            out.append(candidate)
    out.extend(anchor_candidates(free, busy_ends, required_minutes, window_end))
    logger.debug("candidates for %d minutes: %d", required_minutes, len(out))
    return out
