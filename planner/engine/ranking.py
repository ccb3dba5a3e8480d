from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from ..config import DEDUP_WINDOW_MINUTES
from ..models import Candidate


def _distance(start: datetime, target: Optional[datetime]) -> float:
    if target is None:
        return 0.0
    return abs((start - target).total_seconds())


def rank_key(candidate: Candidate,
             now: datetime,
             preferred: Optional[datetime] = None,
             deadline: Optional[datetime] = None) -> Tuple:
    return (
        -candidate.priority,
        0 if candidate.quarter_aligned else 1,
        _distance(candidate.start, preferred),
        _distance(candidate.start, now),
        _distance(candidate.start, deadline),
        candidate.start,
    )


def dedupe(candidates: Iterable[Candidate]) -> List[Candidate]:
    window = timedelta(minutes=DEDUP_WINDOW_MINUTES)
    kept: List[Candidate] = []
    for candidate in candidates:
        if any(abs(candidate.start - k.start) < window for k in kept):
            continue
        kept.append(candidate)
    return kept


def rank_candidates(candidates: Iterable[Candidate],
                    now: datetime,
                    preferred: Optional[datetime] = None,
                    deadline: Optional[datetime] = None) -> List[Candidate]:
    """
    Best placement first.

    Order: anchor priority, then quarter-hour roundness, then closeness to the
    preferred time, to now, to the deadline, and finally chronology. Near
    duplicates (starts less than 15 minutes apart) collapse onto the
    better-ranked one.
    """
    ordered = sorted(candidates,
                     key=lambda c: rank_key(c, now, preferred, deadline))
    return dedupe(ordered)
