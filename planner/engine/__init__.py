"""
Slot allocation engine
"""

from .candidates import generate_candidates
from .free_intervals import free_intervals
from .progress import remaining_minutes
from .ranking import rank_candidates
from .results import AllocationResult, FailedAllocation, allocation_violations
from .scheduler import find_single_slot, reschedule_remaining, schedule_task
from .splitter import split_uniform
from .subunits import split_by_subunits

__all__ = [
    "AllocationResult",
    "FailedAllocation",
    "allocation_violations",
    "find_single_slot",
    "free_intervals",
    "generate_candidates",
    "rank_candidates",
    "remaining_minutes",
    "reschedule_remaining",
    "schedule_task",
    "split_by_subunits",
    "split_uniform",
]
