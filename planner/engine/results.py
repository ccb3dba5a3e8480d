from __future__ import annotations

from datetime import timedelta
from typing import Annotated, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from ..config import MAX_GAP_DAYS
from ..models import Block, Candidate, FreeInterval
from ..utils import format_local, is_quarter_aligned

FailureCode = Literal[
    "deadline_passed",
    "invalid_window",
    "no_capacity",
    "nothing_remaining",
]
FailureStage = Literal["single", "uniform_split", "subunit_split"]
PriorityPath = Literal["interval_fit", "anchor", "late_single"]


class CapacityDiagnostics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    free_interval_count: int = 0
    largest_free_minutes: int = 0
    total_free_minutes: int = 0
    required_minutes: int = 0


class SingleAllocation(BaseModel):
    kind: Literal["single"] = "single"
    block: Block
    alternatives: List[Candidate] = Field(default_factory=list)
    priority_path: PriorityPath = "interval_fit"
    scheduled_minutes: int

    @property
    def blocks(self) -> List[Block]:
        return [self.block]


class SplitAllocation(BaseModel):
    kind: Literal["split"] = "split"
    blocks: List[Block]
    alternatives: List[Candidate] = Field(default_factory=list)
    strategy: str = ""
    scheduled_minutes: int


class SubtaskSplitAllocation(BaseModel):
    kind: Literal["subtask_split"] = "subtask_split"
    blocks: List[Block]
    scheduled_minutes: int


class FailedAllocation(BaseModel):
    kind: Literal["failed"] = "failed"
    code: FailureCode
    reason: str
    stage: Optional[FailureStage] = None
    diagnostics: Optional[CapacityDiagnostics] = None

    @property
    def blocks(self) -> List[Block]:
        return []


AllocationResult = Annotated[
    Union[SingleAllocation, SplitAllocation, SubtaskSplitAllocation,
          FailedAllocation],
    Field(discriminator="kind"),
]


def capacity_diagnostics(free: Sequence[FreeInterval],
                         required_minutes: int) -> CapacityDiagnostics:
    sizes = [f.minutes for f in free]
    return CapacityDiagnostics(
        free_interval_count=len(sizes),
        largest_free_minutes=max(sizes) if sizes else 0,
        total_free_minutes=sum(sizes),
        required_minutes=required_minutes,
    )


_SUGGESTIONS = (
    "\n\nSuggestions:\n"
    "- Shorten the task\n"
    "- Narrow the selected calendars in the settings\n"
    "- Place it manually in your calendar"
)


def no_capacity(free: Sequence[FreeInterval],
                required_minutes: int,
                stage: FailureStage,
                horizon_days: Optional[int] = None) -> FailedAllocation:
    diagnostics = capacity_diagnostics(free, required_minutes)
    if stage == "single":
        period = (f"in the next {horizon_days} days"
                  if horizon_days else "in the search window")
        reason = (f"No free slot of {required_minutes} minutes is available "
                  f"{period}.")
    elif stage == "uniform_split":
        reason = (f"This {required_minutes}-minute task cannot be placed, "
                  "not even split into several blocks.")
    else:
        reason = ("The sub-tasks cannot all be placed in the available free "
                  "time.")
    if diagnostics.free_interval_count == 0:
        reason += "\n\nYour calendar looks fully booked over this period."
    elif diagnostics.largest_free_minutes < required_minutes:
        reason += (f"\n\nThe largest free interval is "
                   f"{diagnostics.largest_free_minutes} minutes, which is not "
                   f"enough for this {required_minutes}-minute task.")
    reason += _SUGGESTIONS
    return FailedAllocation(code="no_capacity",
                            reason=reason,
                            stage=stage,
                            diagnostics=diagnostics)


def allocation_violations(result: AllocationResult,
                          free: Sequence[FreeInterval]) -> List[str]:
    """Invariant check for a non-failed allocation; empty when it holds."""
    if isinstance(result, FailedAllocation):
        return []
    blocks = result.blocks
    problems: List[str] = []
    total = sum(b.minutes for b in blocks)
    if total != result.scheduled_minutes:
        problems.append(f"blocks sum to {total} minutes, "
                        f"expected {result.scheduled_minutes}")
    max_gap = timedelta(days=MAX_GAP_DAYS)
    for i, block in enumerate(blocks):
        if not is_quarter_aligned(block.start):
            problems.append(f"block {i} starts off-quarter at "
                            f"{format_local(block.start)}")
        if not any(f.contains(block.start, block.end) for f in free):
            problems.append(f"block {i} is outside every free interval")
        if i == 0:
            continue
        prev = blocks[i - 1]
        if block.start < prev.end:
            problems.append(f"block {i} overlaps or precedes block {i - 1}")
        elif block.start - prev.end > max_gap:
            problems.append(f"block {i} starts more than {MAX_GAP_DAYS} days "
                            f"after block {i - 1}")
    return problems
