"""
Remaining-time tracking and completion bookkeeping for a task snapshot.
Every function here is pure: the task passed in is never modified, updated
snapshots are returned as copies.
"""

from __future__ import annotations

from typing import Optional

from ..models import TaskSpec, TrackedBlock


def _block_minutes(block: TrackedBlock) -> int:
    if block.time_spent_minutes:
        return block.time_spent_minutes
    return max(0, block.minutes)


def completed_block_minutes(task: TaskSpec) -> int:
    return sum(_block_minutes(b) for b in task.completion.blocks if b.completed)


def remaining_minutes(task: TaskSpec) -> int:
    """
    Minutes still to place. Explicit time tracking and completed blocks may
    disagree; the larger of the two counts as done.
    """
    done = max(task.completion.time_spent_minutes, completed_block_minutes(task))
    return max(0, task.total_duration_minutes - done)


def progress_percent(task: TaskSpec) -> int:
    total = task.total_duration_minutes
    if total <= 0:
        return 0
    ratio = task.completion.time_spent_minutes / total * 100
    return min(100, int(ratio + 0.5))


def complete_block(task: TaskSpec,
                   index: int,
                   time_spent_minutes: Optional[int] = None) -> TaskSpec:
    blocks = list(task.completion.blocks)
    if index < 0 or index >= len(blocks):
        raise IndexError(f"block index {index} out of range")
    block = blocks[index]
    if time_spent_minutes is not None:
        spent = max(0, int(time_spent_minutes))
    else:
        spent = _block_minutes(block)
    blocks[index] = block.model_copy(update={
        "completed": True,
        "time_spent_minutes": spent,
    })
    completion = task.completion.model_copy(update={
        "blocks": blocks,
        "time_spent_minutes": task.completion.time_spent_minutes + spent,
    })
    return task.model_copy(update={"completion": completion})


def record_time_spent(task: TaskSpec,
                      minutes: int,
                      block_index: Optional[int] = None) -> TaskSpec:
    spent = max(0, int(minutes))
    blocks = list(task.completion.blocks)
    if block_index is not None and 0 <= block_index < len(blocks):
        blocks[block_index] = blocks[block_index].model_copy(
            update={"time_spent_minutes": spent})
    completion = task.completion.model_copy(update={
        "blocks": blocks,
        "time_spent_minutes": spent,
    })
    return task.model_copy(update={"completion": completion})
