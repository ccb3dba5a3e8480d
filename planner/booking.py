from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .engine.results import AllocationResult, FailedAllocation
from .gcal import CalendarGateway, GatewayError
from .models import Block, TaskSpec

logger = logging.getLogger(__name__)


class BookedEvent(BaseModel):
  model_config = ConfigDict(extra="ignore")

  event_id: str
  block: Block


class BookingReport(BaseModel):
  model_config = ConfigDict(extra="ignore")

  created: List[BookedEvent] = Field(default_factory=list)
  partial: bool = False
  error: Optional[str] = None


def _event_metadata(task: TaskSpec, block: Block) -> Dict[str, Any]:
  private: Dict[str, Any] = {"planner_task_id": task.id}
  if block.sub_unit_ids:
    private["planner_sub_unit_ids"] = ",".join(block.sub_unit_ids)
  return {
      "title": task.title,
      "description": task.description or "",
      "private": private,
  }


def book_allocation(gateway: CalendarGateway,
                    task: TaskSpec,
                    result: AllocationResult) -> BookingReport:
  """
  Create one calendar event per block, in order.

  Events already created are kept when a later one fails; the report then
  has ``partial=True`` and carries the gateway error text.
  """
  report = BookingReport()
  if isinstance(result, FailedAllocation):
    return report

  blocks = result.blocks
  for index, block in enumerate(blocks):
    try:
      event_id = gateway.create_event(block, _event_metadata(task, block))
    except GatewayError as exc:
      logger.warning("booking task %s stopped at block %d/%d: %s",
                     task.id, index + 1, len(blocks), exc)
      report.partial = bool(report.created)
      report.error = str(exc)
      return report
    report.created.append(BookedEvent(event_id=event_id, block=block))
  logger.info("booked %d event(s) for task %s", len(report.created), task.id)
  return report
