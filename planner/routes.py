from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from .booking import book_allocation
from .config import API_BASE, ENABLE_GCAL, PLANNER_TIMEZONE_NAME
from .engine import free_intervals, remaining_minutes, reschedule_remaining, schedule_task
from .engine.progress import complete_block, progress_percent, record_time_spent
from .engine.results import FailedAllocation
from .gcal import CalendarGateway, GatewayError, GoogleCalendarGateway, get_google_session_id
from .models import (
    CompleteBlockRequest,
    FreeIntervalsRequest,
    ScheduleRequest,
    TaskSpec,
    TimeSpentRequest,
    TimeWindow,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_BASE)


def gateway_for_request(request: Request) -> CalendarGateway:
  session_id = get_google_session_id(request)
  if not session_id:
    raise HTTPException(status_code=401, detail="Google login is required.")
  return GoogleCalendarGateway(session_id)


def _allocation_payload(req: ScheduleRequest, result, gateway: CalendarGateway) -> Dict[str, Any]:
  payload: Dict[str, Any] = {"allocation": result.model_dump(mode="json"),
                             "booking": None}
  if req.dry_run or isinstance(result, FailedAllocation):
    return payload
  report = book_allocation(gateway, req.task, result)
  payload["booking"] = report.model_dump(mode="json")
  return payload


@router.get("/health")
def health():
  return {"ok": True, "gcal": ENABLE_GCAL, "timezone": PLANNER_TIMEZONE_NAME}


@router.post("/schedule")
def schedule(request: Request, req: ScheduleRequest):
  gateway = gateway_for_request(request)
  try:
    result = schedule_task(req.task,
                           gateway,
                           preferred_date=req.preferred_date,
                           explicit_duration_override=req.duration_override,
                           allow_splitting=req.allow_splitting,
                           policy=req.working_hours)
    return _allocation_payload(req, result, gateway)
  except GatewayError as exc:
    logger.exception("schedule failed for task %s", req.task.id)
    raise HTTPException(status_code=502,
                        detail=f"Google Calendar request failed: {exc}") from exc


@router.post("/schedule/remaining")
def schedule_remaining(request: Request, req: ScheduleRequest):
  gateway = gateway_for_request(request)
  try:
    result = reschedule_remaining(req.task,
                                  gateway,
                                  preferred_date=req.preferred_date,
                                  policy=req.working_hours)
    return _allocation_payload(req, result, gateway)
  except GatewayError as exc:
    logger.exception("reschedule failed for task %s", req.task.id)
    raise HTTPException(status_code=502,
                        detail=f"Google Calendar request failed: {exc}") from exc


@router.post("/schedule/free-intervals")
def list_free_intervals(request: Request, req: FreeIntervalsRequest):
  if req.start >= req.end:
    raise HTTPException(status_code=400, detail="start must precede end.")
  gateway = gateway_for_request(request)
  window = TimeWindow(start=req.start, end=req.end)
  try:
    busy = gateway.get_busy_intervals(window)
  except GatewayError as exc:
    logger.exception("busy interval fetch failed")
    raise HTTPException(status_code=502,
                        detail=f"Google Calendar request failed: {exc}") from exc
  free = free_intervals(window, busy, req.working_hours)
  return {
      "items": [f.model_dump(mode="json") for f in free],
      "total_minutes": sum(f.minutes for f in free),
  }


@router.post("/tasks/remaining")
def task_remaining(task: TaskSpec):
  return {
      "remaining_minutes": remaining_minutes(task),
      "progress_percent": progress_percent(task),
  }


def _progress_payload(task: TaskSpec) -> Dict[str, Any]:
  return {
      "task": task.model_dump(mode="json"),
      "remaining_minutes": remaining_minutes(task),
      "progress_percent": progress_percent(task),
  }


@router.post("/tasks/complete-block")
def task_complete_block(req: CompleteBlockRequest):
  if not req.task.completion.blocks:
    raise HTTPException(status_code=400, detail="This task has no scheduled blocks.")
  try:
    task = complete_block(req.task, req.block_index, req.time_spent_minutes)
  except IndexError as exc:
    raise HTTPException(status_code=400, detail="Invalid block index.") from exc
  return _progress_payload(task)


@router.post("/tasks/time-spent")
def task_time_spent(req: TimeSpentRequest):
  task = record_time_spent(req.task, req.minutes, req.block_index)
  return _progress_payload(task)
