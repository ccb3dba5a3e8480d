from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .config import CLOCK_RE, DEFAULT_DURATION_MINUTES
from .utils import clock_to_minutes, ensure_aware, span_minutes

LocalDatetime = Annotated[datetime, AfterValidator(ensure_aware)]


class _Span(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: LocalDatetime
    end: LocalDatetime

    @property
    def minutes(self) -> int:
        return span_minutes(self.start, self.end)

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


class TimeWindow(_Span):
    """Half-open search boundary."""

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.start >= self.end:
            raise ValueError("window start must precede window end")
        return self


class BusyInterval(_Span):
    protected: bool = False
    calendar_id: Optional[str] = None
    title: Optional[str] = None

    @model_validator(mode="after")
    def _check_order(self) -> "BusyInterval":
        if self.end < self.start:
            raise ValueError("busy interval ends before it starts")
        return self


class FreeInterval(_Span):
    pass


class WorkingHoursBand(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    start: str  # "HH:MM"
    end: str  # "HH:MM", "24:00" allowed
    enabled: bool = True

    @field_validator("start", "end")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        cleaned = (value or "").strip()
        match = CLOCK_RE.match(cleaned)
        if not match:
            raise ValueError(f"invalid clock value: {value!r}")
        if match.group(1) == "24" and match.group(2) != "00":
            raise ValueError(f"invalid clock value: {value!r}")
        return cleaned

    @property
    def start_minute(self) -> int:
        return clock_to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return clock_to_minutes(self.end)


class WorkingHoursPolicy(BaseModel):
    """Named bands of eligible wall-clock time.

    Accepts either a list of bands or the section mapping used by the
    settings screen, e.g. ``{"morning": {"start": "08:00", "end": "12:00",
    "enabled": true}, "evening": {...}}``.
    """
    model_config = ConfigDict(extra="ignore")

    bands: List[WorkingHoursBand] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_sections(cls, data: Any) -> Any:
        if isinstance(data, dict) and "bands" not in data:
            bands: List[Dict[str, Any]] = []
            for name, section in data.items():
                if not isinstance(section, dict):
                    continue
                bands.append({"name": name, **section})
            return {"bands": bands}
        return data

    def allows(self, start_minute: int, end_minute: int) -> bool:
        for band in self.bands:
            if not band.enabled:
                continue
            if band.start_minute <= start_minute and end_minute <= band.end_minute:
                return True
        return False


class SubUnit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    duration_minutes: Optional[int] = Field(default=None, ge=0)


class TrackedBlock(_Span):
    """A block already placed for the task, possibly worked on."""
    completed: bool = False
    time_spent_minutes: Optional[int] = Field(default=None, ge=0)
    event_id: Optional[str] = None


class Completion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    time_spent_minutes: int = Field(default=0, ge=0)
    blocks: List[TrackedBlock] = Field(default_factory=list)


class TaskSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    description: Optional[str] = None
    total_duration_minutes: int = Field(default=DEFAULT_DURATION_MINUTES, ge=0)
    deadline: Optional[LocalDatetime] = None
    sub_units: List[SubUnit] = Field(default_factory=list)
    completion: Completion = Field(default_factory=Completion)


class Candidate(_Span):
    priority: int
    quarter_aligned: bool = True


class Block(_Span):
    title: str = ""
    sub_unit_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
#  Request payloads
# ---------------------------------------------------------------------------

class ScheduleRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task: TaskSpec
    preferred_date: Optional[LocalDatetime] = None
    duration_override: Optional[int] = Field(default=None, gt=0)
    allow_splitting: bool = True
    working_hours: Optional[WorkingHoursPolicy] = None
    dry_run: bool = False


class FreeIntervalsRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start: LocalDatetime
    end: LocalDatetime
    working_hours: Optional[WorkingHoursPolicy] = None


class CompleteBlockRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task: TaskSpec
    block_index: int
    time_spent_minutes: Optional[int] = None


class TimeSpentRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task: TaskSpec
    minutes: int
    block_index: Optional[int] = None
