"""End-to-end allocation against an in-memory calendar."""

from datetime import datetime

import pytest

from conftest import at, busy

from planner.engine import find_single_slot, reschedule_remaining, schedule_task
from planner.engine.results import (
    FailedAllocation,
    SingleAllocation,
    SplitAllocation,
    SubtaskSplitAllocation,
)
from planner.gcal import GatewayError, InMemoryCalendarGateway
from planner.models import WorkingHoursPolicy


def _band(start, end):
    return WorkingHoursPolicy(bands=[{"name": "focus", "start": start, "end": end}])


class TestSingleSlot:

    def test_first_morning_slot(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=60), gateway,
                               policy=_band("09:00", "12:00"), now=early_morning)
        assert isinstance(result, SingleAllocation)
        assert (result.block.start, result.block.end) == (at(2, 9), at(2, 10))
        assert result.priority_path == "interval_fit"
        assert 2 <= len(result.alternatives) <= 3
        assert result.block.title == "Write report"
        assert result.scheduled_minutes == 60

    def test_slot_right_after_meeting(self, make_task, early_morning):
        gateway = InMemoryCalendarGateway([busy(at(2, 12), at(2, 14, 7))])
        result = schedule_task(make_task(total=90), gateway,
                               policy=_band("12:00", "17:00"), now=at(2, 12))
        assert isinstance(result, SingleAllocation)
        assert result.priority_path == "anchor"
        assert (result.block.start, result.block.end) == (at(2, 14, 15), at(2, 15, 45))

    def test_continued_title(self, make_task, gateway, early_morning):
        task = make_task(total=120, completion={
            "time_spent_minutes": 60,
            "blocks": [{"start": at(1, 9), "end": at(1, 10), "completed": True}],
        })
        result = schedule_task(task, gateway, now=early_morning)
        assert result.block.title == "Write report (continued)"
        assert result.scheduled_minutes == 60

    def test_override_beats_remaining(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=240), gateway,
                               explicit_duration_override=30, now=early_morning)
        assert result.block.minutes == 30

    def test_deadline_earlier_today(self, make_task, gateway):
        result = schedule_task(make_task(total=60, deadline=at(2, 8)), gateway,
                               now=at(2, 10))
        assert isinstance(result, SingleAllocation)
        assert result.block.start == at(2, 10, 30)

    def test_find_single_slot_never_splits(self, make_task, early_morning):
        gateway = InMemoryCalendarGateway()
        result = find_single_slot(make_task(total=180), gateway,
                                  policy=_band("09:00", "10:15"), now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.stage == "single"
        assert "14 days" in result.reason


class TestSplitting:

    def test_uniform_split_over_three_days(self, make_task, gateway, early_morning):
        task = make_task(total=180, deadline=at(4, 18), sub_units=[
            {"id": "a", "title": "Outline", "duration_minutes": 60},
            {"id": "b", "title": "Draft", "duration_minutes": 60},
            {"id": "c", "title": "Review", "duration_minutes": 60},
        ])
        result = schedule_task(task, gateway, policy=_band("09:00", "10:15"),
                               now=early_morning)
        assert isinstance(result, SplitAllocation)
        assert [b.start for b in result.blocks] == [at(2, 9), at(3, 9), at(4, 9)]
        assert [b.minutes for b in result.blocks] == [60, 60, 60]

    def test_sub_unit_fallback(self, make_task, gateway, early_morning):
        task = make_task(total=150, deadline=at(4, 18), sub_units=[
            {"id": "a", "title": "Outline", "duration_minutes": 50},
            {"id": "b", "title": "Draft", "duration_minutes": 50},
            {"id": "c", "title": "Review", "duration_minutes": 50},
        ])
        result = schedule_task(task, gateway, policy=_band("09:00", "10:00"),
                               now=early_morning)
        assert isinstance(result, SubtaskSplitAllocation)
        assert [b.sub_unit_ids for b in result.blocks] == [["a"], ["b"], ["c"]]
        assert [b.minutes for b in result.blocks] == [50, 50, 50]

    def test_no_split_when_disallowed(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=180), gateway, allow_splitting=False,
                               policy=_band("09:00", "10:15"), now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.stage == "single"

    def test_short_tasks_are_not_split(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=60), gateway,
                               policy=_band("09:00", "09:45"), now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.stage == "single"

    def test_no_capacity_without_sub_units(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=150, deadline=at(4, 18)), gateway,
                               policy=_band("09:00", "09:15"), now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.code == "no_capacity"
        assert result.stage == "uniform_split"
        assert result.diagnostics.free_interval_count == 3


class TestFailures:

    def test_deadline_passed(self, make_task, gateway):
        result = schedule_task(make_task(deadline=at(1, 18)), gateway, now=at(2, 10))
        assert isinstance(result, FailedAllocation)
        assert result.code == "deadline_passed"

    def test_fully_booked(self, make_task, early_morning):
        gateway = InMemoryCalendarGateway([busy(at(1), at(20))])
        result = schedule_task(make_task(total=30), gateway, now=early_morning)
        assert result.code == "no_capacity"
        assert result.diagnostics.free_interval_count == 0
        assert "fully booked" in result.reason

    def test_gateway_errors_propagate(self, make_task, early_morning):
        class Broken(InMemoryCalendarGateway):
            def get_busy_intervals(self, window):
                raise GatewayError("calendar down")

        with pytest.raises(GatewayError):
            schedule_task(make_task(), Broken(), now=early_morning)


class TestRescheduleRemaining:

    def test_nothing_left(self, make_task, gateway, early_morning):
        task = make_task(total=60, completion={"time_spent_minutes": 60})
        result = reschedule_remaining(task, gateway, now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.code == "nothing_remaining"

    def test_places_only_the_rest(self, make_task, gateway, early_morning):
        task = make_task(total=120, completion={
            "time_spent_minutes": 0,
            "blocks": [{"start": at(1, 9), "end": at(1, 10), "completed": True,
                        "time_spent_minutes": 50}],
        })
        result = reschedule_remaining(task, gateway, now=early_morning)
        assert isinstance(result, SingleAllocation)
        assert result.scheduled_minutes == 70
        assert result.block.start == at(2, 7, 30)
        assert result.block.end == at(2, 8, 40)


class TestPreferredDate:

    def test_naive_preferred_date_is_local(self, make_task, gateway, early_morning):
        result = schedule_task(make_task(total=60), gateway,
                               preferred_date=datetime(2026, 3, 3, 9, 0),
                               now=early_morning)
        assert isinstance(result, SingleAllocation)
        assert result.block.start == at(3, 9)

    def test_naive_preferred_date_single_slot(self, make_task, gateway, early_morning):
        result = find_single_slot(make_task(total=30), gateway,
                                  preferred_date=datetime(2026, 3, 4, 14, 0),
                                  now=early_morning)
        assert result.block.start == at(4, 14)


class TestPartlyDoneSubUnits:

    SUB_UNITS = [
        {"id": "a", "title": "Outline", "duration_minutes": 100},
        {"id": "b", "title": "Draft", "duration_minutes": 100},
        {"id": "c", "title": "Review", "duration_minutes": 100},
    ]

    def test_only_outstanding_sub_units_booked(self, make_task, gateway, early_morning):
        task = make_task(total=300, deadline=at(4, 18), sub_units=self.SUB_UNITS,
                         completion={"time_spent_minutes": 100})
        result = schedule_task(task, gateway, policy=_band("09:00", "10:45"),
                               now=early_morning)
        assert isinstance(result, SubtaskSplitAllocation)
        assert result.scheduled_minutes == 200
        assert sum(b.minutes for b in result.blocks) == 200
        assert [b.sub_unit_ids for b in result.blocks] == [["b"], ["c"]]

    def test_remaining_not_on_sub_unit_boundary(self, make_task, gateway, early_morning):
        task = make_task(total=300, deadline=at(4, 18), sub_units=self.SUB_UNITS,
                         completion={"time_spent_minutes": 150})
        result = schedule_task(task, gateway, policy=_band("09:00", "10:45"),
                               now=early_morning)
        assert isinstance(result, FailedAllocation)
        assert result.stage == "uniform_split"
        assert result.diagnostics.required_minutes == 150


class TestDurationToSchedule:

    def test_all_blocks_done_but_time_short(self, make_task, gateway, early_morning):
        task = make_task(total=120, completion={
            "time_spent_minutes": 30,
            "blocks": [
                {"start": at(1, 9), "end": at(1, 10), "completed": True},
                {"start": at(1, 11), "end": at(1, 12), "completed": True},
            ],
        })
        result = schedule_task(task, gateway, now=early_morning)
        assert isinstance(result, SingleAllocation)
        assert result.scheduled_minutes == 90

    def test_open_blocks_already_cover_the_task(self, make_task, gateway, early_morning):
        task = make_task(total=60, completion={
            "time_spent_minutes": 60,
            "blocks": [{"start": at(3, 9), "end": at(3, 10)}],
        })
        result = schedule_task(task, gateway, now=early_morning)
        assert result.code == "nothing_remaining"
        assert "not completed" in result.reason

    def test_finished_task(self, make_task, gateway, early_morning):
        task = make_task(total=60, completion={"time_spent_minutes": 60})
        result = schedule_task(task, gateway, now=early_morning)
        assert result.code == "nothing_remaining"
        assert "no time left" in result.reason
