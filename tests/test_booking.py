"""Turning an allocation into calendar events."""

from conftest import at

from planner.booking import book_allocation
from planner.engine.results import FailedAllocation, SingleAllocation, SplitAllocation
from planner.gcal import GatewayError, InMemoryCalendarGateway
from planner.models import TimeWindow


class FlakyGateway(InMemoryCalendarGateway):
    """Accepts ``budget`` creations, then fails."""

    def __init__(self, budget):
        super().__init__()
        self.budget = budget

    def create_event(self, block, metadata):
        if self.budget <= 0:
            raise GatewayError("quota exceeded")
        self.budget -= 1
        return super().create_event(block, metadata)


def _split():
    return SplitAllocation(blocks=[
        {"start": at(2, 9), "end": at(2, 10), "title": "Write report"},
        {"start": at(3, 9), "end": at(3, 10), "title": "Write report (2/3)"},
        {"start": at(4, 9), "end": at(4, 10), "title": "Write report (3/3)"},
    ], scheduled_minutes=180)


class TestBookAllocation:

    def test_every_block_booked(self, make_task, gateway):
        report = book_allocation(gateway, make_task(total=180), _split())
        assert len(report.created) == 3
        assert report.partial is False
        assert report.error is None
        assert len(gateway.events) == 3

    def test_booked_blocks_become_busy(self, make_task, gateway):
        single = SingleAllocation(block={"start": at(2, 9), "end": at(2, 10)},
                                  scheduled_minutes=60)
        book_allocation(gateway, make_task(), single)
        window = TimeWindow(start=at(2, 0), end=at(3, 0))
        assert [(b.start, b.end) for b in gateway.get_busy_intervals(window)] == [
            (at(2, 9), at(2, 10))]

    def test_partial_failure_keeps_created_events(self, make_task):
        gateway = FlakyGateway(budget=2)
        report = book_allocation(gateway, make_task(total=180), _split())
        assert report.partial is True
        assert [e.block.start for e in report.created] == [at(2, 9), at(3, 9)]
        assert "quota exceeded" in report.error
        assert len(gateway.events) == 2

    def test_first_failure_is_not_partial(self, make_task):
        report = book_allocation(FlakyGateway(budget=0), make_task(total=180), _split())
        assert report.partial is False
        assert report.created == []
        assert report.error == "quota exceeded"

    def test_failed_allocation_books_nothing(self, make_task, gateway):
        failed = FailedAllocation(code="no_capacity", reason="full")
        report = book_allocation(gateway, make_task(), failed)
        assert report.created == []
        assert gateway.events == {}
