"""
房态日历网格测试
"""
from datetime import date

from frontdesk.domain.availability import (
    DisplayStatus, GridReservation, build_availability, date_range, merge
)
from frontdesk.models.ontology import ReservationKind, ReservationStatus


def grid_reservation(id, start, end, status, kind=ReservationKind.NIGHT, room_id=1):
    return GridReservation(
        id=id, room_id=room_id, code=str(id), guest_name=f"Guest {id}",
        start_date=start, end_date=end, kind=kind, status=status,
    )


class TestAvailabilityGrid:

    def test_date_range_inclusive(self):
        days = date_range(date(2024, 1, 30), date(2024, 2, 2))
        assert len(days) == 4
        assert days[-1] == date(2024, 2, 2)

    def test_merge_keeps_higher_priority(self):
        assert merge(DisplayStatus.RESERVED, DisplayStatus.OCCUPIED) == DisplayStatus.OCCUPIED
        assert merge(DisplayStatus.CLEANING, DisplayStatus.COMPLETED) == DisplayStatus.CLEANING

    def test_checked_in_outranks_reserved(self):
        reservations = [
            grid_reservation(1, date(2024, 1, 1), date(2024, 1, 3), ReservationStatus.CHECKED_IN),
            grid_reservation(2, date(2024, 1, 2), date(2024, 1, 2), ReservationStatus.RESERVED,
                             kind=ReservationKind.HOURLY),
        ]
        grid = build_availability([1], reservations, date(2024, 1, 1), date(2024, 1, 3))
        cell = grid["availability"][1]["2024-01-02"]
        assert cell["status"] == "occupied"
        assert cell["available"] is False
        assert len(cell["reservations"]) == 2

    def test_night_excludes_departure_day(self):
        reservations = [
            grid_reservation(1, date(2024, 1, 1), date(2024, 1, 3), ReservationStatus.RESERVED),
        ]
        grid = build_availability([1], reservations, date(2024, 1, 1), date(2024, 1, 3))
        row = grid["availability"][1]
        assert row["2024-01-02"]["status"] == "reserved"
        assert row["2024-01-03"]["status"] == "available"
        assert row["2024-01-03"]["available"] is True

    def test_completed_cell_is_available(self):
        reservations = [
            grid_reservation(1, date(2024, 1, 1), date(2024, 1, 2), ReservationStatus.COMPLETED),
        ]
        grid = build_availability([1], reservations, date(2024, 1, 1), date(2024, 1, 1))
        cell = grid["availability"][1]["2024-01-01"]
        assert cell["status"] == "completed"
        assert cell["available"] is True

    def test_unknown_room_ignored(self):
        reservations = [
            grid_reservation(1, date(2024, 1, 1), date(2024, 1, 2), ReservationStatus.RESERVED, room_id=99),
        ]
        grid = build_availability([1], reservations, date(2024, 1, 1), date(2024, 1, 1))
        assert list(grid["availability"]) == [1]
        assert grid["availability"][1]["2024-01-01"]["status"] == "available"
