"""
房态日历服务测试
"""
import pytest
from datetime import timedelta

from frontdesk.config import settings
from frontdesk.errors import ValidationError
from frontdesk.services.availability_service import AvailabilityService
from frontdesk.services.reservation_service import ReservationService


class TestAvailabilityService:

    def test_grid_reflects_reservations(self, db_session, checked_in_reservation, sample_floor, sample_room,
                                        sample_room_102, make_reservation, stay_dates):
        make_reservation(sample_room_102, doc_number="13131313", name="Luis")
        start = stay_dates[0]
        result = AvailabilityService(db_session).get_availability(start, start + timedelta(days=3))

        assert [r["number"] for r in result["rooms"]] == ["101", "102"]
        assert result["rooms"][0]["status"] == "occupied"
        assert result["floors"] == [{"id": sample_floor.id, "number": 1}]
        assert len(result["dates"]) == 4

        row_101 = result["availability"][sample_room.id]
        row_102 = result["availability"][sample_room_102.id]
        assert row_101[start.isoformat()]["status"] == "occupied"
        assert row_102[start.isoformat()]["status"] == "reserved"
        assert row_102[start.isoformat()]["reservations"][0]["guest_name"] == "Luis"
        assert row_101[stay_dates[1].isoformat()]["status"] == "available"

    def test_deleted_reservations_hidden(self, db_session, sample_room, make_reservation, stay_dates):
        reservation = make_reservation(sample_room)
        ReservationService(db_session).delete_reservation(reservation.id)
        result = AvailabilityService(db_session).get_availability(stay_dates[0], stay_dates[1])
        cell = result["availability"][sample_room.id][stay_dates[0].isoformat()]
        assert cell["status"] == "available"
        assert cell["reservations"] == []

    def test_inverted_range_rejected(self, db_session, stay_dates):
        with pytest.raises(ValidationError):
            AvailabilityService(db_session).get_availability(stay_dates[1], stay_dates[0])

    def test_range_too_long_rejected(self, db_session, stay_dates):
        start = stay_dates[0]
        with pytest.raises(ValidationError):
            AvailabilityService(db_session).get_availability(
                start, start + timedelta(days=settings.MAX_AVAILABILITY_DAYS)
            )
