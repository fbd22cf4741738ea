"""
房间与楼层服务测试
"""
import pytest
from decimal import Decimal

from frontdesk.errors import ConflictError, NotFoundError
from frontdesk.models.events import EventType
from frontdesk.models.ontology import ReservationStatus, RoomStatus
from frontdesk.models.schemas import FloorCreate, RoomCreate, RoomUpdate
from frontdesk.services.payment_allocator import PaymentAllocator
from frontdesk.services.reservation_service import ReservationService
from frontdesk.services.room_service import RoomService


@pytest.fixture
def rooms(db_session, publisher):
    return RoomService(db_session, event_publisher=publisher)


class TestFloors:

    def test_create_and_list(self, rooms):
        rooms.create_floor(FloorCreate(number=2))
        rooms.create_floor(FloorCreate(number=1))
        assert [f.number for f in rooms.get_floors()] == [1, 2]

    def test_duplicate_floor(self, rooms, sample_floor):
        with pytest.raises(ConflictError):
            rooms.create_floor(FloorCreate(number=1))

    def test_delete_floor_with_rooms_rejected(self, rooms, sample_room, sample_floor):
        with pytest.raises(ConflictError):
            rooms.delete_floor(sample_floor.id)

    def test_delete_empty_floor(self, rooms):
        floor = rooms.create_floor(FloorCreate(number=5))
        assert rooms.delete_floor(floor.id)
        assert rooms.get_floors() == []


class TestRooms:

    def test_create_room_takes_floor_number(self, rooms, sample_floor):
        room = rooms.create_room(RoomCreate(
            number="105", type="Suite", price_per_night=Decimal("180"), floor_id=sample_floor.id,
        ))
        assert room.floor == 1
        assert room.status == RoomStatus.AVAILABLE

    def test_duplicate_number(self, rooms, sample_room, sample_floor):
        with pytest.raises(ConflictError):
            rooms.create_room(RoomCreate(
                number="101", type="Suite", price_per_night=Decimal("1"), floor_id=sample_floor.id,
            ))

    def test_unknown_floor(self, rooms):
        with pytest.raises(NotFoundError):
            rooms.create_room(RoomCreate(number="900", type="Suite", price_per_night=Decimal("1"), floor_id=404))

    def test_update_room(self, rooms, sample_room):
        floor = rooms.create_floor(FloorCreate(number=3))
        room = rooms.update_room(sample_room.id, RoomUpdate(floor_id=floor.id, price_per_night=Decimal("110")))
        assert room.floor == 3
        assert room.price_per_night == Decimal("110")
        assert room.number == "101"

    def test_list_ordered_by_floor_and_number(self, rooms, sample_room, sample_room_102):
        floor = rooms.create_floor(FloorCreate(number=0))
        rooms.create_room(RoomCreate(number="001", type="Single", price_per_night=Decimal("50"), floor_id=floor.id))
        assert [r.number for r in rooms.get_rooms()] == ["001", "101", "102"]

    def test_detail_flags(self, rooms, checked_in_reservation, sample_room, sample_room_102, make_reservation):
        make_reservation(sample_room_102, doc_number="12121212", name="Reserva")
        occupied = rooms.get_room_detail(rooms.get_room(sample_room.id))
        reserved = rooms.get_room_detail(rooms.get_room(sample_room_102.id))

        assert occupied["status"] == RoomStatus.OCCUPIED
        assert occupied["has_checked_in_reservation"] is True
        assert reserved["status"] == RoomStatus.AVAILABLE
        assert reserved["has_active_reservation"] is True
        assert reserved["has_checked_in_reservation"] is False

    def test_delete_room_with_reservation_rejected(self, rooms, sample_room, make_reservation):
        make_reservation(sample_room)
        with pytest.raises(ConflictError):
            rooms.delete_room(sample_room.id)

    def test_delete_unused_room(self, rooms, sample_room):
        assert rooms.delete_room(sample_room.id)
        with pytest.raises(NotFoundError):
            rooms.get_room(sample_room.id)


class TestHousekeeping:

    def test_mark_clean_requires_cleaning_status(self, rooms, sample_room):
        with pytest.raises(ConflictError) as exc:
            rooms.mark_clean(sample_room.id)
        assert exc.value.extra["room_status"] == "available"

    def test_mark_clean_completes_checked_out_stay(self, rooms, checked_in_reservation, db_session, published):
        PaymentAllocator(db_session).apply(checked_in_reservation.id, Decimal("198"))
        ReservationService(db_session).check_out(checked_in_reservation.id)

        room = rooms.mark_clean(checked_in_reservation.room_id)
        db_session.refresh(checked_in_reservation)

        assert room.status == RoomStatus.AVAILABLE
        assert checked_in_reservation.status == ReservationStatus.COMPLETED
        assert published[-1].event_type == EventType.ROOM_CLEANED
        assert published[-1].data["reservation_id"] == checked_in_reservation.id

    def test_maintenance_toggle(self, rooms, sample_room):
        assert rooms.set_maintenance(sample_room.id, True).status == RoomStatus.MAINTENANCE
        assert rooms.set_maintenance(sample_room.id, False).status == RoomStatus.AVAILABLE

    def test_maintenance_on_occupied_room_rejected(self, rooms, checked_in_reservation):
        with pytest.raises(ConflictError):
            rooms.set_maintenance(checked_in_reservation.room_id, True)
