"""
房间服务 - 本体操作层
管理 Room 和 Floor 对象
房态由预订推导，只有维修是人工覆盖；清洁确认推进 checked_out → completed
"""
from typing import Callable, List, Optional
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from frontdesk.database import atomic
from frontdesk.domain import lifecycle
from frontdesk.domain.lifecycle import ReservationEvent
from frontdesk.engine.event_bus import Event, event_bus
from frontdesk.errors import ConflictError, NotFoundError
from frontdesk.models.events import EventType, RoomCleanedData
from frontdesk.models.ontology import (
    Floor, LedgerEntry, Reservation, ReservationStatus, Room, RoomStatus
)
from frontdesk.models.schemas import FloorCreate, RoomCreate, RoomUpdate

logger = logging.getLogger(__name__)

# 存在这些状态的预订时房间不可删除
ROOM_DELETE_BLOCKING_STATUSES = (
    ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN, ReservationStatus.CHECKED_OUT,
)


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    # ============== 楼层操作 ==============

    def get_floors(self) -> List[Floor]:
        """获取所有楼层"""
        return self.db.query(Floor).order_by(Floor.number).all()

    def get_floor(self, floor_id: int) -> Floor:
        floor = self.db.query(Floor).filter(Floor.id == floor_id).first()
        if not floor:
            raise NotFoundError("楼层不存在")
        return floor

    def create_floor(self, data: FloorCreate) -> Floor:
        """创建楼层"""
        if self.db.query(Floor).filter(Floor.number == data.number).first():
            raise ConflictError(f"楼层 {data.number} 已存在")

        with atomic(self.db):
            floor = Floor(number=data.number)
            self.db.add(floor)
        self.db.refresh(floor)
        return floor

    def delete_floor(self, floor_id: int) -> bool:
        """删除楼层（有房间时拒绝）"""
        with atomic(self.db):
            floor = self.get_floor(floor_id)
            room_count = self.db.query(Room).filter(Room.floor == floor.number).count()
            if room_count > 0:
                raise ConflictError(f"该楼层下有 {room_count} 间房间，无法删除")
            self.db.delete(floor)
        return True

    # ============== 房间操作 ==============

    def get_rooms(self) -> List[Room]:
        """获取所有房间（按楼层、房号排序）"""
        return self.db.query(Room).order_by(Room.floor, Room.number).all()

    def get_room(self, room_id: int) -> Room:
        room = self.db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise NotFoundError("房间不存在")
        return room

    def get_room_detail(self, room: Room) -> dict:
        """房间信息 + 当前预订标记"""
        live = [r for r in room.reservations if r.deleted_at is None]
        return {
            "id": room.id,
            "number": room.number,
            "floor": room.floor,
            "type": room.type,
            "price_per_night": room.price_per_night,
            "status": room.status,
            "under_maintenance": room.under_maintenance,
            "has_active_reservation": any(
                r.status in (ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN) for r in live
            ),
            "has_checked_in_reservation": any(r.status == ReservationStatus.CHECKED_IN for r in live),
        }

    def _ensure_unique_number(self, number: str, room_id: Optional[int] = None) -> None:
        existing = self.db.query(Room).filter(Room.number == number).first()
        if existing and existing.id != room_id:
            raise ConflictError(f"房间号 {number} 已存在")

    def create_room(self, data: RoomCreate) -> Room:
        """创建房间，楼层号取自所选楼层"""
        self._ensure_unique_number(data.number)

        with atomic(self.db):
            floor = self.get_floor(data.floor_id)
            room = Room(
                number=data.number,
                floor=floor.number,
                type=data.type,
                price_per_night=data.price_per_night,
            )
            self.db.add(room)
        self.db.refresh(room)
        logger.info(f"Room {room.number} created on floor {room.floor}")
        return room

    def update_room(self, room_id: int, data: RoomUpdate) -> Room:
        """更新房间"""
        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("number"):
            self._ensure_unique_number(update_data["number"], room_id)

        with atomic(self.db):
            room = self.get_room(room_id)
            floor_id = update_data.pop("floor_id", None)
            if floor_id is not None:
                room.floor = self.get_floor(floor_id).number
            for key, value in update_data.items():
                if value is not None:
                    setattr(room, key, value)
        self.db.refresh(room)
        return room

    def delete_room(self, room_id: int) -> bool:
        """删除房间（有预订/在住/待清洁记录时拒绝）"""
        with atomic(self.db):
            room = self.get_room(room_id)
            blocking = self.db.query(Reservation).filter(
                Reservation.room_id == room_id,
                Reservation.status.in_(ROOM_DELETE_BLOCKING_STATUSES),
                Reservation.deleted_at.is_(None),
            ).count()
            if blocking:
                raise ConflictError("房间存在有效或待处理的预订，无法删除")
            # 已完成/已删除的预订和流水仍引用该房间，保留历史
            history = self.db.query(Reservation).filter(Reservation.room_id == room_id).count()
            history += self.db.query(LedgerEntry).filter(LedgerEntry.room_id == room_id).count()
            if history:
                raise ConflictError("房间存在历史预订或收银记录，无法删除")
            self.db.delete(room)
        logger.info(f"Room {room_id} deleted")
        return True

    # ============== 房态操作 ==============

    def mark_clean(self, room_id: int, operator_id: Optional[int] = None) -> Room:
        """
        清洁确认：待清洁房间的已退房预订推进为 completed，房间恢复空闲
        （已删除但未清洁的住宿只清除房间上的待清洁标记）
        """
        with atomic(self.db):
            room = self.db.query(Room).filter(Room.id == room_id).with_for_update().first()
            if not room:
                raise NotFoundError("房间不存在")
            if room.status != RoomStatus.CLEANING:
                raise ConflictError("房间不在待清洁状态", {"room_status": room.status.value})

            checked_out = self.db.query(Reservation).filter(
                Reservation.room_id == room_id,
                Reservation.status == ReservationStatus.CHECKED_OUT,
                Reservation.deleted_at.is_(None),
            ).order_by(Reservation.updated_at.desc(), Reservation.id.desc()).all()
            for reservation in checked_out:
                lifecycle.advance(reservation, ReservationEvent.CLEAN_COMPLETE)
            room.pending_cleaning = False
            latest_id = checked_out[0].id if checked_out else None

        self.db.refresh(room)
        logger.info(f"Room {room.number} marked clean")

        self._publish_event(Event(
            event_type=EventType.ROOM_CLEANED,
            timestamp=datetime.now(),
            data=RoomCleanedData(
                room_id=room.id,
                room_number=room.number,
                reservation_id=latest_id,
                operator_id=operator_id,
            ).to_dict(),
            source="room_service"
        ))
        return room

    def set_maintenance(self, room_id: int, enabled: bool) -> Room:
        """维修标记（人工覆盖房态）；在住房间不能进入维修"""
        with atomic(self.db):
            room = self.db.query(Room).filter(Room.id == room_id).with_for_update().first()
            if not room:
                raise NotFoundError("房间不存在")
            if enabled and room.status == RoomStatus.OCCUPIED:
                raise ConflictError("房间有在住客人，无法设为维修")
            room.under_maintenance = enabled
        self.db.refresh(room)
        logger.info(f"Room {room.number} maintenance {'on' if enabled else 'off'}")
        return room
