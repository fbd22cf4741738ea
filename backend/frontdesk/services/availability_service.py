"""
房态日历服务 - 读侧投影，不开启写事务
"""
from datetime import date
from typing import Any, Dict

from sqlalchemy.orm import Session, joinedload

from frontdesk.config import settings
from frontdesk.domain.availability import GridReservation, build_availability
from frontdesk.errors import ValidationError
from frontdesk.models.ontology import Floor, Reservation, ReservationStatus, Room


class AvailabilityService:
    """房态日历"""

    def __init__(self, db: Session):
        self.db = db

    def get_availability(self, start_date: date, end_date: date) -> Dict[str, Any]:
        """
        获取 [start_date, end_date] 的房态网格

        Returns:
            {rooms, dates, availability{room_id: {date: {status, available, reservations}}}, floors}
        """
        if start_date > end_date:
            raise ValidationError("开始日期不能晚于结束日期")
        days = (end_date - start_date).days + 1
        if days > settings.MAX_AVAILABILITY_DAYS:
            raise ValidationError(f"查询范围不能超过 {settings.MAX_AVAILABILITY_DAYS} 天")

        rooms = self.db.query(Room).order_by(Room.floor, Room.number).all()
        floors = self.db.query(Floor).order_by(Floor.number).all()

        # 与窗口有交集的未删除预订；钟点房 start == end，同样满足该条件
        reservations = self.db.query(Reservation).options(
            joinedload(Reservation.guest)
        ).filter(
            Reservation.deleted_at.is_(None),
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.start_date <= end_date,
            Reservation.end_date >= start_date,
        ).all()

        grid = build_availability(
            [room.id for room in rooms],
            [
                GridReservation(
                    id=r.id,
                    room_id=r.room_id,
                    code=r.reservation_code,
                    guest_name=r.guest.name,
                    start_date=r.start_date,
                    end_date=r.end_date,
                    kind=r.kind,
                    status=r.status,
                    start_time=r.start_time,
                    end_time=r.end_time,
                )
                for r in reservations
            ],
            start_date,
            end_date,
        )

        return {
            "rooms": [
                {
                    "id": room.id,
                    "number": room.number,
                    "floor": room.floor,
                    "type": room.type,
                    "price_per_night": room.price_per_night,
                    "status": room.status.value,
                }
                for room in rooms
            ],
            "dates": grid["dates"],
            "availability": grid["availability"],
            "floors": [{"id": f.id, "number": f.number} for f in floors],
        }
