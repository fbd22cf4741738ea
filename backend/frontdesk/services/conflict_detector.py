"""
预订冲突检测服务
在写事务内锁定房间行，再与该房间的有效预订比较
"""
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from frontdesk.domain.conflicts import BookingWindow, find_conflict
from frontdesk.errors import ConflictError, NotFoundError
from frontdesk.models.ontology import Reservation, ReservationKind, ReservationStatus, Room

# 参与冲突判定的预订状态（已退房/已完成/已取消不再占用日期）
BLOCKING_STATUSES = (ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN)


class ConflictDetector:
    """预订冲突检测"""

    def __init__(self, db: Session):
        self.db = db

    def lock_room(self, room_id: int) -> Room:
        """
        SELECT ... FOR UPDATE 锁定房间行

        同一房间的并发预订写入在此串行化（SQLite 下退化为数据库级写锁）。
        """
        room = self.db.query(Room).filter(Room.id == room_id).with_for_update().first()
        if not room:
            raise NotFoundError("房间不存在")
        return room

    def existing_windows(self, room_id: int) -> List[BookingWindow]:
        rows = self.db.query(Reservation).filter(
            Reservation.room_id == room_id,
            Reservation.status.in_(BLOCKING_STATUSES),
            Reservation.deleted_at.is_(None),
        ).all()
        return [
            BookingWindow(
                room_id=r.room_id, start=r.start_date, end=r.end_date,
                kind=r.kind, reservation_id=r.id, code=r.reservation_code,
            )
            for r in rows
        ]

    def check(self, room_id: int, start: date, end: date, kind: ReservationKind,
              exclude_id: Optional[int] = None) -> None:
        """有冲突则抛出 ConflictError，否则无返回"""
        candidate = BookingWindow(
            room_id=room_id, start=start, end=end, kind=kind, reservation_id=exclude_id
        )
        reason = find_conflict(candidate, self.existing_windows(room_id))
        if reason:
            raise ConflictError(reason)
