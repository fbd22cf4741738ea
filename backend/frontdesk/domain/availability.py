"""
房态日历网格（纯读侧投影）

每个 (房间, 日期) 单元格可能落入多条预订，显示状态取优先级最高者：
available < completed < reserved < cleaning < occupied
"""
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from frontdesk.models.ontology import ReservationKind, ReservationStatus


class DisplayStatus(str, Enum):
    """日历单元格显示状态"""
    AVAILABLE = "available"
    COMPLETED = "completed"
    RESERVED = "reserved"
    CLEANING = "cleaning"
    OCCUPIED = "occupied"


# 从低到高
DISPLAY_STATUS_PRIORITY = (
    DisplayStatus.AVAILABLE,
    DisplayStatus.COMPLETED,
    DisplayStatus.RESERVED,
    DisplayStatus.CLEANING,
    DisplayStatus.OCCUPIED,
)


def priority(status: DisplayStatus) -> int:
    return DISPLAY_STATUS_PRIORITY.index(status)


def merge(current: DisplayStatus, incoming: DisplayStatus) -> DisplayStatus:
    """保留优先级较高的显示状态"""
    return max(current, incoming, key=priority)


def display_status_for(status: ReservationStatus) -> DisplayStatus:
    """预订生命周期状态 → 显示状态"""
    if status == ReservationStatus.CHECKED_IN:
        return DisplayStatus.OCCUPIED
    if status == ReservationStatus.CHECKED_OUT:
        return DisplayStatus.CLEANING
    if status == ReservationStatus.COMPLETED:
        return DisplayStatus.COMPLETED
    return DisplayStatus.RESERVED


@dataclass(frozen=True)
class GridReservation:
    """网格中展示的预订摘要"""
    id: int
    room_id: int
    code: str
    guest_name: str
    start_date: date
    end_date: date
    kind: ReservationKind
    status: ReservationStatus
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    def covers(self, day: date) -> bool:
        """按晚覆盖 [start, end)；钟点房只覆盖 start 当天"""
        if self.kind == ReservationKind.HOURLY:
            return day == self.start_date
        return self.start_date <= day < self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reservation_code": self.code,
            "guest_name": self.guest_name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "kind": self.kind.value,
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass
class GridCell:
    status: DisplayStatus = DisplayStatus.AVAILABLE
    reservations: List[GridReservation] = field(default_factory=list)

    def add(self, reservation: GridReservation) -> None:
        self.reservations.append(reservation)
        self.status = merge(self.status, display_status_for(reservation.status))

    @property
    def available(self) -> bool:
        """无预订，或所有预订都已完成"""
        return all(r.status == ReservationStatus.COMPLETED for r in self.reservations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "available": self.available,
            "reservations": [r.to_dict() for r in self.reservations],
        }


def date_range(start: date, end: date) -> List[date]:
    """闭区间 [start, end] 的每一天"""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def build_availability(room_ids: Iterable[int],
                       reservations: Iterable[GridReservation],
                       start: date,
                       end: date) -> Dict[str, Any]:
    """
    构建网格

    Returns:
        {"dates": [iso...], "availability": {room_id: {iso_date: cell}}}
    """
    days = date_range(start, end)
    grid: Dict[int, Dict[date, GridCell]] = {
        room_id: {day: GridCell() for day in days} for room_id in room_ids
    }

    for reservation in reservations:
        row = grid.get(reservation.room_id)
        if row is None:
            continue
        for day in days:
            if reservation.covers(day):
                row[day].add(reservation)

    return {
        "dates": [d.isoformat() for d in days],
        "availability": {
            room_id: {day.isoformat(): cell.to_dict() for day, cell in row.items()}
            for room_id, row in grid.items()
        },
    }
