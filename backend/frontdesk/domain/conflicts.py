"""
预订冲突判定（纯函数）

按预订类型区分规则，不是通用的区间重叠测试：
- 按晚 vs 按晚：[start, end) 重叠即冲突，首尾相接（一方 end == 另一方 start）允许
- 涉及钟点房的组合：预订时一律不冲突，互斥在入住时由房态保证
"""
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from frontdesk.models.ontology import ReservationKind


@dataclass(frozen=True)
class BookingWindow:
    """一个预订在某房间上占用的日期窗口"""
    room_id: int
    start: date
    end: date
    kind: ReservationKind
    reservation_id: Optional[int] = None
    code: str = ""


def conflicts_with(candidate: BookingWindow, existing: BookingWindow) -> bool:
    if candidate.room_id != existing.room_id:
        return False
    if candidate.kind != ReservationKind.NIGHT or existing.kind != ReservationKind.NIGHT:
        return False
    return candidate.start < existing.end and existing.start < candidate.end


def find_conflict(candidate: BookingWindow,
                  existing: Iterable[BookingWindow]) -> Optional[str]:
    """
    返回第一条冲突原因；无冲突返回 None

    与候选预订 reservation_id 相同的记录（更新自身时）会被跳过。
    """
    for other in existing:
        if candidate.reservation_id is not None and other.reservation_id == candidate.reservation_id:
            continue
        if conflicts_with(candidate, other):
            label = other.code or other.reservation_id
            return (
                f"房间已被预订 {label} 占用 "
                f"({other.start.isoformat()} 至 {other.end.isoformat()})"
            )
    return None
