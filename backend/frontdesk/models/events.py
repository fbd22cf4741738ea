"""
领域事件定义 (Domain Events)
服务在事务提交后发布，通知处理器只消费这些数据，不回查数据库
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List


class EventType(str, Enum):
    """事件类型枚举"""
    # 预订相关
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_UPDATED = "reservation.updated"
    RESERVATION_DELETED = "reservation.deleted"

    # 入住/退房
    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"

    # 房间相关
    ROOM_CLEANED = "room.cleaned"

    # 账务相关
    PAYMENT_RECEIVED = "payment.received"
    CONSUMPTION_CHARGED = "consumption.charged"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result


@dataclass
class ReservationCreatedData(BaseEventData):
    """预订创建事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    room_id: int = 0
    room_number: str = ""
    guest_name: str = ""
    start_date: str = ""
    end_date: str = ""
    total_amount: float = 0.0
    prepaid_amount: float = 0.0
    operator_id: Optional[int] = None


@dataclass
class GuestCheckedInData(BaseEventData):
    """客人入住事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    guest_id: int = 0
    guest_name: str = ""
    guest_phone: str = ""
    guest_email: str = ""
    guest_doc_number: str = ""
    visit_count: int = 0
    room_id: int = 0
    room_number: str = ""
    start_date: str = ""
    end_date: str = ""
    operator_id: Optional[int] = None


@dataclass
class GuestCheckedOutData(BaseEventData):
    """客人退房事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    guest_name: str = ""
    guest_phone: str = ""
    room_id: int = 0
    room_number: str = ""
    total_amount: float = 0.0
    consumption_total: float = 0.0
    paid_amount: float = 0.0
    operator_id: Optional[int] = None


@dataclass
class ReservationUpdatedData(BaseEventData):
    """预订修改事件数据（字段级变更记录）"""
    reservation_id: int = 0
    reservation_code: str = ""
    changed_fields: List[Dict[str, Any]] = field(default_factory=list)
    updated_by: str = ""
    operator_id: Optional[int] = None


@dataclass
class ReservationDeletedData(BaseEventData):
    """预订删除事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    previous_status: str = ""
    operator_id: Optional[int] = None


@dataclass
class RoomCleanedData(BaseEventData):
    """清洁完成事件数据"""
    room_id: int = 0
    room_number: str = ""
    reservation_id: Optional[int] = None
    operator_id: Optional[int] = None


@dataclass
class PaymentReceivedData(BaseEventData):
    """付款事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    amount: float = 0.0
    method: str = ""
    allocations: Dict[str, float] = field(default_factory=dict)
    paid_amount: float = 0.0
    operator_id: Optional[int] = None


@dataclass
class ConsumptionChargedData(BaseEventData):
    """挂账消费事件数据"""
    reservation_id: int = 0
    reservation_code: str = ""
    entry_id: int = 0
    bucket: str = ""
    amount: float = 0.0
    operator_id: Optional[int] = None
