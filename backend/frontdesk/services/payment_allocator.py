"""
付款分配服务 - 对预订余额的通用付款按瀑布顺序拆入各欠款桶
即时付款（销售当下付清）通过 origin 字段识别，不解析分类文本
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from frontdesk.database import atomic
from frontdesk.domain import lifecycle
from frontdesk.domain.allocation import (
    BUCKET_ORDER, BucketState, allocate_payment, generic_pool, intersect
)
from frontdesk.domain.lifecycle import ReservationEvent
from frontdesk.domain.money import ALLOCATION_EPSILON, OVERPAYMENT_TOLERANCE, ZERO, is_whole
from frontdesk.engine.event_bus import Event, event_bus
from frontdesk.errors import NotFoundError, OverpaymentError, ValidationError
from frontdesk.models.events import EventType, PaymentReceivedData
from frontdesk.models.ontology import (
    DebtBucket, LedgerEntry, LedgerFlow, LedgerKind, PaymentMethod, PaymentOrigin, Reservation
)

logger = logging.getLogger(__name__)

# 通用付款分桶后的分类标签
GENERIC_PAYMENT_CATEGORIES = {
    DebtBucket.ROOM: "Pago Reserva (Habitación)",
    DebtBucket.MAK: "Pago Venta Mak",
    DebtBucket.MAKALA: "Pago Venta Makala",
}

GENERIC_PAYMENT_DESCRIPTIONS = {
    DebtBucket.ROOM: "Pago Habitación",
    DebtBucket.MAK: "Pago Consumo Mak (Diferido)",
    DebtBucket.MAKALA: "Pago Consumo Makala (Diferido)",
}


def bucket_states(reservation: Reservation) -> List[BucketState]:
    """由预订流水计算三个桶的应付与即时已付"""
    gross = {bucket: ZERO for bucket in BUCKET_ORDER}
    immediate = {bucket: ZERO for bucket in BUCKET_ORDER}
    gross[DebtBucket.ROOM] = reservation.total_amount or ZERO

    for entry in reservation.ledger_entries:
        if entry.method == PaymentMethod.ROOM_CHARGE and entry.bucket in (DebtBucket.MAK, DebtBucket.MAKALA):
            gross[entry.bucket] += entry.amount
        elif entry.is_payment and entry.origin == PaymentOrigin.IMMEDIATE and entry.bucket is not None:
            immediate[entry.bucket] += entry.amount

    # 房费桶没有即时付款概念
    immediate[DebtBucket.ROOM] = ZERO
    return [BucketState(b, gross[b], immediate[b]) for b in BUCKET_ORDER]


class PaymentAllocator:
    """付款分配服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    def _get_reservation(self, reservation_id: int, lock: bool = False) -> Reservation:
        query = self.db.query(Reservation).filter(
            Reservation.id == reservation_id,
            Reservation.deleted_at.is_(None),
        )
        if lock:
            query = query.with_for_update().populate_existing()
        reservation = query.first()
        if not reservation:
            raise NotFoundError("预订不存在")
        return reservation

    def statement(self, reservation_id: int) -> dict:
        """
        分桶账单：每个桶的应付、即时已付、净额、通用付款已覆盖、剩余
        """
        reservation = self._get_reservation(reservation_id)
        buckets = bucket_states(reservation)
        paid = reservation.paid_amount or ZERO
        pool = generic_pool(paid, buckets)
        applied = intersect(buckets, ZERO, pool)

        return {
            "reservation_id": reservation.id,
            "total_debt": (reservation.total_amount or ZERO) + reservation.consumption_total,
            "paid_amount": paid,
            "debt": reservation.debt,
            "generic_pool": pool,
            "buckets": [
                {
                    "bucket": b.bucket,
                    "gross": b.gross,
                    "immediate_paid": b.immediate,
                    "net": b.net,
                    "generic_applied": applied[b.bucket],
                    "remaining": b.net - applied[b.bucket],
                }
                for b in buckets
            ],
        }

    def apply(self, reservation_id: int, amount: Decimal,
              method: PaymentMethod = PaymentMethod.CASH,
              operator_id: Optional[int] = None,
              description: Optional[str] = None,
              payment_evidence: Optional[str] = None) -> Tuple[Reservation, Dict[DebtBucket, Decimal]]:
        """
        登记一笔通用付款

        Returns:
            (预订, {桶: 拆分金额})，只包含实际落账的桶
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("付款金额必须大于 0")
        if not is_whole(amount):
            raise ValidationError("付款金额必须为整数")
        if method == PaymentMethod.ROOM_CHARGE:
            raise ValidationError("付款方式不能为挂房账")

        with atomic(self.db):
            reservation = self._get_reservation(reservation_id, lock=True)
            lifecycle.ensure_allowed(reservation, ReservationEvent.ADD_PAYMENT)

            paid = reservation.paid_amount or ZERO
            total_debt = (reservation.total_amount or ZERO) + reservation.consumption_total
            if paid + amount > total_debt + OVERPAYMENT_TOLERANCE:
                raise OverpaymentError(
                    f"付款金额超过剩余欠款 {reservation.debt:.2f}", reservation.debt
                )

            buckets = bucket_states(reservation)
            split = allocate_payment(buckets, generic_pool(paid, buckets), amount)

            written: Dict[DebtBucket, Decimal] = {}
            now = datetime.utcnow()
            for bucket in BUCKET_ORDER:
                portion = split[bucket]
                if portion <= ALLOCATION_EPSILON:
                    continue
                entry = LedgerEntry(
                    flow=LedgerFlow.INCOME,
                    kind=LedgerKind.RESERVATION_PAYMENT,
                    bucket=bucket,
                    origin=PaymentOrigin.GENERIC,
                    category=GENERIC_PAYMENT_CATEGORIES[bucket],
                    amount=portion,
                    method=method,
                    payment_evidence=payment_evidence,
                    description=description or GENERIC_PAYMENT_DESCRIPTIONS[bucket],
                    date=now,
                    room_id=reservation.room_id,
                    created_by=operator_id,
                )
                entry.reservation = reservation
                self.db.add(entry)
                written[bucket] = portion

            reservation.paid_amount = paid + amount

        self.db.refresh(reservation)
        logger.info(
            f"Payment {amount} on reservation {reservation.reservation_code}: "
            + ", ".join(f"{b.value}={v}" for b, v in written.items())
        )

        self._publish_event(Event(
            event_type=EventType.PAYMENT_RECEIVED,
            timestamp=datetime.now(),
            data=PaymentReceivedData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                amount=float(amount),
                method=method.value,
                allocations={b.value: float(v) for b, v in written.items()},
                paid_amount=float(reservation.paid_amount),
                operator_id=operator_id,
            ).to_dict(),
            source="payment_allocator"
        ))

        return reservation, written
