"""
收银服务 - 本体操作层
管理 LedgerEntry 对象：Makala/Mak 销售、支出、流水查询与管理员修正

卖给在住房间的销售拆成两条：一条挂房账（增加消费），
若当场付款再加一条即时付款（origin=immediate，同桶），两者在分配器中互相抵消。
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo
import logging

from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.database import atomic
from frontdesk.domain import lifecycle
from frontdesk.domain.lifecycle import ReservationEvent
from frontdesk.domain.money import OVERPAYMENT_TOLERANCE, ZERO
from frontdesk.engine.event_bus import Event, event_bus
from frontdesk.errors import ConflictError, NotFoundError, OverpaymentError, ValidationError
from frontdesk.models.events import ConsumptionChargedData, EventType
from frontdesk.models.ontology import (
    DebtBucket, LedgerEntry, LedgerFlow, LedgerKind, PaymentMethod, PaymentOrigin,
    Reservation, ReservationStatus, Room
)
from frontdesk.models.schemas import ExpenseCreate, LedgerEntryUpdate, MakalaSaleCreate, MakSaleCreate
from frontdesk.services.inventory_service import InventoryService, PricedLine, cart_total

logger = logging.getLogger(__name__)

SALE_CATEGORIES = {
    LedgerKind.MAKALA_SALE: "Venta Makala",
    LedgerKind.MAK_SALE: "Venta Mak",
}

IMMEDIATE_PAYMENT_CATEGORIES = {
    DebtBucket.MAKALA: "Pago Inmediato (Venta Makala)",
    DebtBucket.MAK: "Pago Inmediato (Venta Mak)",
}

SALE_BUCKETS = {
    LedgerKind.MAKALA_SALE: DebtBucket.MAKALA,
    LedgerKind.MAK_SALE: DebtBucket.MAK,
}

# 带商品明细、修改时需要冲回库存的流水
PRODUCT_KINDS = (LedgerKind.MAK_SALE, LedgerKind.CONSUMPTION_CHARGE)


def local_day_bounds(start: date, end: date) -> tuple:
    """酒店时区的 [start 00:00, end 23:59:59.999999] 转为库内 UTC naive 时间"""
    tz = ZoneInfo(settings.HOTEL_TIMEZONE)
    lo = datetime.combine(start, time.min, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
    hi = datetime.combine(end, time.max, tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)
    return lo, hi


class LedgerService:
    """收银服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self.inventory = InventoryService(db)

    # ============== 查询 ==============

    def get_entry(self, entry_id: int) -> LedgerEntry:
        entry = self.db.query(LedgerEntry).filter(LedgerEntry.id == entry_id).first()
        if not entry:
            raise NotFoundError("流水不存在")
        return entry

    def get_entries(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                    flow: Optional[LedgerFlow] = None,
                    kind: Optional[LedgerKind] = None) -> List[LedgerEntry]:
        """流水列表（最新在前），日期按酒店时区解释"""
        query = self.db.query(LedgerEntry)
        if start_date and end_date:
            lo, hi = local_day_bounds(start_date, end_date)
            query = query.filter(LedgerEntry.date >= lo, LedgerEntry.date <= hi)
        if flow:
            query = query.filter(LedgerEntry.flow == flow)
        if kind:
            query = query.filter(LedgerEntry.kind == kind)
        return query.order_by(LedgerEntry.date.desc(), LedgerEntry.id.desc()).all()

    def get_summary(self, start_date: date, end_date: date) -> dict:
        """收银汇总：按支付方式的收入、支出、挂账、现金净额"""
        if start_date > end_date:
            raise ValidationError("开始日期不能晚于结束日期")

        income_by_method: Dict[str, Decimal] = {m.value: ZERO for m in PaymentMethod if m != PaymentMethod.ROOM_CHARGE}
        total_expense = ZERO
        room_charges = ZERO
        for entry in self.get_entries(start_date, end_date):
            if entry.flow == LedgerFlow.INCOME:
                income_by_method[entry.method.value] = income_by_method.get(entry.method.value, ZERO) + entry.amount
            elif entry.flow == LedgerFlow.EXPENSE:
                total_expense += entry.amount
            elif entry.flow == LedgerFlow.CHARGE:
                room_charges += entry.amount

        total_income = sum(income_by_method.values(), ZERO)
        return {
            "start_date": start_date,
            "end_date": end_date,
            "income_by_method": income_by_method,
            "total_income": total_income,
            "total_expense": total_expense,
            "room_charges": room_charges,
            "net_cash": income_by_method[PaymentMethod.CASH.value] - total_expense,
        }

    def entry_to_dict(self, entry: LedgerEntry) -> dict:
        return {
            "id": entry.id,
            "reservation_id": entry.reservation_id,
            "room_id": entry.room_id,
            "room_number": entry.room.number if entry.room else None,
            "flow": entry.flow,
            "kind": entry.kind,
            "bucket": entry.bucket,
            "origin": entry.origin,
            "category": entry.category,
            "amount": entry.amount,
            "method": entry.method,
            "payment_evidence": entry.payment_evidence,
            "description": entry.description,
            "date": entry.date,
            "created_by_name": entry.creator.name if entry.creator else None,
            "products": [
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "unit_price": line.unit_price,
                    "quantity": line.quantity,
                    "subtotal": line.subtotal,
                }
                for line in entry.product_lines
            ],
        }

    def find_active_reservation(self, room_id: int) -> Optional[Reservation]:
        """房间当前在住的预订"""
        return self.db.query(Reservation).filter(
            Reservation.room_id == room_id,
            Reservation.status == ReservationStatus.CHECKED_IN,
            Reservation.deleted_at.is_(None),
        ).order_by(Reservation.start_date.desc()).with_for_update().first()

    # ============== 销售 ==============

    def _record_sale(self, kind: LedgerKind, amount: Decimal, method: PaymentMethod,
                     room_id: Optional[int], description: Optional[str],
                     payment_evidence: Optional[str], operator_id: Optional[int],
                     priced: Optional[List[PricedLine]] = None) -> LedgerEntry:
        """在事务内写销售流水；有在住预订时拆为挂账 + 即时付款"""
        reservation = None
        if room_id is not None:
            room = self.db.query(Room).filter(Room.id == room_id).first()
            if not room:
                raise NotFoundError("房间不存在")
            reservation = self.find_active_reservation(room_id)
            if reservation is None and method == PaymentMethod.ROOM_CHARGE:
                raise ConflictError("该房间没有在住预订，无法挂房账")
        elif method == PaymentMethod.ROOM_CHARGE:
            raise ValidationError("挂房账必须指定房间")

        bucket = SALE_BUCKETS[kind]
        now = datetime.utcnow()
        if reservation is not None:
            lifecycle.ensure_allowed(reservation, ReservationEvent.ADD_CHARGE)
            sale = LedgerEntry(
                flow=LedgerFlow.CHARGE,
                kind=kind,
                bucket=bucket,
                category=SALE_CATEGORIES[kind],
                amount=amount,
                method=PaymentMethod.ROOM_CHARGE,
                room_id=room_id,
                description=description,
                date=now,
                created_by=operator_id,
            )
            sale.reservation = reservation
        else:
            sale = LedgerEntry(
                flow=LedgerFlow.INCOME,
                kind=kind,
                category=SALE_CATEGORIES[kind],
                amount=amount,
                method=method,
                room_id=room_id,
                payment_evidence=payment_evidence,
                description=description,
                date=now,
                created_by=operator_id,
            )
        if priced:
            sale.product_lines = [line.to_ledger_line() for line in priced]
        self.db.add(sale)
        self.db.flush()

        if reservation is not None and method != PaymentMethod.ROOM_CHARGE:
            payment = LedgerEntry(
                flow=LedgerFlow.INCOME,
                kind=LedgerKind.RESERVATION_PAYMENT,
                bucket=bucket,
                origin=PaymentOrigin.IMMEDIATE,
                category=IMMEDIATE_PAYMENT_CATEGORIES[bucket],
                amount=amount,
                method=method,
                room_id=room_id,
                payment_evidence=payment_evidence,
                description=f"Pago por consumo: {description or SALE_CATEGORIES[kind]}",
                date=now,
                created_by=operator_id,
            )
            payment.reservation = reservation
            self.db.add(payment)
            reservation.paid_amount = (reservation.paid_amount or ZERO) + amount

        if priced:
            self.inventory.sell(priced, sale.id, operator_id,
                                notes=f"{SALE_CATEGORIES[kind]} - {description or 'Sin descripción'}")
        return sale

    def _after_sale(self, sale: LedgerEntry, operator_id: Optional[int]) -> None:
        self.db.refresh(sale)
        logger.info(
            f"{sale.kind.value} {sale.amount} recorded"
            + (f" on reservation {sale.reservation.reservation_code}" if sale.reservation else "")
        )
        if sale.reservation is not None:
            self._publish_event(Event(
                event_type=EventType.CONSUMPTION_CHARGED,
                timestamp=datetime.now(),
                data=ConsumptionChargedData(
                    reservation_id=sale.reservation.id,
                    reservation_code=sale.reservation.reservation_code,
                    entry_id=sale.id,
                    bucket=sale.bucket.value,
                    amount=float(sale.amount),
                    operator_id=operator_id,
                ).to_dict(),
                source="ledger_service"
            ))

    def create_makala_sale(self, data: MakalaSaleCreate, operator_id: Optional[int] = None) -> LedgerEntry:
        """Makala 销售（服务类，无库存）"""
        if data.amount <= 0:
            raise ValidationError("金额必须大于 0")

        with atomic(self.db):
            sale = self._record_sale(
                LedgerKind.MAKALA_SALE, data.amount, data.method, data.room_id,
                data.description, data.payment_evidence, operator_id,
            )
        self._after_sale(sale, operator_id)
        return sale

    def create_mak_sale(self, data: MakSaleCreate, operator_id: Optional[int] = None) -> LedgerEntry:
        """Mak 销售（商品，整单扣库存）"""
        if not data.products:
            raise ValidationError("未选择商品")

        with atomic(self.db):
            priced = self.inventory.quote(data.products)
            sale = self._record_sale(
                LedgerKind.MAK_SALE, cart_total(priced), data.method, data.room_id,
                data.description, data.payment_evidence, operator_id, priced,
            )
        self._after_sale(sale, operator_id)
        return sale

    def create_expense(self, data: ExpenseCreate, operator_id: Optional[int] = None) -> LedgerEntry:
        """支出（一律现金）"""
        if data.amount <= 0:
            raise ValidationError("金额必须大于 0")
        if not data.category or not data.category.strip():
            raise ValidationError("支出类别不能为空")

        with atomic(self.db):
            entry = LedgerEntry(
                flow=LedgerFlow.EXPENSE,
                kind=LedgerKind.EXPENSE,
                category=data.category.strip(),
                amount=data.amount,
                method=PaymentMethod.CASH,
                description=data.description,
                date=datetime.utcnow(),
                created_by=operator_id,
            )
            self.db.add(entry)
        self.db.refresh(entry)
        logger.info(f"Expense {entry.amount} ({entry.category}) recorded")
        return entry

    # ============== 修正 ==============

    def update_entry(self, entry_id: int, data: LedgerEntryUpdate,
                     operator_id: Optional[int] = None) -> LedgerEntry:
        """
        管理员修正流水

        - 带商品的流水传入新购物车：旧明细退回库存（correction），按新购物车重新出库并重算金额
        - 其他流水可直接改金额
        - 付款流水修改后按流水重算预订已付金额
        """
        if data.amount is not None and data.amount <= 0:
            raise ValidationError("金额必须大于 0")

        with atomic(self.db):
            entry = self.db.query(LedgerEntry).filter(
                LedgerEntry.id == entry_id
            ).with_for_update().first()
            if not entry:
                raise NotFoundError("流水不存在")

            if data.method is not None and data.method != entry.method and (
                PaymentMethod.ROOM_CHARGE in (data.method, entry.method)
            ):
                raise ValidationError("不能在挂房账与其他支付方式之间修改")
            if entry.flow == LedgerFlow.EXPENSE and data.method not in (None, PaymentMethod.CASH):
                raise ValidationError("支出只能为现金")

            if data.products is not None:
                if entry.kind not in PRODUCT_KINDS:
                    raise ValidationError("该流水没有商品明细")
                self.inventory.restock(
                    [(line.product_id, line.quantity) for line in entry.product_lines],
                    entry.id, operator_id, reason="correction",
                    notes=f"Corrección por edición de venta #{entry.id}",
                )
                priced = self.inventory.quote(data.products)
                entry.product_lines = [line.to_ledger_line() for line in priced]
                entry.amount = cart_total(priced)
                self.inventory.sell(priced, entry.id, operator_id,
                                    notes=f"Venta editada #{entry.id}")
            elif data.amount is not None:
                entry.amount = data.amount

            if data.method is not None:
                entry.method = data.method
            if data.description is not None:
                entry.description = data.description
            if data.date is not None:
                entry.date = data.date

            reservation = entry.reservation
            if reservation is not None:
                if entry.is_payment:
                    reservation.paid_amount = sum(
                        (e.amount for e in reservation.ledger_entries if e.is_payment), ZERO
                    )
                total_debt = (reservation.total_amount or ZERO) + reservation.consumption_total
                if (reservation.paid_amount or ZERO) > total_debt + OVERPAYMENT_TOLERANCE:
                    raise OverpaymentError(
                        "修改后已付金额将超过总欠款", reservation.debt
                    )

        self.db.refresh(entry)
        logger.info(f"Ledger entry {entry.id} corrected by operator {operator_id}")
        return entry
