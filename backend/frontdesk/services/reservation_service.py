"""
预订服务 - 本体操作层
管理 Reservation 对象（生命周期与账务的聚合根）

每个写操作：事务外做字段校验 → atomic 事务内锁行、查状态表、写库 → 提交后发布事件
"""
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional
import logging
import uuid

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from frontdesk.config import settings
from frontdesk.database import atomic
from frontdesk.domain import lifecycle
from frontdesk.domain.lifecycle import ReservationEvent
from frontdesk.domain.money import CHECKOUT_TOLERANCE, OVERPAYMENT_TOLERANCE, ZERO
from frontdesk.engine.event_bus import Event, event_bus
from frontdesk.errors import (
    ConflictError, DebtRemainingError, DocumentValidationError,
    NotFoundError, OverpaymentError, PermissionDeniedError, ValidationError
)
from frontdesk.models.events import (
    EventType, ConsumptionChargedData, GuestCheckedInData, GuestCheckedOutData,
    ReservationCreatedData, ReservationDeletedData, ReservationUpdatedData
)
from frontdesk.models.ontology import (
    DebtBucket, Employee, EmployeeRole, Guest, LedgerEntry, LedgerFlow, LedgerKind,
    PaymentMethod, PaymentOrigin, Reservation, ReservationKind, ReservationStatus,
    RoomStatus
)
from frontdesk.models.schemas import ConsumptionRequest, ReservationCreate, ReservationUpdate
from frontdesk.notification.document_validator import DocumentValidator
from frontdesk.services.conflict_detector import BLOCKING_STATUSES, ConflictDetector
from frontdesk.services.inventory_service import InventoryService, cart_total

logger = logging.getLogger(__name__)

# 前台（counter）可修改的字段
COUNTER_EDITABLE_FIELDS = {"end_date", "total_amount", "notes"}

# 入住时拒绝的房态及原因
CHECKIN_BLOCKING_ROOM_STATUSES = {
    RoomStatus.OCCUPIED: "房间已有在住客人，请先为当前预订办理退房",
    RoomStatus.CLEANING: "房间待清洁，请先确认清洁完成",
    RoomStatus.MAINTENANCE: "房间维修中，暂不可入住",
}

PREPAYMENT_CATEGORY = "Habitación"
CONSUMPTION_CATEGORY = "Restobar"


def nights_between(start: date, end: date) -> int:
    return max(1, (end - start).days)


def validate_dates(kind: ReservationKind, start: date, end: date,
                   start_time=None, end_time=None) -> None:
    """按晚：end > start；钟点房：同日，且结束时间晚于开始时间"""
    if kind == ReservationKind.NIGHT:
        if end <= start:
            raise ValidationError("离店日期必须晚于入住日期")
    else:
        if end != start:
            raise ValidationError("钟点房的开始与结束日期必须为同一天")
        if start_time and end_time and end_time <= start_time:
            raise ValidationError("钟点房的结束时间必须晚于开始时间")


def store_id_photo(content: bytes, filename: Optional[str]) -> str:
    """保存证件照片到上传目录，返回存储文件名"""
    suffix = Path(filename or "").suffix or ".jpg"
    stored = f"{uuid.uuid4().hex}{suffix}"
    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    (upload_dir / stored).write_bytes(content)
    return stored


class ReservationService:
    """预订服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 document_validator: Optional[DocumentValidator] = None):
        self.db = db
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._document_validator = document_validator
        self.conflicts = ConflictDetector(db)
        self.inventory = InventoryService(db)

    # ============== 查询 ==============

    def _query(self):
        return self.db.query(Reservation).filter(Reservation.deleted_at.is_(None))

    def get_reservation(self, reservation_id: int, lock: bool = False) -> Reservation:
        query = self._query().filter(Reservation.id == reservation_id)
        if lock:
            query = query.with_for_update().populate_existing()
        reservation = query.first()
        if not reservation:
            raise NotFoundError("预订不存在")
        return reservation

    def get_reservations(self, status: Optional[ReservationStatus] = None,
                         start_date: Optional[date] = None,
                         end_date: Optional[date] = None,
                         guest_doc_number: Optional[str] = None,
                         role: EmployeeRole = EmployeeRole.ADMIN) -> List[Reservation]:
        """
        获取预订列表

        未指定状态时，前台只看到 reserved / checked_in，管理员看到全部未删除预订。
        """
        query = self._query()

        if status:
            query = query.filter(Reservation.status == status)
        elif role != EmployeeRole.ADMIN:
            query = query.filter(Reservation.status.in_(BLOCKING_STATUSES))

        if start_date and end_date:
            query = query.filter(
                Reservation.start_date <= end_date,
                Reservation.end_date >= start_date,
            )

        if guest_doc_number:
            query = query.join(Guest).filter(Guest.doc_number.contains(guest_doc_number))

        return query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()

    def get_reservation_detail(self, reservation: Reservation) -> dict:
        """预订详情（含消费合计与欠款）"""
        return {
            "id": reservation.id,
            "reservation_code": reservation.reservation_code,
            "room_id": reservation.room_id,
            "room_number": reservation.room.number,
            "guest_id": reservation.guest_id,
            "guest_name": reservation.guest.name,
            "guest_doc_number": reservation.guest.doc_number,
            "guest_phone": reservation.guest.phone,
            "guest_email": reservation.guest.email,
            "start_date": reservation.start_date,
            "end_date": reservation.end_date,
            "kind": reservation.kind,
            "start_time": reservation.start_time,
            "end_time": reservation.end_time,
            "status": reservation.status,
            "total_amount": reservation.total_amount,
            "paid_amount": reservation.paid_amount,
            "prepaid_amount": reservation.prepaid_amount,
            "consumption_total": reservation.consumption_total,
            "debt": reservation.debt,
            "notes": reservation.notes,
            "created_at": reservation.created_at,
        }

    def _next_reservation_code(self) -> str:
        """顺序编号，软删除的预订也计入"""
        last = self.db.query(func.max(cast(Reservation.reservation_code, Integer))).scalar()
        return str((last or 0) + 1)

    # ============== 创建 ==============

    def create_reservation(self, data: ReservationCreate, created_by: Optional[int] = None) -> Reservation:
        """
        创建预订（初始状态 reserved）

        房费：指定价格优先；否则按晚 = max(1, 晚数) × 房价，钟点房 = 房价。
        预付款记为房费桶的通用付款。
        """
        end_date = data.end_date
        if end_date is None:
            if data.kind == ReservationKind.NIGHT:
                raise ValidationError("按晚预订必须提供离店日期")
            end_date = data.start_date
        validate_dates(data.kind, data.start_date, end_date, data.start_time, data.end_time)

        if data.custom_price is not None and data.custom_price < 0:
            raise ValidationError("房费不能为负")
        if data.prepaid_amount < 0:
            raise ValidationError("预付金额不能为负")
        if data.prepaid_method == PaymentMethod.ROOM_CHARGE:
            raise ValidationError("预付方式不能为挂房账")

        with atomic(self.db):
            room = self.conflicts.lock_room(data.room_id)
            self.conflicts.check(room.id, data.start_date, end_date, data.kind)

            guest = self.db.query(Guest).filter(Guest.doc_number == data.guest_doc_number).first()
            if not guest:
                guest = Guest(
                    name=data.guest_name,
                    doc_type=data.guest_doc_type or "DNI",
                    doc_number=data.guest_doc_number,
                    visit_count=0,
                )
                self.db.add(guest)
                self.db.flush()

            if data.custom_price is not None:
                total_amount = data.custom_price
            elif data.kind == ReservationKind.NIGHT:
                total_amount = room.price_per_night * nights_between(data.start_date, end_date)
            else:
                total_amount = room.price_per_night

            prepaid = data.prepaid_amount or ZERO
            if prepaid > total_amount:
                raise ValidationError(f"预付金额不能超过房费 {total_amount:.2f}")

            reservation = Reservation(
                reservation_code=self._next_reservation_code(),
                room_id=room.id,
                guest_id=guest.id,
                start_date=data.start_date,
                end_date=end_date,
                kind=data.kind,
                start_time=data.start_time,
                end_time=data.end_time,
                status=ReservationStatus.RESERVED,
                total_amount=total_amount,
                prepaid_amount=prepaid,
                paid_amount=prepaid,
                notes=data.notes,
                created_by=created_by,
            )
            self.db.add(reservation)
            self.db.flush()

            if prepaid > 0:
                entry = LedgerEntry(
                    flow=LedgerFlow.INCOME,
                    kind=LedgerKind.RESERVATION_PAYMENT,
                    bucket=DebtBucket.ROOM,
                    origin=PaymentOrigin.GENERIC,
                    category=PREPAYMENT_CATEGORY,
                    amount=prepaid,
                    method=data.prepaid_method,
                    room_id=room.id,
                    description=f"Adelanto Reserva #{reservation.reservation_code} - {guest.name}",
                    created_by=created_by,
                )
                entry.reservation = reservation
                self.db.add(entry)

        self.db.refresh(reservation)
        logger.info(
            f"Reservation {reservation.reservation_code} created for room {room.number} "
            f"({reservation.start_date} - {reservation.end_date}, total {reservation.total_amount})"
        )

        self._publish_event(Event(
            event_type=EventType.RESERVATION_CREATED,
            timestamp=datetime.now(),
            data=ReservationCreatedData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                room_id=room.id,
                room_number=room.number,
                guest_name=reservation.guest.name,
                start_date=reservation.start_date.isoformat(),
                end_date=reservation.end_date.isoformat(),
                total_amount=float(reservation.total_amount),
                prepaid_amount=float(reservation.prepaid_amount),
                operator_id=created_by,
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation

    # ============== 入住 ==============

    def validate_document(self, photo: bytes, expected_document: str,
                          filename: str = "document.jpg"):
        """调用证件 OCR 服务（同步，事务外）"""
        validator = self._document_validator or DocumentValidator()
        return validator.validate(photo, expected_document, filename)

    def check_in(self, reservation_id: int, guest_phone: Optional[str],
                 guest_email: Optional[str], photo: Optional[bytes],
                 photo_filename: Optional[str] = None,
                 operator_id: Optional[int] = None) -> Reservation:
        """
        入住（reserved → checked_in）

        业务联动规则：
        1. 手机、邮箱、证件照片必填
        2. 证件 OCR 校验通过（事务外，硬依赖）
        3. 房间不能是在住/待清洁/维修
        4. 补全客人联系方式，入住次数 +1
        """
        if not guest_phone or not guest_email or not photo:
            raise ValidationError("入住需要证件照片、手机号和邮箱")

        reservation = self.get_reservation(reservation_id)
        lifecycle.ensure_allowed(reservation, ReservationEvent.CHECK_IN)

        result = self.validate_document(photo, reservation.guest.doc_number, photo_filename or "document.jpg")
        if not result.success:
            raise DocumentValidationError(
                result.message or "证件校验未通过",
                {"extracted_document": result.extracted_document},
            )
        id_photo = store_id_photo(photo, photo_filename)

        with atomic(self.db):
            reservation = self.get_reservation(reservation_id, lock=True)
            self.conflicts.lock_room(reservation.room_id)
            lifecycle.ensure_allowed(reservation, ReservationEvent.CHECK_IN)

            room = reservation.room
            blocked = CHECKIN_BLOCKING_ROOM_STATUSES.get(room.status)
            if blocked:
                raise ConflictError(blocked, {"room_status": room.status.value})

            guest = reservation.guest
            guest.phone = guest_phone
            guest.email = guest_email
            guest.id_photo = id_photo
            guest.visit_count = (guest.visit_count or 0) + 1
            guest.last_visit = datetime.utcnow()

            lifecycle.advance(reservation, ReservationEvent.CHECK_IN)

        self.db.refresh(reservation)
        guest = reservation.guest

        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_IN,
            timestamp=datetime.now(),
            data=GuestCheckedInData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                guest_id=guest.id,
                guest_name=guest.name,
                guest_phone=guest.phone or "",
                guest_email=guest.email or "",
                guest_doc_number=guest.doc_number,
                visit_count=guest.visit_count,
                room_id=reservation.room_id,
                room_number=reservation.room.number,
                start_date=reservation.start_date.isoformat(),
                end_date=reservation.end_date.isoformat(),
                operator_id=operator_id,
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation

    # ============== 挂账消费 ==============

    def add_consumption(self, reservation_id: int, data: ConsumptionRequest,
                        operator_id: Optional[int] = None) -> LedgerEntry:
        """
        房内消费挂账：整单扣库存，生成一条 room_charge 流水（带商品明细）
        """
        if data.bucket not in (DebtBucket.MAK, DebtBucket.MAKALA):
            raise ValidationError("消费只能挂到 Mak 或 Makala")
        if not data.products:
            raise ValidationError("未选择商品")

        with atomic(self.db):
            reservation = self.get_reservation(reservation_id, lock=True)
            lifecycle.ensure_allowed(reservation, ReservationEvent.ADD_CHARGE)

            priced = self.inventory.quote(data.products)
            entry = LedgerEntry(
                flow=LedgerFlow.CHARGE,
                kind=LedgerKind.CONSUMPTION_CHARGE,
                bucket=data.bucket,
                category=CONSUMPTION_CATEGORY,
                amount=cart_total(priced),
                method=PaymentMethod.ROOM_CHARGE,
                room_id=reservation.room_id,
                description=data.description or f"Consumo - Reserva #{reservation.reservation_code}",
                created_by=operator_id,
            )
            entry.product_lines = [line.to_ledger_line() for line in priced]
            entry.reservation = reservation
            self.db.add(entry)
            self.db.flush()

            self.inventory.sell(
                priced, entry.id, operator_id,
                notes=f"Consumo Habitación - Reserva #{reservation.reservation_code}",
            )

        self.db.refresh(entry)
        logger.info(
            f"Consumption {entry.amount} charged to reservation {reservation.reservation_code} "
            f"({entry.bucket.value})"
        )

        self._publish_event(Event(
            event_type=EventType.CONSUMPTION_CHARGED,
            timestamp=datetime.now(),
            data=ConsumptionChargedData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                entry_id=entry.id,
                bucket=entry.bucket.value,
                amount=float(entry.amount),
                operator_id=operator_id,
            ).to_dict(),
            source="reservation_service"
        ))
        return entry

    # ============== 退房 ==============

    def check_out(self, reservation_id: int, operator_id: Optional[int] = None) -> Reservation:
        """
        退房（checked_in → checked_out），欠款超过容差则拒绝
        房间随之进入待清洁
        """
        with atomic(self.db):
            reservation = self.get_reservation(reservation_id, lock=True)
            lifecycle.ensure_allowed(reservation, ReservationEvent.CHECK_OUT)

            debt = reservation.debt
            if debt > CHECKOUT_TOLERANCE:
                raise DebtRemainingError(
                    f"无法退房，客人仍欠 {settings.CURRENCY_SYMBOL} {debt:.2f}"
                    f"（房费 {reservation.total_amount:.2f}，"
                    f"消费 {reservation.consumption_total:.2f}，"
                    f"已付 {reservation.paid_amount:.2f}）",
                    debt,
                )

            lifecycle.advance(reservation, ReservationEvent.CHECK_OUT)

        self.db.refresh(reservation)

        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_OUT,
            timestamp=datetime.now(),
            data=GuestCheckedOutData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                guest_name=reservation.guest.name,
                guest_phone=reservation.guest.phone or "",
                room_id=reservation.room_id,
                room_number=reservation.room.number,
                total_amount=float(reservation.total_amount),
                consumption_total=float(reservation.consumption_total),
                paid_amount=float(reservation.paid_amount),
                operator_id=operator_id,
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation

    # ============== 修改 ==============

    def _changelog_entry(self, field: str, old, new) -> dict:
        return {"field": field, "old_value": old, "new_value": new}

    def _money_label(self, value) -> str:
        return f"{settings.CURRENCY_SYMBOL} {Decimal(str(value)):.2f}"

    def update_reservation(self, reservation_id: int, data: ReservationUpdate,
                           operator: Employee) -> Reservation:
        """
        修改预订（按角色限制字段）

        前台只能修改离店日期、房费、备注；管理员还可修改房间、客人姓名/证件号、入住日期。
        发生的字段变更以 changelog 形式发布给通知方。
        """
        if data.total_amount is not None and data.total_amount < 0:
            raise ValidationError("房费不能为负")

        requested = data.model_dump(exclude_unset=True)
        # 显式传 null 等同于未修改
        requested = {k: v for k, v in requested.items() if v is not None or k == "notes"}

        with atomic(self.db):
            reservation = self.get_reservation(reservation_id, lock=True)
            lifecycle.ensure_allowed(reservation, ReservationEvent.UPDATE)
            guest = reservation.guest

            current = {
                "room_id": reservation.room_id,
                "guest_name": guest.name,
                "guest_doc_number": guest.doc_number,
                "start_date": reservation.start_date,
                "end_date": reservation.end_date,
                "total_amount": reservation.total_amount,
                "notes": reservation.notes,
            }
            changes = {k: v for k, v in requested.items() if v != current[k]}

            if operator.role != EmployeeRole.ADMIN:
                forbidden = sorted(set(changes) - COUNTER_EDITABLE_FIELDS)
                if forbidden:
                    raise PermissionDeniedError(
                        f"前台无权修改字段：{', '.join(forbidden)}", {"fields": forbidden}
                    )

            changelog = []
            old_room = reservation.room
            target_room = old_room
            # 退房后房费已结清，不再允许调整
            if "total_amount" in changes and reservation.status not in BLOCKING_STATUSES:
                raise ConflictError(
                    "已退房的预订不能修改房费", {"status": reservation.status.value}
                )

            if "room_id" in changes:
                target_room = self.conflicts.lock_room(changes["room_id"])

            new_start = changes.get("start_date", reservation.start_date)
            new_end = changes.get("end_date", reservation.end_date)
            if "start_date" in changes or "end_date" in changes:
                validate_dates(reservation.kind, new_start, new_end,
                               reservation.start_time, reservation.end_time)

            if {"room_id", "start_date", "end_date"} & set(changes) and reservation.status in BLOCKING_STATUSES:
                self.conflicts.check(target_room.id, new_start, new_end, reservation.kind,
                                     exclude_id=reservation.id)

            if "guest_doc_number" in changes:
                taken = self.db.query(Guest).filter(
                    Guest.doc_number == changes["guest_doc_number"],
                    Guest.id != guest.id,
                ).first()
                if taken:
                    raise ConflictError("该证件号已属于其他客人")

            if "room_id" in changes:
                changelog.append(self._changelog_entry(
                    "room",
                    f"#{old_room.number} ({old_room.type})",
                    f"#{target_room.number} ({target_room.type})",
                ))
                reservation.room_id = target_room.id
            if "guest_name" in changes:
                changelog.append(self._changelog_entry("guest_name", guest.name, changes["guest_name"]))
                guest.name = changes["guest_name"]
            if "guest_doc_number" in changes:
                changelog.append(self._changelog_entry(
                    "guest_doc_number", guest.doc_number, changes["guest_doc_number"]
                ))
                guest.doc_number = changes["guest_doc_number"]
            if "start_date" in changes:
                changelog.append(self._changelog_entry(
                    "start_date", reservation.start_date.isoformat(), new_start.isoformat()
                ))
                reservation.start_date = new_start
            if "end_date" in changes:
                changelog.append(self._changelog_entry(
                    "end_date", reservation.end_date.isoformat(), new_end.isoformat()
                ))
                reservation.end_date = new_end
            if "total_amount" in changes:
                changelog.append(self._changelog_entry(
                    "total_amount",
                    self._money_label(reservation.total_amount),
                    self._money_label(changes["total_amount"]),
                ))
                reservation.total_amount = changes["total_amount"]
                total_debt = reservation.total_amount + reservation.consumption_total
                if (reservation.paid_amount or ZERO) > total_debt + OVERPAYMENT_TOLERANCE:
                    raise OverpaymentError(
                        f"房费不能低于已付金额（已付 {reservation.paid_amount:.2f}）", reservation.debt
                    )
            if "notes" in changes:
                changelog.append(self._changelog_entry(
                    "notes", reservation.notes or "", changes["notes"] or ""
                ))
                reservation.notes = changes["notes"]

        self.db.refresh(reservation)

        if changelog:
            logger.info(
                f"Reservation {reservation.reservation_code} updated by {operator.username}: "
                + ", ".join(c["field"] for c in changelog)
            )
            self._publish_event(Event(
                event_type=EventType.RESERVATION_UPDATED,
                timestamp=datetime.now(),
                data=ReservationUpdatedData(
                    reservation_id=reservation.id,
                    reservation_code=reservation.reservation_code,
                    changed_fields=changelog,
                    updated_by=operator.name or operator.username,
                    operator_id=operator.id,
                ).to_dict(),
                source="reservation_service"
            ))
        return reservation

    # ============== 删除 ==============

    def delete_reservation(self, reservation_id: int, operator_id: Optional[int] = None) -> Reservation:
        """
        软删除预订（状态置为 cancelled，流水保留）

        在住预订不能删除；已付金额不足以覆盖消费挂账时拒绝。
        已退房未清洁的预订被删除后，房间保持待清洁，直到清洁确认。
        """
        with atomic(self.db):
            reservation = self.get_reservation(reservation_id, lock=True)
            previous = reservation.status
            lifecycle.ensure_allowed(reservation, ReservationEvent.DELETE)

            paid = reservation.paid_amount or ZERO
            consumption = reservation.consumption_total
            if paid < consumption:
                raise DebtRemainingError(
                    f"消费挂账尚未结清，仍欠 {settings.CURRENCY_SYMBOL} {consumption - paid:.2f}",
                    consumption - paid,
                )

            if previous == ReservationStatus.CHECKED_OUT:
                self.conflicts.lock_room(reservation.room_id).pending_cleaning = True

            lifecycle.advance(reservation, ReservationEvent.DELETE)
            reservation.deleted_at = datetime.utcnow()

        self.db.refresh(reservation)
        logger.info(f"Reservation {reservation.reservation_code} deleted (was {previous.value})")

        self._publish_event(Event(
            event_type=EventType.RESERVATION_DELETED,
            timestamp=datetime.now(),
            data=ReservationDeletedData(
                reservation_id=reservation.id,
                reservation_code=reservation.reservation_code,
                previous_status=previous.value,
                operator_id=operator_id,
            ).to_dict(),
            source="reservation_service"
        ))
        return reservation
