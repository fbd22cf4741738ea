"""
业务对象定义
楼层、房间、客人、预订、收银流水、商品库存、员工
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Time,
    ForeignKey, Text, Enum as SQLEnum, Boolean, Numeric, and_
)
from sqlalchemy.orm import relationship
from frontdesk.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态（由预订状态推导，维修为人工覆盖）"""
    AVAILABLE = "available"      # 空闲
    OCCUPIED = "occupied"        # 入住中
    CLEANING = "cleaning"        # 待清洁
    MAINTENANCE = "maintenance"  # 维修中


class ReservationStatus(str, Enum):
    """预订生命周期状态"""
    RESERVED = "reserved"        # 已预订
    CHECKED_IN = "checked_in"    # 已入住
    CHECKED_OUT = "checked_out"  # 已退房（待清洁）
    COMPLETED = "completed"      # 已完成（清洁确认）
    CANCELLED = "cancelled"      # 已删除/取消


class ReservationKind(str, Enum):
    """预订类型"""
    NIGHT = "night"    # 按晚
    HOURLY = "hourly"  # 钟点房


class LedgerFlow(str, Enum):
    """资金流向"""
    INCOME = "income"
    EXPENSE = "expense"
    CHARGE = "charge"  # 挂房账，不产生现金


class LedgerKind(str, Enum):
    """业务类型"""
    MAKALA_SALE = "makala_sale"                  # Makala 销售（服务类）
    MAK_SALE = "mak_sale"                        # Mak 销售（商品，扣库存）
    RESERVATION_PAYMENT = "reservation_payment"  # 预订付款
    CONSUMPTION_CHARGE = "consumption_charge"    # 预订内消费挂账
    EXPENSE = "expense"                          # 支出


class DebtBucket(str, Enum):
    """欠款分桶，顺序即冲抵优先级"""
    ROOM = "room"
    MAK = "mak"
    MAKALA = "makala"


class PaymentOrigin(str, Enum):
    """付款来源"""
    IMMEDIATE = "immediate"  # 销售当下即付，直接结清对应消费
    GENERIC = "generic"      # 事后对余额付款，按瀑布顺序分配


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"
    YAPE = "yape"
    CARD = "card"
    TRANSFER = "transfer"
    ROOM_CHARGE = "room_charge"  # 挂房账


class StockMovementType(str, Enum):
    """库存变动方向"""
    IN = "in"
    OUT = "out"


class EmployeeRole(str, Enum):
    """员工角色"""
    ADMIN = "admin"      # 管理员
    COUNTER = "counter"  # 前台


# 参与房态推导的预订状态
ROOM_HOLDING_STATUSES = (ReservationStatus.CHECKED_IN, ReservationStatus.CHECKED_OUT)


def derive_room_status(under_maintenance: bool,
                       reservation_statuses: Iterable[ReservationStatus],
                       pending_cleaning: bool = False) -> RoomStatus:
    """
    由房间上的预订状态推导房态

    维修覆盖一切；有在住预订为 occupied；有已退房未清洁的预订（或已删除但未清洁的住宿）为 cleaning；否则空闲。
    """
    if under_maintenance:
        return RoomStatus.MAINTENANCE
    statuses = set(reservation_statuses)
    if ReservationStatus.CHECKED_IN in statuses:
        return RoomStatus.OCCUPIED
    if ReservationStatus.CHECKED_OUT in statuses or pending_cleaning:
        return RoomStatus.CLEANING
    return RoomStatus.AVAILABLE


# ============== 对象定义 ==============

class Floor(Base):
    """楼层"""
    __tablename__ = "floors"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(Integer, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Room(Base):
    """
    房间对象
    房态不落库，由 holding_reservations 推导
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(10), unique=True, nullable=False)   # 房间号
    floor = Column(Integer, nullable=False)                    # 楼层号
    type = Column(String(50), nullable=False)                  # 房型（Single/Double/Suite...）
    price_per_night = Column(Numeric(10, 2), nullable=False)   # 每晚价格
    under_maintenance = Column(Boolean, default=False, nullable=False)
    # 已退房的预订被删除后，房间仍需清洁确认
    pending_cleaning = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    reservations = relationship("Reservation", back_populates="room")
    holding_reservations = relationship(
        "Reservation",
        primaryjoin=lambda: and_(
            Room.id == Reservation.room_id,
            Reservation.status.in_(ROOM_HOLDING_STATUSES),
            Reservation.deleted_at.is_(None),
        ),
        viewonly=True,
    )

    @property
    def status(self) -> RoomStatus:
        """当前房态"""
        return derive_room_status(
            self.under_maintenance,
            (r.status for r in self.holding_reservations),
            self.pending_cleaning,
        )


class Guest(Base):
    """
    客人对象
    证件号为自然键；联系方式在入住时补全
    """
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    doc_type = Column(String(20), nullable=False, default="DNI")
    doc_number = Column(String(50), unique=True, nullable=False)
    phone = Column(String(30))
    email = Column(String(100))
    id_photo = Column(String(255))                 # 证件照片文件名
    visit_count = Column(Integer, default=0)       # 入住次数
    last_visit = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="guest")


class Reservation(Base):
    """
    预订对象 - 生命周期与账务的聚合根
    paid_amount 为所有付款（各分桶）之和
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    reservation_code = Column(String(10), unique=True, nullable=False)  # 顺序编号
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    kind = Column(SQLEnum(ReservationKind), nullable=False, default=ReservationKind.NIGHT)
    start_time = Column(Time)   # 仅钟点房
    end_time = Column(Time)     # 仅钟点房
    status = Column(SQLEnum(ReservationStatus), nullable=False, default=ReservationStatus.RESERVED)
    total_amount = Column(Numeric(10, 2), default=0)    # 房费
    paid_amount = Column(Numeric(10, 2), default=0)     # 累计已付
    prepaid_amount = Column(Numeric(10, 2), default=0)  # 预订时预付
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("employees.id"))
    deleted_at = Column(DateTime)                       # 软删除
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    room = relationship("Room", back_populates="reservations")
    guest = relationship("Guest", back_populates="reservations")
    ledger_entries = relationship(
        "LedgerEntry", back_populates="reservation", order_by="LedgerEntry.id"
    )
    creator = relationship("Employee", foreign_keys=[created_by])

    @property
    def consumption_total(self) -> Decimal:
        """挂房账消费合计"""
        return sum(
            (e.amount for e in self.ledger_entries if e.method == PaymentMethod.ROOM_CHARGE),
            Decimal("0"),
        )

    @property
    def debt(self) -> Decimal:
        """欠款 = 房费 + 消费 - 已付"""
        return (self.total_amount or Decimal("0")) + self.consumption_total - (self.paid_amount or Decimal("0"))


class LedgerEntry(Base):
    """
    收银流水
    销售、挂账、付款、支出共用一张表；付款通过 origin/bucket 显式标记归属
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    flow = Column(SQLEnum(LedgerFlow), nullable=False)
    kind = Column(SQLEnum(LedgerKind), nullable=False)
    bucket = Column(SQLEnum(DebtBucket), nullable=True)
    origin = Column(SQLEnum(PaymentOrigin), nullable=True)
    category = Column(String(100), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    payment_evidence = Column(Text)
    description = Column(String(255))
    date = Column(DateTime, default=datetime.utcnow)
    created_by = Column(Integer, ForeignKey("employees.id"))

    # 链接
    reservation = relationship("Reservation", back_populates="ledger_entries")
    room = relationship("Room")
    product_lines = relationship(
        "LedgerProductLine", back_populates="entry",
        cascade="all, delete-orphan", order_by="LedgerProductLine.id"
    )
    creator = relationship("Employee", foreign_keys=[created_by])

    @property
    def is_payment(self) -> bool:
        return self.flow == LedgerFlow.INCOME and self.kind == LedgerKind.RESERVATION_PAYMENT


class LedgerProductLine(Base):
    """流水商品明细"""
    __tablename__ = "ledger_product_lines"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    name = Column(String(100), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    entry = relationship("LedgerEntry", back_populates="product_lines")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Product(Base):
    """商品（库存协作方）"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class StockMovement(Base):
    """库存变动记录"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    type = Column(SQLEnum(StockMovementType), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)        # sale / correction / purchase
    reference_type = Column(String(50))                # ledger_entry
    reference_id = Column(Integer)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("employees.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product")


class Employee(Base):
    """员工（登录账号）"""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
