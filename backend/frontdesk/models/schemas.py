"""
Pydantic 模式定义
用于 API 请求/响应验证
金额类字段只做类型转换，业务规则（非负、整数、上限）由服务层校验
"""
from datetime import datetime, date, time
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, ConfigDict
from frontdesk.models.ontology import (
    RoomStatus, ReservationStatus, ReservationKind, LedgerFlow, LedgerKind,
    DebtBucket, PaymentOrigin, PaymentMethod, EmployeeRole
)


# ============== 认证 Schemas ==============

class LoginRequest(BaseModel):
    username: str
    password: str


class EmployeeResponse(BaseModel):
    id: int
    username: str
    name: str
    role: EmployeeRole
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee: EmployeeResponse


# ============== 楼层 / 房间 Schemas ==============

class FloorCreate(BaseModel):
    number: int = Field(..., ge=0)


class FloorResponse(BaseModel):
    id: int
    number: int
    model_config = ConfigDict(from_attributes=True)


class RoomBase(BaseModel):
    number: str = Field(..., max_length=10)
    type: str = Field(..., max_length=50)
    price_per_night: Decimal = Field(..., ge=0)


class RoomCreate(RoomBase):
    floor_id: int


class RoomUpdate(BaseModel):
    number: Optional[str] = Field(None, max_length=10)
    floor_id: Optional[int] = None
    type: Optional[str] = Field(None, max_length=50)
    price_per_night: Optional[Decimal] = Field(None, ge=0)


class RoomResponse(RoomBase):
    id: int
    floor: int
    status: RoomStatus
    under_maintenance: bool
    has_active_reservation: bool = False
    has_checked_in_reservation: bool = False
    model_config = ConfigDict(from_attributes=True)


class MaintenanceUpdate(BaseModel):
    enabled: bool


# ============== 预订 Schemas ==============

class ReservationCreate(BaseModel):
    room_id: int
    guest_name: str = Field(..., max_length=100)
    guest_doc_number: str = Field(..., max_length=50)
    guest_doc_type: str = Field(default="DNI", max_length=20)
    start_date: date
    end_date: Optional[date] = None   # 钟点房可省略，默认同日
    kind: ReservationKind = ReservationKind.NIGHT
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    custom_price: Optional[Decimal] = None
    prepaid_amount: Decimal = Decimal("0")
    prepaid_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = None

    @field_validator("guest_name", "guest_doc_number")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("不能为空")
        return v.strip()


class ReservationUpdate(BaseModel):
    room_id: Optional[int] = None
    guest_name: Optional[str] = Field(None, max_length=100)
    guest_doc_number: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    reservation_code: str
    room_id: int
    room_number: str
    guest_id: int
    guest_name: str
    guest_doc_number: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    start_date: date
    end_date: date
    kind: ReservationKind
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    status: ReservationStatus
    total_amount: Decimal
    paid_amount: Decimal
    prepaid_amount: Decimal
    consumption_total: Decimal
    debt: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentRequest(BaseModel):
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    description: Optional[str] = None
    payment_evidence: Optional[str] = None


class CartLine(BaseModel):
    product_id: int
    quantity: int
    unit_price: Optional[Decimal] = None


class ConsumptionRequest(BaseModel):
    products: List[CartLine]
    description: Optional[str] = None
    bucket: DebtBucket = DebtBucket.MAKALA


class BucketStatementResponse(BaseModel):
    bucket: DebtBucket
    gross: Decimal
    immediate_paid: Decimal
    net: Decimal
    generic_applied: Decimal
    remaining: Decimal


class BalanceResponse(BaseModel):
    reservation_id: int
    total_debt: Decimal
    paid_amount: Decimal
    debt: Decimal
    generic_pool: Decimal
    buckets: List[BucketStatementResponse]


class DocumentValidationResponse(BaseModel):
    success: bool
    extracted_document: Optional[str] = None
    message: str = ""


# ============== 收银流水 Schemas ==============

class ProductLineResponse(BaseModel):
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    model_config = ConfigDict(from_attributes=True)


class LedgerEntryResponse(BaseModel):
    id: int
    reservation_id: Optional[int] = None
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    flow: LedgerFlow
    kind: LedgerKind
    bucket: Optional[DebtBucket] = None
    origin: Optional[PaymentOrigin] = None
    category: str
    amount: Decimal
    method: PaymentMethod
    payment_evidence: Optional[str] = None
    description: Optional[str] = None
    date: datetime
    created_by_name: Optional[str] = None
    products: List[ProductLineResponse] = []


class MakalaSaleCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH
    room_id: Optional[int] = None
    description: Optional[str] = None
    payment_evidence: Optional[str] = None


class MakSaleCreate(BaseModel):
    products: List[CartLine]
    method: PaymentMethod = PaymentMethod.CASH
    room_id: Optional[int] = None
    description: Optional[str] = None
    payment_evidence: Optional[str] = None


class ExpenseCreate(BaseModel):
    amount: Decimal
    category: str = Field(..., max_length=100)
    description: Optional[str] = None


class LedgerEntryUpdate(BaseModel):
    amount: Optional[Decimal] = None
    method: Optional[PaymentMethod] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    products: Optional[List[CartLine]] = None


class LedgerSummaryResponse(BaseModel):
    start_date: date
    end_date: date
    income_by_method: dict
    total_income: Decimal
    total_expense: Decimal
    room_charges: Decimal
    net_cash: Decimal


# ============== 商品 Schemas ==============

class ProductResponse(BaseModel):
    id: int
    name: str
    stock: int
    price: Decimal
    model_config = ConfigDict(from_attributes=True)
