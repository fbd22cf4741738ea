"""
预订管理路由
生命周期操作（入住、付款、消费、退房、删除）都在这里暴露
业务异常由 main.py 的统一处理器转换为 HTTP 响应
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.ontology import Employee, ReservationStatus
from frontdesk.models.schemas import (
    BalanceResponse, ConsumptionRequest, DocumentValidationResponse,
    LedgerEntryResponse, PaymentRequest, ReservationCreate, ReservationResponse,
    ReservationUpdate
)
from frontdesk.notification.document_validator import DocumentValidator
from frontdesk.security.auth import get_current_user, require_admin, require_counter_or_admin
from frontdesk.services.ledger_service import LedgerService
from frontdesk.services.payment_allocator import PaymentAllocator
from frontdesk.services.reservation_service import ReservationService

router = APIRouter(prefix="/reservations", tags=["预订管理"])


def get_document_validator() -> DocumentValidator:
    """证件 OCR 客户端（测试中可覆盖）"""
    return DocumentValidator()


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    guest_doc_number: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订列表（前台默认只看到有效预订）"""
    service = ReservationService(db)
    reservations = service.get_reservations(
        status, start_date, end_date, guest_doc_number, role=current_user.role
    )
    return [service.get_reservation_detail(r) for r in reservations]


@router.post("", response_model=ReservationResponse)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """创建预订"""
    service = ReservationService(db)
    reservation = service.create_reservation(data, created_by=current_user.id)
    return service.get_reservation_detail(reservation)


@router.post("/validate-dni", response_model=DocumentValidationResponse)
def validate_dni(
    image: UploadFile = File(...),
    expected_dni: str = Form(...),
    db: Session = Depends(get_db),
    validator: DocumentValidator = Depends(get_document_validator),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """证件 OCR 预校验（不改变任何状态）"""
    service = ReservationService(db, document_validator=validator)
    result = service.validate_document(image.file.read(), expected_dni, image.filename or "document.jpg")
    return DocumentValidationResponse(
        success=result.success,
        extracted_document=result.extracted_document,
        message=result.message,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订详情"""
    service = ReservationService(db)
    return service.get_reservation_detail(service.get_reservation(reservation_id))


@router.get("/{reservation_id}/balance", response_model=BalanceResponse)
def get_balance(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """分桶欠款明细"""
    return PaymentAllocator(db).statement(reservation_id)


@router.put("/{reservation_id}", response_model=ReservationResponse)
def update_reservation(
    reservation_id: int,
    data: ReservationUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """修改预订（字段按角色限制）"""
    service = ReservationService(db)
    reservation = service.update_reservation(reservation_id, data, current_user)
    return service.get_reservation_detail(reservation)


@router.delete("/{reservation_id}")
def delete_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """删除预订（软删除）"""
    service = ReservationService(db)
    reservation = service.delete_reservation(reservation_id, operator_id=current_user.id)
    return {"message": "预订已删除", "reservation_code": reservation.reservation_code}


@router.post("/{reservation_id}/checkin", response_model=ReservationResponse)
def check_in(
    reservation_id: int,
    guest_phone: Optional[str] = Form(None),
    guest_email: Optional[str] = Form(None),
    id_photo: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    validator: DocumentValidator = Depends(get_document_validator),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """入住（需联系方式与证件照片）"""
    service = ReservationService(db, document_validator=validator)
    photo = id_photo.file.read() if id_photo else None
    reservation = service.check_in(
        reservation_id,
        guest_phone=guest_phone,
        guest_email=guest_email,
        photo=photo,
        photo_filename=id_photo.filename if id_photo else None,
        operator_id=current_user.id,
    )
    return service.get_reservation_detail(reservation)


@router.post("/{reservation_id}/checkout", response_model=ReservationResponse)
def check_out(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """退房（欠款必须结清）"""
    service = ReservationService(db)
    reservation = service.check_out(reservation_id, operator_id=current_user.id)
    return service.get_reservation_detail(reservation)


@router.post("/{reservation_id}/payment")
def add_payment(
    reservation_id: int,
    data: PaymentRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """登记付款，按 房费 → Mak → Makala 顺序分配"""
    allocator = PaymentAllocator(db)
    reservation, allocations = allocator.apply(
        reservation_id,
        data.amount,
        method=data.payment_method,
        operator_id=current_user.id,
        description=data.description,
        payment_evidence=data.payment_evidence,
    )
    return {
        "reservation": ReservationService(db).get_reservation_detail(reservation),
        "allocations": {bucket.value: amount for bucket, amount in allocations.items()},
        "balance": allocator.statement(reservation_id),
    }


@router.post("/{reservation_id}/consumption", response_model=LedgerEntryResponse)
def add_consumption(
    reservation_id: int,
    data: ConsumptionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """房内消费挂账"""
    entry = ReservationService(db).add_consumption(reservation_id, data, operator_id=current_user.id)
    return LedgerService(db).entry_to_dict(entry)
