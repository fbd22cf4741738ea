"""
收银流水路由（收银台销售、支出、流水查询与修正）
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.ontology import Employee, LedgerFlow, LedgerKind
from frontdesk.models.schemas import (
    ExpenseCreate, LedgerEntryResponse, LedgerEntryUpdate, LedgerSummaryResponse,
    MakalaSaleCreate, MakSaleCreate
)
from frontdesk.security.auth import get_current_user, require_admin, require_counter_or_admin
from frontdesk.services.ledger_service import LedgerService

router = APIRouter(prefix="/transactions", tags=["收银流水"])


@router.get("", response_model=List[LedgerEntryResponse])
def list_transactions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    flow: Optional[LedgerFlow] = None,
    kind: Optional[LedgerKind] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """流水列表"""
    service = LedgerService(db)
    return [service.entry_to_dict(e) for e in service.get_entries(start_date, end_date, flow, kind)]


@router.get("/summary", response_model=LedgerSummaryResponse)
def get_summary(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """收银汇总"""
    return LedgerService(db).get_summary(start_date, end_date)


@router.post("/venta-makala", response_model=LedgerEntryResponse)
def create_makala_sale(
    data: MakalaSaleCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """Makala 销售（按金额）"""
    service = LedgerService(db)
    return service.entry_to_dict(service.create_makala_sale(data, operator_id=current_user.id))


@router.post("/venta-mak", response_model=LedgerEntryResponse)
def create_mak_sale(
    data: MakSaleCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """Mak 商品销售（按购物车）"""
    service = LedgerService(db)
    return service.entry_to_dict(service.create_mak_sale(data, operator_id=current_user.id))


@router.post("/egreso", response_model=LedgerEntryResponse)
def create_expense(
    data: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_counter_or_admin)
):
    """现金支出"""
    service = LedgerService(db)
    return service.entry_to_dict(service.create_expense(data, operator_id=current_user.id))


@router.put("/{entry_id}", response_model=LedgerEntryResponse)
def update_transaction(
    entry_id: int,
    data: LedgerEntryUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin)
):
    """修正流水（仅管理员）"""
    service = LedgerService(db)
    return service.entry_to_dict(service.update_entry(entry_id, data, operator_id=current_user.id))
