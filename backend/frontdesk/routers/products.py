"""
商品路由（收银台只读列表）
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.models.ontology import Employee
from frontdesk.models.schemas import ProductResponse
from frontdesk.security.auth import get_current_user
from frontdesk.services.inventory_service import InventoryService

router = APIRouter(prefix="/products", tags=["商品"])


@router.get("", response_model=List[ProductResponse])
def list_products(
    in_stock: bool = False,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取商品列表"""
    return InventoryService(db).get_products(in_stock=in_stock)
