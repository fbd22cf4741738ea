"""
库存服务 - 商品出入库
整单校验通过后才扣减库存，任何一行不满足则整单拒绝
"""
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from sqlalchemy.orm import Session

from frontdesk.errors import NotFoundError, StockError, ValidationError
from frontdesk.models.ontology import (
    LedgerProductLine, Product, StockMovement, StockMovementType
)
from frontdesk.models.schemas import CartLine

logger = logging.getLogger(__name__)


@dataclass
class PricedLine:
    """已校验、已定价的购物车行"""
    product: Product
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_ledger_line(self) -> LedgerProductLine:
        return LedgerProductLine(
            product_id=self.product.id,
            name=self.product.name,
            unit_price=self.unit_price,
            quantity=self.quantity,
        )


def cart_total(lines: Iterable[PricedLine]) -> Decimal:
    return sum((line.subtotal for line in lines), Decimal("0"))


class InventoryService:
    """库存服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_products(self, in_stock: bool = False) -> List[Product]:
        query = self.db.query(Product)
        if in_stock:
            query = query.filter(Product.stock > 0)
        return query.order_by(Product.name).all()

    def _load_product(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(
            Product.id == product_id
        ).with_for_update().first()
        if not product:
            raise NotFoundError(f"商品 ID {product_id} 不存在")
        return product

    def quote(self, lines: Sequence[CartLine]) -> List[PricedLine]:
        """
        校验整张购物车并定价（不写库）

        - 至少一行
        - 数量为正整数
        - 商品存在
        - 同一商品多行合计不超过库存
        - 未指定单价时取商品标价
        """
        if not lines:
            raise ValidationError("未选择商品")

        priced: List[PricedLine] = []
        requested: Dict[int, int] = defaultdict(int)
        for line in lines:
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError(f"商品 ID {line.product_id} 的数量必须为正整数")
            if line.unit_price is not None and line.unit_price < 0:
                raise ValidationError(f"商品 ID {line.product_id} 的单价不能为负")

            product = self._load_product(line.product_id)
            requested[product.id] += line.quantity
            if product.stock < requested[product.id]:
                raise StockError(
                    f"{product.name} 库存不足（需要 {requested[product.id]}，剩余 {product.stock}）",
                    {"product_id": product.id, "stock": product.stock},
                )
            unit_price = line.unit_price if line.unit_price is not None else product.price
            priced.append(PricedLine(product, line.quantity, unit_price))
        return priced

    def sell(self, lines: Sequence[PricedLine], reference_id: int,
             operator_id: Optional[int], notes: Optional[str] = None) -> None:
        """扣减库存并写出库记录，reference_id 为关联的流水 ID"""
        for line in lines:
            product = line.product
            if product.stock < line.quantity:
                raise StockError(f"{product.name} 库存不足", {"product_id": product.id, "stock": product.stock})
            product.stock -= line.quantity
            self.db.add(StockMovement(
                product_id=product.id,
                type=StockMovementType.OUT,
                quantity=line.quantity,
                reason="sale",
                reference_type="ledger_entry",
                reference_id=reference_id,
                notes=notes,
                created_by=operator_id,
            ))
            logger.info(f"Stock out: {product.name} x{line.quantity} (entry {reference_id})")

    def restock(self, items: Iterable[Tuple[int, int]], reference_id: int,
                operator_id: Optional[int], reason: str = "correction",
                notes: Optional[str] = None) -> None:
        """
        入库（退回）

        Args:
            items: (product_id, quantity) 列表
        """
        for product_id, quantity in items:
            product = self.db.query(Product).filter(Product.id == product_id).with_for_update().first()
            if not product:
                # 商品已被删除时只跳过该行
                logger.warning(f"Restock skipped, product {product_id} no longer exists")
                continue
            product.stock += quantity
            self.db.add(StockMovement(
                product_id=product.id,
                type=StockMovementType.IN,
                quantity=quantity,
                reason=reason,
                reference_type="ledger_entry",
                reference_id=reference_id,
                notes=notes,
                created_by=operator_id,
            ))
            logger.info(f"Stock in: {product.name} x{quantity} ({reason}, entry {reference_id})")
