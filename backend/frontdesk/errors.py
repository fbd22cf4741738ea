"""
业务异常体系

所有业务异常都继承 FrontDeskError（它本身是 ValueError），
携带 HTTP 状态码和可选的附加返回字段，由 main.py 中的统一处理器渲染。
"""
from decimal import Decimal
from typing import Any, Dict, Optional


class FrontDeskError(ValueError):
    """业务异常基类"""

    status_code: int = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, **self.extra}


class ValidationError(FrontDeskError):
    """请求字段缺失或非法（在事务开启前拒绝）"""


class NotFoundError(FrontDeskError):
    """预订/房间/商品/流水不存在"""

    status_code = 404


class ConflictError(FrontDeskError):
    """与现有预订或房态冲突"""


class InvalidTransitionError(ConflictError):
    """当前状态不允许该生命周期事件"""

    def __init__(self, current: str, event: str):
        super().__init__(
            f"预订状态为 {current}，不允许执行 {event}",
            {"status": current, "event": event},
        )
        self.current = current
        self.event = event


class InsufficientFundsError(FrontDeskError):
    """金额相关的拒绝，返回剩余欠款供前端展示"""

    def __init__(self, message: str, debt: Decimal):
        super().__init__(message, {"debt": f"{debt:.2f}"})
        self.debt = debt


class DebtRemainingError(InsufficientFundsError):
    """仍有欠款（退房/删除被拒）"""


class OverpaymentError(InsufficientFundsError):
    """付款超过总欠款"""


class StockError(FrontDeskError):
    """库存不足（整单回滚）"""


class PermissionDeniedError(FrontDeskError):
    """当前角色无权修改该字段"""

    status_code = 403


class DocumentValidationError(FrontDeskError):
    """证件 OCR 校验未通过"""
