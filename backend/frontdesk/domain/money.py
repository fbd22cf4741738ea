"""
金额工具与容差常量
"""
from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0")
CENT = Decimal("0.01")

# 退房时允许的欠款残差
CHECKOUT_TOLERANCE = Decimal("0.01")
# 付款超出总欠款的容差
OVERPAYMENT_TOLERANCE = Decimal("0.1")
# 小于该值的分桶拆分不落账
ALLOCATION_EPSILON = Decimal("0.001")


def to_money(value) -> Decimal:
    """任意数值转两位小数 Decimal"""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def is_whole(value: Decimal) -> bool:
    return value == value.to_integral_value()
