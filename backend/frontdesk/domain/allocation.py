"""
付款瀑布分配（纯函数）

三个独立欠款桶按 Room → Mak → Makala 首尾相接排在一条数轴上，
通用付款游标从已付通用池位置向前推进 amount，
与每个桶所在区间求交集即为该桶分得的金额。
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, List, Sequence, Tuple

from frontdesk.domain.money import ZERO
from frontdesk.models.ontology import DebtBucket

# 冲抵优先级
BUCKET_ORDER = (DebtBucket.ROOM, DebtBucket.MAK, DebtBucket.MAKALA)


@dataclass(frozen=True)
class BucketState:
    """
    单个欠款桶

    Attributes:
        bucket: 桶
        gross: 应付总额（房费或该类挂账合计）
        immediate: 销售当下已即时付清的金额（房费桶恒为 0）
    """
    bucket: DebtBucket
    gross: Decimal
    immediate: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        """仍需通用付款覆盖的部分"""
        return max(ZERO, self.gross - self.immediate)


def ordered(buckets: Sequence[BucketState]) -> List[BucketState]:
    by_bucket = {b.bucket: b for b in buckets}
    return [by_bucket.get(name, BucketState(name, ZERO)) for name in BUCKET_ORDER]


def _layout(buckets: Sequence[BucketState]) -> Iterator[Tuple[DebtBucket, Decimal, Decimal]]:
    cursor = ZERO
    for b in ordered(buckets):
        yield b.bucket, cursor, cursor + b.net
        cursor += b.net


def intersect(buckets: Sequence[BucketState], lo: Decimal, hi: Decimal) -> Dict[DebtBucket, Decimal]:
    """数轴区间 [lo, hi) 落在各桶中的长度"""
    result = {}
    for bucket, start, end in _layout(buckets):
        result[bucket] = max(ZERO, min(hi, end) - max(lo, start))
    return result


def generic_pool(paid_amount: Decimal, buckets: Sequence[BucketState]) -> Decimal:
    """已付通用池 = 已付 - 即时付款合计，下限为 0"""
    immediate_total = sum((b.immediate for b in buckets), ZERO)
    return max(ZERO, paid_amount - immediate_total)


def allocate_payment(buckets: Sequence[BucketState],
                     generic_paid: Decimal,
                     amount: Decimal) -> Dict[DebtBucket, Decimal]:
    """
    计算一笔新通用付款在各桶的拆分

    Args:
        buckets: 三个欠款桶（缺失的视为 0）
        generic_paid: 已付通用池
        amount: 本次付款

    Returns:
        {bucket: 分得金额}，按 Room/Mak/Makala 顺序；超出全部净欠款的部分不分配
    """
    return intersect(buckets, generic_paid, generic_paid + amount)
