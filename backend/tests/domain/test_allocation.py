"""
付款瀑布分配测试
"""
from decimal import Decimal
from itertools import permutations

import pytest

from frontdesk.domain.allocation import (
    BucketState, allocate_payment, generic_pool, intersect, ordered
)
from frontdesk.models.ontology import DebtBucket

D = Decimal
ROOM, MAK, MAKALA = DebtBucket.ROOM, DebtBucket.MAK, DebtBucket.MAKALA


def buckets(room="100", mak="30", makala="20", mak_immediate="0", makala_immediate="0"):
    return [
        BucketState(ROOM, D(room)),
        BucketState(MAK, D(mak), D(mak_immediate)),
        BucketState(MAKALA, D(makala), D(makala_immediate)),
    ]


class TestAllocation:

    def test_first_payment_fills_room_then_mak(self):
        split = allocate_payment(buckets(), D("0"), D("120"))
        assert split == {ROOM: D("100"), MAK: D("20"), MAKALA: D("0")}

    def test_second_payment_continues_from_pool(self):
        split = allocate_payment(buckets(), D("120"), D("30"))
        assert split == {ROOM: D("0"), MAK: D("10"), MAKALA: D("20")}

    def test_immediate_payments_reduce_net(self):
        state = buckets(mak_immediate="30")
        assert [b.net for b in state] == [D("100"), D("0"), D("20")]
        split = allocate_payment(state, D("100"), D("20"))
        assert split[MAKALA] == D("20")
        assert split[MAK] == D("0")

    def test_excess_beyond_debt_is_not_allocated(self):
        split = allocate_payment(buckets(), D("140"), D("50"))
        assert sum(split.values()) == D("10")

    def test_generic_pool_excludes_immediate(self):
        state = buckets(mak_immediate="30", makala_immediate="5")
        assert generic_pool(D("135"), state) == D("100")
        assert generic_pool(D("10"), state) == D("0")

    def test_order_independent_of_input_order(self):
        state = buckets()
        expected = allocate_payment(state, D("50"), D("70"))
        for perm in permutations(state):
            assert allocate_payment(list(perm), D("50"), D("70")) == expected

    def test_missing_bucket_treated_as_zero(self):
        state = ordered([BucketState(ROOM, D("50"))])
        assert [b.bucket for b in state] == [ROOM, MAK, MAKALA]
        assert intersect(state, D("0"), D("80")) == {ROOM: D("50"), MAK: D("0"), MAKALA: D("0")}

    def test_split_sum_matches_covered_debt(self):
        state = buckets()
        for paid in (D("0"), D("40"), D("99"), D("130")):
            for amount in (D("1"), D("25"), D("150")):
                split = allocate_payment(state, paid, amount)
                covered = min(paid + amount, D("150")) - min(paid, D("150"))
                assert sum(split.values()) == covered


def pay_in_sequence(state, payments):
    """逐笔付款，已付通用池随之前移，返回各桶累计分得金额"""
    totals = {ROOM: D("0"), MAK: D("0"), MAKALA: D("0")}
    paid = D("0")
    for amount in payments:
        for bucket, share in allocate_payment(state, paid, amount).items():
            totals[bucket] += share
        paid += amount
    return totals


class TestPaymentSequences:
    """付清全部净欠款的不同付款序列，各桶累计结果一致"""

    @pytest.mark.parametrize("payments", [
        [D("150")],
        [D("120"), D("30")],
        [D("1")] * 150,
        [D("99"), D("1"), D("50")],
        [D("30"), D("70"), D("45"), D("5")],
    ])
    def test_full_settlement(self, payments):
        assert pay_in_sequence(buckets(), payments) == {ROOM: D("100"), MAK: D("30"), MAKALA: D("20")}

    @pytest.mark.parametrize("payments", [
        [D("125")],
        [D("100"), D("25")],
        [D("1")] * 125,
        [D("99"), D("1"), D("25")],
    ])
    def test_full_settlement_with_immediate_payments(self, payments):
        # Mak 即时付清 10，Makala 即时付清 15，净欠款 100 + 20 + 5
        state = buckets(mak_immediate="10", makala_immediate="15")
        assert pay_in_sequence(state, payments) == {ROOM: D("100"), MAK: D("20"), MAKALA: D("5")}
