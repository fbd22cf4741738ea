"""
收银服务测试：销售、支出、查询、汇总、修正
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from frontdesk.config import settings
from frontdesk.errors import ConflictError, NotFoundError, OverpaymentError, StockError, ValidationError
from frontdesk.models.events import EventType
from frontdesk.models.ontology import (
    DebtBucket, LedgerEntry, LedgerFlow, LedgerKind, PaymentMethod, PaymentOrigin,
    StockMovement, StockMovementType
)
from frontdesk.models.schemas import (
    CartLine, ExpenseCreate, LedgerEntryUpdate, MakalaSaleCreate, MakSaleCreate
)
from frontdesk.services.ledger_service import LedgerService, local_day_bounds
from frontdesk.services.payment_allocator import PaymentAllocator

D = Decimal


@pytest.fixture
def ledger(db_session, publisher):
    return LedgerService(db_session, event_publisher=publisher)


def local_today():
    return datetime.now(ZoneInfo(settings.HOTEL_TIMEZONE)).date()


class TestSales:

    def test_walk_in_makala_sale(self, ledger):
        sale = ledger.create_makala_sale(MakalaSaleCreate(amount=D("35"), method=PaymentMethod.YAPE))
        assert sale.flow == LedgerFlow.INCOME
        assert sale.kind == LedgerKind.MAKALA_SALE
        assert sale.category == "Venta Makala"
        assert sale.method == PaymentMethod.YAPE
        assert sale.reservation_id is None

    def test_amount_must_be_positive(self, ledger):
        with pytest.raises(ValidationError):
            ledger.create_makala_sale(MakalaSaleCreate(amount=D("0")))

    def test_room_charge_without_room_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.create_makala_sale(MakalaSaleCreate(amount=D("10"), method=PaymentMethod.ROOM_CHARGE))

    def test_room_charge_without_active_stay_rejected(self, ledger, sample_room):
        with pytest.raises(ConflictError):
            ledger.create_makala_sale(MakalaSaleCreate(
                amount=D("10"), method=PaymentMethod.ROOM_CHARGE, room_id=sample_room.id,
            ))

    def test_cash_sale_to_room_without_stay_is_plain_sale(self, ledger, sample_room):
        sale = ledger.create_makala_sale(MakalaSaleCreate(amount=D("10"), room_id=sample_room.id))
        assert sale.flow == LedgerFlow.INCOME
        assert sale.room_id == sample_room.id
        assert sale.reservation_id is None

    def test_unknown_room(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.create_makala_sale(MakalaSaleCreate(amount=D("10"), room_id=404))

    def test_room_charge_to_active_stay(self, ledger, checked_in_reservation, sample_room, db_session, published):
        sale = ledger.create_makala_sale(MakalaSaleCreate(
            amount=D("40"), method=PaymentMethod.ROOM_CHARGE, room_id=sample_room.id,
        ))
        db_session.refresh(checked_in_reservation)

        assert sale.flow == LedgerFlow.CHARGE
        assert sale.bucket == DebtBucket.MAKALA
        assert sale.reservation_id == checked_in_reservation.id
        assert checked_in_reservation.consumption_total == D("40")
        assert checked_in_reservation.paid_amount == D("0")
        assert published[-1].event_type == EventType.CONSUMPTION_CHARGED

    def test_paid_sale_to_active_stay_adds_immediate_payment(self, ledger, checked_in_reservation,
                                                             sample_room, db_session):
        ledger.create_makala_sale(MakalaSaleCreate(amount=D("40"), room_id=sample_room.id))
        db_session.refresh(checked_in_reservation)

        payments = [e for e in checked_in_reservation.ledger_entries if e.is_payment]
        assert len(payments) == 1
        assert payments[0].origin == PaymentOrigin.IMMEDIATE
        assert payments[0].category == "Pago Inmediato (Venta Makala)"
        assert checked_in_reservation.paid_amount == D("40")
        # 挂账与即时付款相互抵消，欠款仍为房费
        assert checked_in_reservation.debt == D("198")

    def test_mak_sale_decrements_stock(self, ledger, sample_products, db_session):
        water, beer = sample_products
        sale = ledger.create_mak_sale(MakSaleCreate(products=[
            CartLine(product_id=water.id, quantity=2),
            CartLine(product_id=beer.id, quantity=1, unit_price=D("7.50")),
        ]))

        assert sale.amount == D("13.50")
        assert sale.category == "Venta Mak"
        assert [(line.name, line.quantity) for line in sale.product_lines] == [
            ("Agua mineral", 2), ("Cerveza", 1),
        ]
        db_session.refresh(water)
        db_session.refresh(beer)
        assert (water.stock, beer.stock) == (8, 4)
        movements = db_session.query(StockMovement).filter(StockMovement.reference_id == sale.id).all()
        assert {m.type for m in movements} == {StockMovementType.OUT}
        assert {m.reason for m in movements} == {"sale"}

    def test_mak_sale_insufficient_stock_rolls_back(self, ledger, sample_products, db_session):
        water, beer = sample_products
        with pytest.raises(StockError):
            ledger.create_mak_sale(MakSaleCreate(products=[
                CartLine(product_id=water.id, quantity=1),
                CartLine(product_id=beer.id, quantity=3),
                CartLine(product_id=beer.id, quantity=3),
            ]))
        db_session.refresh(water)
        assert water.stock == 10
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_mak_sale_to_stay_uses_mak_bucket(self, ledger, checked_in_reservation, sample_room, sample_products):
        water, _ = sample_products
        sale = ledger.create_mak_sale(MakSaleCreate(
            products=[CartLine(product_id=water.id, quantity=1)],
            method=PaymentMethod.ROOM_CHARGE,
            room_id=sample_room.id,
        ))
        assert sale.bucket == DebtBucket.MAK
        assert sale.method == PaymentMethod.ROOM_CHARGE


class TestExpensesAndQueries:

    def test_expense_is_cash(self, ledger):
        entry = ledger.create_expense(ExpenseCreate(amount=D("12"), category="Limpieza", description="Detergente"))
        assert entry.flow == LedgerFlow.EXPENSE
        assert entry.method == PaymentMethod.CASH

    @pytest.mark.parametrize("amount,category", [(D("0"), "Limpieza"), (D("5"), "  ")])
    def test_invalid_expense(self, ledger, amount, category):
        with pytest.raises(ValidationError):
            ledger.create_expense(ExpenseCreate(amount=amount, category=category))

    def test_list_filters_and_order(self, ledger):
        first = ledger.create_makala_sale(MakalaSaleCreate(amount=D("10")))
        second = ledger.create_expense(ExpenseCreate(amount=D("3"), category="Gas"))
        today = local_today()

        entries = ledger.get_entries(today - timedelta(days=1), today + timedelta(days=1))
        assert [e.id for e in entries] == [second.id, first.id]
        expenses = ledger.get_entries(flow=LedgerFlow.EXPENSE)
        assert [e.id for e in expenses] == [second.id]

    def test_summary(self, ledger, checked_in_reservation, sample_room):
        ledger.create_makala_sale(MakalaSaleCreate(amount=D("20")))
        ledger.create_makala_sale(MakalaSaleCreate(amount=D("15"), method=PaymentMethod.CARD))
        ledger.create_makala_sale(MakalaSaleCreate(
            amount=D("40"), method=PaymentMethod.ROOM_CHARGE, room_id=sample_room.id,
        ))
        ledger.create_expense(ExpenseCreate(amount=D("5"), category="Gas"))
        today = local_today()

        summary = ledger.get_summary(today - timedelta(days=1), today + timedelta(days=1))
        assert summary["income_by_method"]["cash"] == D("20")
        assert summary["income_by_method"]["card"] == D("15")
        assert "room_charge" not in summary["income_by_method"]
        assert summary["total_income"] == D("35")
        assert summary["total_expense"] == D("5")
        assert summary["room_charges"] == D("40")
        assert summary["net_cash"] == D("15")

    def test_summary_bad_range(self, ledger):
        today = local_today()
        with pytest.raises(ValidationError):
            ledger.get_summary(today, today - timedelta(days=1))

    def test_local_day_bounds_in_utc(self):
        today = local_today()
        lo, hi = local_day_bounds(today, today)
        assert lo.tzinfo is None
        assert hi - lo < timedelta(days=1)
        assert hi > lo


class TestUpdateEntry:

    def test_edit_product_sale_restocks_and_resells(self, ledger, sample_products, db_session):
        water, beer = sample_products
        sale = ledger.create_mak_sale(MakSaleCreate(products=[CartLine(product_id=water.id, quantity=4)]))

        edited = ledger.update_entry(sale.id, LedgerEntryUpdate(products=[
            CartLine(product_id=water.id, quantity=1),
            CartLine(product_id=beer.id, quantity=2),
        ]))

        assert edited.amount == D("19")
        db_session.refresh(water)
        db_session.refresh(beer)
        assert (water.stock, beer.stock) == (9, 3)
        corrections = db_session.query(StockMovement).filter(
            StockMovement.type == StockMovementType.IN
        ).all()
        assert [(m.quantity, m.reason) for m in corrections] == [(4, "correction")]

    def test_edit_amount_and_description(self, ledger):
        sale = ledger.create_makala_sale(MakalaSaleCreate(amount=D("10")))
        edited = ledger.update_entry(sale.id, LedgerEntryUpdate(amount=D("12"), description="Masaje"))
        assert (edited.amount, edited.description) == (D("12"), "Masaje")

    def test_products_on_non_product_entry_rejected(self, ledger, sample_products):
        water, _ = sample_products
        sale = ledger.create_makala_sale(MakalaSaleCreate(amount=D("10")))
        with pytest.raises(ValidationError):
            ledger.update_entry(sale.id, LedgerEntryUpdate(products=[CartLine(product_id=water.id, quantity=1)]))

    def test_switching_to_room_charge_rejected(self, ledger):
        sale = ledger.create_makala_sale(MakalaSaleCreate(amount=D("10")))
        with pytest.raises(ValidationError):
            ledger.update_entry(sale.id, LedgerEntryUpdate(method=PaymentMethod.ROOM_CHARGE))

    def test_expense_stays_cash(self, ledger):
        expense = ledger.create_expense(ExpenseCreate(amount=D("10"), category="Gas"))
        with pytest.raises(ValidationError):
            ledger.update_entry(expense.id, LedgerEntryUpdate(method=PaymentMethod.CARD))

    def test_payment_edit_resyncs_paid_amount(self, ledger, checked_in_reservation, db_session):
        PaymentAllocator(db_session).apply(checked_in_reservation.id, D("100"))
        payment = db_session.query(LedgerEntry).filter(
            LedgerEntry.kind == LedgerKind.RESERVATION_PAYMENT
        ).one()

        ledger.update_entry(payment.id, LedgerEntryUpdate(amount=D("80")))
        db_session.refresh(checked_in_reservation)
        assert checked_in_reservation.paid_amount == D("80")
        assert checked_in_reservation.debt == D("118")

    def test_payment_edit_above_debt_rejected(self, ledger, checked_in_reservation, db_session):
        PaymentAllocator(db_session).apply(checked_in_reservation.id, D("100"))
        payment = db_session.query(LedgerEntry).filter(
            LedgerEntry.kind == LedgerKind.RESERVATION_PAYMENT
        ).one()

        with pytest.raises(OverpaymentError):
            ledger.update_entry(payment.id, LedgerEntryUpdate(amount=D("500")))
        db_session.refresh(payment)
        assert payment.amount == D("100")

    def test_unknown_entry(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.update_entry(404, LedgerEntryUpdate(amount=D("1")))
