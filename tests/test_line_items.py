"""Line item lifecycle: creation, delivery, state machine guards, reversals."""

from decimal import Decimal

import pytest

from conftest import make_order, make_supplier
from errors import ConflictError, LedgerStateError, NotFoundError, ValidationError
from models import LineItem, LineItemReversal, Order
from models.line_item import PaymentState, can_transition
from models.order import ShipmentStatus
from services import balance_service, payout_service
from services.line_item_service import LineItemService, compute_supplier_net


def _item(db, ref):
    return (
        db.query(LineItem)
        .filter(LineItem.order_id == ref[0], LineItem.id == ref[1])
        .populate_existing()
        .one()
    )


class TestSupplierNet:
    def test_default_commission_keeps_ninety_percent(self):
        assert compute_supplier_net(Decimal("20.00"), 2) == Decimal("36.00")

    def test_rounds_half_up_to_cents(self):
        assert compute_supplier_net(Decimal("0.05"), 1, Decimal("0.10")) == Decimal("0.05")
        assert compute_supplier_net(Decimal("10.01"), 3, Decimal("0.15")) == Decimal("25.53")

    def test_rejects_commission_out_of_range(self):
        with pytest.raises(ValidationError):
            compute_supplier_net(Decimal("10"), 1, Decimal("1"))


class TestOrderLifecycle:
    def test_new_items_are_unbilled_and_not_earned(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10], delivered=False)

        item = _item(db, ref)
        assert item.payment_state == PaymentState.UNBILLED
        assert item.eligible_at is None
        assert balance_service.get_balance(db, supplier.id).total_earned == Decimal("0.00")

    def test_create_order_applies_commission(self, db):
        supplier = make_supplier(db)
        order = LineItemService.create_order(
            db,
            [{"supplier_id": supplier.id, "name": "Ball", "quantity": 3, "unit_price": "10.00"}],
        )
        assert order.order_number.startswith("SPF-")
        assert order.items[0].total == Decimal("27.00")

    def test_create_order_unknown_supplier(self, db):
        with pytest.raises(NotFoundError):
            LineItemService.create_order(
                db, [{"supplier_id": 99, "name": "Ball", "quantity": 1, "unit_price": "1"}]
            )

    def test_create_order_requires_items(self, db):
        with pytest.raises(ValidationError):
            LineItemService.create_order(db, [])

    @pytest.mark.parametrize(
        "entry",
        [
            {"name": "Ball", "quantity": 1, "unit_price": "1"},
            {"supplier_id": 1, "name": "Ball", "unit_price": "1"},
            {"supplier_id": 1, "name": "Ball", "quantity": "x", "unit_price": "1"},
            {"supplier_id": 1, "name": "Ball", "quantity": 1, "unit_price": "x"},
            {"supplier_id": 1, "name": "Ball", "quantity": None, "unit_price": "1"},
        ],
    )
    def test_create_order_rejects_malformed_items(self, db, entry):
        make_supplier(db)
        with pytest.raises(ValidationError, match="Malformed line item"):
            LineItemService.create_order(db, [entry])

    def test_delivery_makes_items_pending(self, db):
        supplier = make_supplier(db)
        refs = make_order(db, supplier, [10, 20], delivered=False)

        order = LineItemService.mark_order_delivered(db, refs[0][0])
        db.commit()

        assert order.shipment_status == ShipmentStatus.DELIVERED
        for ref in refs:
            item = _item(db, ref)
            assert item.payment_state == PaymentState.PENDING
            assert item.eligible_at == order.delivered_at

    def test_delivery_is_repeatable(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10])
        first_eligible = _item(db, ref).eligible_at

        LineItemService.mark_order_delivered(db, ref[0])
        db.commit()

        assert _item(db, ref).eligible_at == first_eligible

    def test_cancelled_order_cannot_be_delivered(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10], delivered=False)
        order = db.get(Order, ref[0])
        order.shipment_status = ShipmentStatus.CANCELLED
        db.commit()

        with pytest.raises(LedgerStateError):
            LineItemService.mark_order_delivered(db, ref[0])

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            LineItemService.mark_order_delivered(db, 404)


class TestStateMachineGuards:
    def test_transition_table(self):
        assert can_transition(PaymentState.UNBILLED, PaymentState.PENDING)
        assert can_transition(PaymentState.PENDING, PaymentState.PAID)
        assert can_transition(PaymentState.PAID, PaymentState.REVERSED)
        assert can_transition(PaymentState.PENDING, PaymentState.REVERSED)
        assert not can_transition(PaymentState.PAID, PaymentState.PENDING)
        assert not can_transition(PaymentState.UNBILLED, PaymentState.PAID)
        assert not can_transition(PaymentState.REVERSED, PaymentState.PENDING)

    def test_orm_write_of_paid_is_rejected(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10])

        item = _item(db, ref)
        with pytest.raises(LedgerStateError, match="payout processor"):
            item.payment_state = PaymentState.PAID
        assert item.payment_state == PaymentState.PENDING

    def test_paid_never_goes_back_to_pending(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10])
        payout_service.initiate_payout(db, supplier.id, [ref], "k1")

        item = _item(db, ref)
        with pytest.raises(LedgerStateError):
            item.payment_state = PaymentState.PENDING

    def test_new_item_cannot_start_reversed(self):
        with pytest.raises(LedgerStateError):
            LineItem(name="x", quantity=1, unit_price=1, total=1, payment_state=PaymentState.REVERSED)

    def test_total_is_frozen_once_eligible(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10])

        item = _item(db, ref)
        with pytest.raises(LedgerStateError):
            item.total = Decimal("99.00")

    def test_total_can_change_before_eligibility(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10], delivered=False)

        item = _item(db, ref)
        item.total = Decimal("12.00")
        db.commit()
        assert _item(db, ref).total == Decimal("12.00")

    def test_ledger_writes_bump_version(self, db):
        supplier = make_supplier(db)
        (ref,) = make_order(db, supplier, [10], delivered=False)
        v0 = _item(db, ref).version

        LineItemService.mark_order_delivered(db, ref[0])
        db.commit()
        v1 = _item(db, ref).version
        payout_service.initiate_payout(db, supplier.id, [ref], "k1")
        v2 = _item(db, ref).version

        assert v0 < v1 < v2


class TestReversals:
    def test_reverse_paid_item_keeps_history(self, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])
        result = payout_service.initiate_payout(db, supplier.id, [a, b], "k1")

        reversal = LineItemService.reverse_line_item(db, a[0], a[1], "customer refund")

        assert reversal.previous_state == "paid"
        assert reversal.payout_id == result.payout_id
        assert reversal.amount == Decimal("10.00")
        item = _item(db, a)
        assert item.payment_state == PaymentState.REVERSED
        assert item.payout_id == result.payout_id

        balance = balance_service.get_balance(db, supplier.id)
        assert balance.total_earned == Decimal("30.00")
        assert balance.total_paid == Decimal("20.00")
        assert balance.total_reversed == Decimal("10.00")
        assert balance.is_reconciled
        # The payout record itself is unchanged
        assert payout_service.get_payout(db, result.payout_id).amount == Decimal("30.00")

    def test_reverse_pending_item_leaves_it_unpayable(self, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10])

        LineItemService.reverse_line_item(db, a[0], a[1], "cancelled after delivery")

        balance = balance_service.get_balance(db, supplier.id)
        assert balance.pending_amount == Decimal("0.00")
        assert balance.total_reversed == Decimal("10.00")
        with pytest.raises(ConflictError):
            payout_service.initiate_payout(db, supplier.id, [a], "k1")

    def test_reverse_twice_is_rejected(self, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10])
        LineItemService.reverse_line_item(db, a[0], a[1], "refund")

        with pytest.raises(LedgerStateError):
            LineItemService.reverse_line_item(db, a[0], a[1], "refund again")
        assert db.query(LineItemReversal).count() == 1

    def test_unbilled_item_cannot_be_reversed(self, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10], delivered=False)

        with pytest.raises(LedgerStateError):
            LineItemService.reverse_line_item(db, a[0], a[1], "refund")

    def test_reason_is_required(self, db):
        with pytest.raises(ValidationError):
            LineItemService.reverse_line_item(db, 1, 1, "  ")

    def test_unknown_item(self, db):
        with pytest.raises(NotFoundError):
            LineItemService.reverse_line_item(db, 1, 1, "refund")

    def test_reverse_whole_payout(self, db):
        supplier = make_supplier(db)
        a, b, c = make_order(db, supplier, [10, 20, 5])
        result = payout_service.initiate_payout(db, supplier.id, [a, b], "k1")

        reversals = LineItemService.reverse_payout(db, result.payout_id, "chargeback")

        assert sorted((r.order_id, r.item_id) for r in reversals) == sorted([a, b])
        assert payout_service.get_payout(db, result.payout_id).is_reversed
        balance = balance_service.get_balance(db, supplier.id)
        assert balance.total_paid == Decimal("0.00")
        assert balance.pending_amount == Decimal("5.00")
        assert balance.total_reversed == Decimal("30.00")
        assert balance.is_reconciled

        with pytest.raises(ConflictError):
            LineItemService.reverse_payout(db, result.payout_id, "again")

    def test_reverse_payout_skips_items_already_reversed(self, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])
        result = payout_service.initiate_payout(db, supplier.id, [a, b], "k1")
        LineItemService.reverse_line_item(db, a[0], a[1], "refund")

        reversals = LineItemService.reverse_payout(db, result.payout_id, "chargeback")

        assert [(r.order_id, r.item_id) for r in reversals] == [b]

    def test_reverse_unknown_payout(self, db):
        with pytest.raises(NotFoundError):
            LineItemService.reverse_payout(db, "missing", "refund")
