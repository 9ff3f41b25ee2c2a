"""
Balance Service - derives supplier balances from line item state.

Nothing here is cached or written: every call re-reads the line items in a
single query and partitions them by payment_state, so each item lands in
exactly one bucket of the snapshot.

     total_earned == total_paid + pending_amount + total_reversed
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import NotFoundError
from models import LineItem, Order, Payout, PayoutItem, Supplier
from models.line_item import PaymentState

ZERO = Decimal("0.00")


@dataclass
class PendingItem:
     order_id: int
     order_number: str
     item_id: int
     name: str
     quantity: int
     unit_price: Decimal
     total: Decimal
     eligible_at: Optional[datetime] = None


@dataclass
class SupplierBalance:
     supplier_id: int
     business_name: str
     total_earned: Decimal = ZERO
     total_paid: Decimal = ZERO
     pending_amount: Decimal = ZERO
     total_reversed: Decimal = ZERO
     pending_items: List[PendingItem] = field(default_factory=list)

     @property
     def pending_items_count(self) -> int:
          return len(self.pending_items)

     @property
     def is_reconciled(self) -> bool:
          return self.total_earned == self.total_paid + self.pending_amount + self.total_reversed


def _partition(rows) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
     """Sum (earned, paid, pending, reversed) over eligible line items."""
     earned = paid = pending = reversed_ = ZERO
     for item in rows:
          if item.eligible_at is None:
               continue
          earned += item.total
          if item.payment_state == PaymentState.PAID:
               paid += item.total
          elif item.payment_state == PaymentState.PENDING:
               pending += item.total
          elif item.payment_state == PaymentState.REVERSED:
               reversed_ += item.total
     return earned, paid, pending, reversed_


def get_balance(db: Session, supplier_id: int) -> SupplierBalance:
     """
     Compute the balance of one supplier.

     Raises:
          NotFoundError: If the supplier does not exist.
     """
     supplier = db.get(Supplier, supplier_id)
     if supplier is None:
          raise NotFoundError(f"Supplier with ID {supplier_id} not found")

     rows = (
          db.query(LineItem, Order.order_number)
          .join(Order, LineItem.order_id == Order.id)
          .filter(LineItem.supplier_id == supplier_id)
          .order_by(LineItem.eligible_at, LineItem.order_id, LineItem.id)
          .populate_existing()
          .all()
     )

     earned, paid, pending, reversed_ = _partition(item for item, _ in rows)
     pending_items = [
          PendingItem(
               order_id=item.order_id,
               order_number=order_number,
               item_id=item.id,
               name=item.name,
               quantity=item.quantity,
               unit_price=item.unit_price,
               total=item.total,
               eligible_at=item.eligible_at,
          )
          for item, order_number in rows
          if item.payment_state == PaymentState.PENDING
     ]

     return SupplierBalance(
          supplier_id=supplier.id,
          business_name=supplier.business_name,
          total_earned=earned,
          total_paid=paid,
          pending_amount=pending,
          total_reversed=reversed_,
          pending_items=pending_items,
     )


def get_payment_analysis(db: Session) -> dict:
     """
     Payment totals across all suppliers with a per-supplier breakdown
     (admin payment analysis).
     """
     rows = (
          db.query(LineItem, Supplier.business_name)
          .join(Supplier, LineItem.supplier_id == Supplier.id)
          .filter(LineItem.eligible_at.isnot(None))
          .order_by(LineItem.supplier_id, LineItem.id)
          .populate_existing()
          .all()
     )

     by_supplier: Dict[int, dict] = {}
     items_by_supplier: Dict[int, list] = {}
     for item, business_name in rows:
          by_supplier.setdefault(item.supplier_id, {"supplier_id": item.supplier_id, "business_name": business_name})
          items_by_supplier.setdefault(item.supplier_id, []).append(item)

     suppliers = []
     totals = [ZERO, ZERO, ZERO]
     for supplier_id, entry in by_supplier.items():
          earned, paid, pending, reversed_ = _partition(items_by_supplier[supplier_id])
          entry.update(
               total_earned=earned,
               total_paid=paid,
               pending_amount=pending,
               total_reversed=reversed_,
          )
          suppliers.append(entry)
          totals[0] += paid
          totals[1] += pending
          totals[2] += reversed_

     return {
          "total_paid": totals[0],
          "total_pending": totals[1],
          "total_reversed": totals[2],
          "suppliers": suppliers,
     }


def check_reconciliation(db: Session, supplier_id: int) -> Tuple[bool, str]:
     """
     Verify a supplier's ledger invariants.

     Returns:
          (success: bool, message: str)
          - (True, "Reconciliation passed") if every check holds
          - (False, reason) for the first failing check
     """
     balance = get_balance(db, supplier_id)
     if not balance.is_reconciled:
          return False, (
               f"Balance mismatch: earned={balance.total_earned}, paid={balance.total_paid}, "
               f"pending={balance.pending_amount}, reversed={balance.total_reversed}"
          )

     # At most one payout per line item
     duplicated = (
          db.query(PayoutItem.order_id, PayoutItem.item_id)
          .join(Payout, PayoutItem.payout_id == Payout.id)
          .filter(Payout.supplier_id == supplier_id)
          .group_by(PayoutItem.order_id, PayoutItem.item_id)
          .having(func.count(PayoutItem.id) > 1)
          .all()
     )
     if duplicated:
          return False, f"Line items paid more than once: {[tuple(row) for row in duplicated]}"

     payouts = db.query(Payout).filter(Payout.supplier_id == supplier_id).all()
     for payout in payouts:
          item_sum = sum((item.amount for item in payout.items), ZERO)
          if item_sum != payout.amount:
               return False, f"Payout {payout.id} amount {payout.amount} != sum of items {item_sum}"

     paid_items = (
          db.query(LineItem)
          .filter(
               LineItem.supplier_id == supplier_id,
               LineItem.payment_state == PaymentState.PAID,
          )
          .all()
     )
     recorded = {
          (item.order_id, item.item_id): item.payout_id
          for payout in payouts
          for item in payout.items
     }
     for item in paid_items:
          if item.payout_id is None or recorded.get(item.ref) != item.payout_id:
               return False, f"Paid line item {item.ref} is not recorded in payout {item.payout_id}"

     return True, "Reconciliation passed"
