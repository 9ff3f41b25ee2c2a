"""
Line Item Service - order-subsystem hooks the ledger depends on.

This service creates orders and their line items, makes them payable when the
order is delivered, and runs the reversal path (refund or cancellation after
delivery). It never marks anything paid; that is the payout processor's job.
"""
import logging
import os
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from dotenv import load_dotenv

from errors import ConflictError, LedgerStateError, NotFoundError, ValidationError
from models import LineItem, LineItemReversal, Order, Payout, Supplier
from models.base import utcnow
from models.line_item import PaymentState
from models.order import ShipmentStatus

load_dotenv()

log = logging.getLogger("ledger.line_items")

# Site commission kept by the storefront (0.10 means the supplier keeps 90%)
SITE_COMMISSION_RATE = Decimal(os.getenv("SITE_COMMISSION_RATE", "0.10"))

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
     """Round to cents, half-up."""
     return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_supplier_net(
     unit_price: Decimal,
     quantity: int,
     commission_rate: Optional[Decimal] = None
) -> Decimal:
     """
     Net amount the supplier earns for an item: revenue minus site commission.

     unit_price is the price after customer discounts and before tax.
     """
     if commission_rate is None:
          commission_rate = SITE_COMMISSION_RATE
     commission_rate = Decimal(str(commission_rate))
     if not Decimal("0") <= commission_rate < Decimal("1"):
          raise ValidationError(f"Commission rate must be in [0, 1), got {commission_rate}")
     revenue = Decimal(str(unit_price)) * quantity
     return to_money(revenue * (Decimal("1") - commission_rate))


class LineItemService:
     """Service class for line item lifecycle operations."""

     @staticmethod
     def create_order(
          db: Session,
          items: Iterable[dict],
          commission_rate: Optional[Decimal] = None
     ) -> Order:
          """
          Create an order with unbilled line items.

          Args:
               db: SQLAlchemy database session
               items: dicts with supplier_id, name, quantity, unit_price
               commission_rate: Overrides SITE_COMMISSION_RATE for this order

          Returns:
               Created Order (flushed, not committed)

          Raises:
               ValidationError: If items are empty or malformed
               NotFoundError: If a supplier doesn't exist
          """
          items = list(items)
          if not items:
               raise ValidationError("An order needs at least one line item")

          count = db.query(func.count(Order.id)).scalar() or 0
          order = Order(
               order_number=f"SPF-{int(time.time() * 1000)}-{count + 1:04d}",
               shipment_status=ShipmentStatus.PENDING,
          )

          for entry in items:
               try:
                    supplier_id = entry["supplier_id"]
                    name = entry["name"]
                    quantity = int(entry["quantity"])
                    unit_price = to_money(entry["unit_price"])
               except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                    raise ValidationError(f"Malformed line item {entry!r}: {exc!r}") from exc
               if quantity < 1:
                    raise ValidationError(f"Quantity must be at least 1 for '{name}'")
               if unit_price < 0:
                    raise ValidationError(f"Unit price cannot be negative for '{name}'")

               supplier = db.get(Supplier, supplier_id)
               if supplier is None:
                    raise NotFoundError(f"Supplier with ID {supplier_id} not found")

               order.items.append(
                    LineItem(
                         supplier_id=supplier.id,
                         name=name,
                         quantity=quantity,
                         unit_price=unit_price,
                         total=compute_supplier_net(unit_price, quantity, commission_rate),
                         payment_state=PaymentState.UNBILLED,
                    )
               )

          db.add(order)
          db.flush()  # Flush to get the IDs without committing
          return order

     @staticmethod
     def mark_order_delivered(
          db: Session,
          order_id: int,
          delivered_at: Optional[datetime] = None
     ) -> Order:
          """
          Mark an order delivered and make its unbilled items payable.

          Sets eligible_at on every unbilled item and moves it to pending.
          Calling this again on a delivered order changes nothing.

          Raises:
               NotFoundError: If the order doesn't exist
               LedgerStateError: If the order was cancelled or returned
          """
          order = db.get(Order, order_id)
          if order is None:
               raise NotFoundError(f"Order with ID {order_id} not found")

          if order.shipment_status in (ShipmentStatus.CANCELLED, ShipmentStatus.RETURNED):
               raise LedgerStateError(
                    f"Order {order.order_number} is {order.shipment_status.value} and cannot be delivered"
               )

          if delivered_at is None:
               delivered_at = utcnow()

          if not order.is_delivered:
               order.shipment_status = ShipmentStatus.DELIVERED
               order.delivered_at = delivered_at

          made_payable = 0
          for item in order.items:
               if item.payment_state == PaymentState.UNBILLED:
                    item.eligible_at = delivered_at
                    item.payment_state = PaymentState.PENDING
                    made_payable += 1

          try:
               db.flush()
          except StaleDataError:
               db.rollback()
               raise ConflictError(
                    f"Order {order_id} was modified concurrently; reload and retry"
               )

          log.info("Order %s delivered, %d item(s) now payable", order.order_number, made_payable)
          return order

     @staticmethod
     def reverse_line_item(
          db: Session,
          order_id: int,
          item_id: int,
          reason: str
     ) -> LineItemReversal:
          """
          Reverse a pending or paid line item and record the compensating entry.

          The item's state write is version-checked; losing a race to another
          writer rolls everything back and raises ConflictError. Commits on
          success.

          Raises:
               NotFoundError: If the line item doesn't exist
               ValidationError: If no reason is given
               LedgerStateError: If the item is unbilled or already reversed
               ConflictError: If the item changed concurrently
          """
          if not reason or not reason.strip():
               raise ValidationError("A reversal reason is required")

          item = (
               db.query(LineItem)
               .filter(LineItem.order_id == order_id, LineItem.id == item_id)
               .first()
          )
          if item is None:
               raise NotFoundError(f"Line item ({order_id}, {item_id}) not found")

          try:
               reversal = LineItemService._reverse(db, item, reason.strip())
               db.flush()
               db.commit()
          except (StaleDataError, IntegrityError):
               db.rollback()
               raise ConflictError(
                    f"Line item ({order_id}, {item_id}) changed concurrently",
                    [(order_id, item_id)],
               )
          except LedgerStateError:
               db.rollback()
               raise

          log.info(
               "Reversed line item (%s, %s) from %s, amount %s",
               order_id, item_id, reversal.previous_state, reversal.amount
          )
          return reversal

     @staticmethod
     def reverse_payout(db: Session, payout_id: str, reason: str) -> List[LineItemReversal]:
          """
          Reverse a whole payout batch.

          Every item of the payout that is still paid is reversed and the
          payout is stamped with reversed_at. Items that were already
          reversed on their own are left alone. Commits on success.

          Raises:
               NotFoundError: If the payout doesn't exist
               ConflictError: If the payout was already reversed or an item changed concurrently
          """
          if not reason or not reason.strip():
               raise ValidationError("A reversal reason is required")

          payout = db.get(Payout, payout_id)
          if payout is None:
               raise NotFoundError(f"Payout {payout_id} not found")
          if payout.is_reversed:
               raise ConflictError(f"Payout {payout_id} was already reversed")

          refs = payout.item_refs
          items = (
               db.query(LineItem)
               .filter(LineItem.payout_id == payout_id)
               .order_by(LineItem.id)
               .all()
          )

          reversals = []
          try:
               for item in items:
                    if item.payment_state == PaymentState.PAID:
                         reversals.append(LineItemService._reverse(db, item, reason.strip()))
               payout.reversed_at = utcnow()
               db.flush()
               db.commit()
          except (StaleDataError, IntegrityError):
               db.rollback()
               raise ConflictError(
                    f"Items of payout {payout_id} changed concurrently",
                    refs,
               )

          log.info("Reversed payout %s (%d item(s))", payout_id, len(reversals))
          return reversals

     @staticmethod
     def _reverse(db: Session, item: LineItem, reason: str) -> LineItemReversal:
          previous_state = item.payment_state
          # The validator rejects unbilled and reversed items
          item.payment_state = PaymentState.REVERSED

          reversal = LineItemReversal(
               order_id=item.order_id,
               item_id=item.id,
               supplier_id=item.supplier_id,
               previous_state=previous_state.value,
               amount=item.total,
               payout_id=item.payout_id,
               reason=reason,
          )
          db.add(reversal)
          return reversal
