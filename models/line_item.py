"""
LineItem model - one product entry within an order, attributable to one supplier.

The ledger owns three columns here: payment_state, payout_id and version.
payment_state follows a small state machine:

     unbilled -> pending -> paid -> reversed
                    \\-------------> reversed

The unbilled -> pending step happens when the parent order is delivered.
pending -> paid is written only by the payout processor, through a versioned
conditional UPDATE that bypasses the ORM; the validator below rejects any
ORM write of ``paid``. version is SQLAlchemy's version counter, so every ORM
flush of a line item is an optimistic compare-and-set as well.
"""
import enum
from sqlalchemy import (
     Column,
     Integer,
     String,
     Numeric,
     DateTime,
     ForeignKey,
     Enum,
     Index,
     inspect,
)
from sqlalchemy.orm import relationship, validates

from errors import LedgerStateError
from .base import Base


class PaymentState(str, enum.Enum):
     """Supplier payment state of a line item."""
     UNBILLED = "unbilled"
     PENDING = "pending"
     PAID = "paid"
     REVERSED = "reversed"


ALLOWED_TRANSITIONS = {
     PaymentState.UNBILLED: {PaymentState.PENDING},
     PaymentState.PENDING: {PaymentState.PAID, PaymentState.REVERSED},
     PaymentState.PAID: {PaymentState.REVERSED},
     PaymentState.REVERSED: set(),
}

# States a brand-new line item may start in.
INITIAL_STATES = {PaymentState.UNBILLED, PaymentState.PENDING}


def can_transition(current: PaymentState, target: PaymentState) -> bool:
     return target in ALLOWED_TRANSITIONS.get(current, set())


class LineItem(Base):
     id = Column(Integer, primary_key=True, autoincrement=True)

     # Foreign keys
     order_id = Column(
          Integer,
          ForeignKey("orders.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     supplier_id = Column(
          Integer,
          ForeignKey("suppliers.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )

     # Item details (finalized by the order subsystem)
     name = Column(String(255), nullable=False)
     quantity = Column(Integer, nullable=False)
     unit_price = Column(Numeric(12, 2), nullable=False)
     total = Column(Numeric(12, 2), nullable=False)  # net payable to the supplier

     # Ledger state
     eligible_at = Column(DateTime, nullable=True)
     payment_state = Column(
          Enum(
               PaymentState,
               name="payment_state",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=PaymentState.UNBILLED,
          nullable=False,
          index=True
     )
     payout_id = Column(
          String(36),
          ForeignKey("payouts.id", ondelete="RESTRICT"),
          nullable=True,
          index=True
     )
     version = Column(Integer, nullable=False)

     # Relationships
     order = relationship("Order", back_populates="items")
     supplier = relationship("Supplier", back_populates="line_items")
     payout = relationship("Payout", foreign_keys=[payout_id])

     __table_args__ = (
          Index("ix_line_items_supplier_state", "supplier_id", "payment_state"),
     )
     __mapper_args__ = {"version_id_col": version}

     def __repr__(self):
          return (
               f"<LineItem(order_id={self.order_id}, id={self.id}, supplier_id={self.supplier_id}, "
               f"total={self.total}, state='{self.payment_state.value if self.payment_state else None}')>"
          )

     @property
     def ref(self) -> tuple:
          """The (order_id, item_id) pair identifying this item."""
          return (self.order_id, self.id)

     @validates("total")
     def _freeze_total(self, _key, value):
          if inspect(self).persistent and self.eligible_at is not None:
               raise LedgerStateError(
                    f"Line item {self.ref} is eligible for payout; its total can no longer change"
               )
          return value

     @validates("payment_state")
     def _check_transition(self, _key, value):
          target = PaymentState(value)
          if target == PaymentState.PAID:
               raise LedgerStateError(
                    "Line items can only be marked paid by the payout processor",
                    [self.ref] if self.id is not None else [],
               )
          current = self.payment_state
          if current is None:
               if target not in INITIAL_STATES:
                    raise LedgerStateError(f"A line item cannot start in state '{target.value}'")
               return target
          if not can_transition(current, target):
               raise LedgerStateError(
                    f"Line item {self.ref} cannot move from '{current.value}' to '{target.value}'",
                    [self.ref],
               )
          return target
