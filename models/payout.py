"""
Payout models - immutable record of one successful supplier payout batch.

A Payout is created once, atomically, by the payout processor. Its item rows
record which (order_id, item_id) pairs were paid and how much each one
contributed; amount always equals the sum of those rows. Records are
append-only; the only later write is reversed_at when the whole batch is
reversed.
"""
import uuid
from sqlalchemy import (
     Column,
     Integer,
     String,
     Numeric,
     DateTime,
     ForeignKey,
     UniqueConstraint,
     func,
)
from sqlalchemy.orm import relationship
from .base import Base, utcnow


def new_payout_id() -> str:
     return str(uuid.uuid4())


class Payout(Base):
     id = Column(String(36), primary_key=True, default=new_payout_id)
     supplier_id = Column(
          Integer,
          ForeignKey("suppliers.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )
     amount = Column(Numeric(12, 2), nullable=False)
     idempotency_key = Column(String(128), nullable=False, unique=True, index=True)
     request_fingerprint = Column(String(64), nullable=False)  # SHA-256 hex length
     created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
     reversed_at = Column(DateTime, nullable=True)

     # Relationships
     supplier = relationship("Supplier", back_populates="payouts")
     items = relationship(
          "PayoutItem",
          back_populates="payout",
          order_by="PayoutItem.id",
          cascade="all, delete-orphan"
     )

     def __repr__(self):
          return f"<Payout(id={self.id}, supplier_id={self.supplier_id}, amount={self.amount})>"

     @property
     def item_refs(self) -> list:
          return [(item.order_id, item.item_id) for item in self.items]

     @property
     def is_reversed(self) -> bool:
          return self.reversed_at is not None


class PayoutItem(Base):
     """One line item included in a payout. A line item appears in at most one payout."""

     id = Column(Integer, primary_key=True, autoincrement=True)
     payout_id = Column(
          String(36),
          ForeignKey("payouts.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )
     order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False)
     item_id = Column(Integer, ForeignKey("line_items.id", ondelete="RESTRICT"), nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)

     payout = relationship("Payout", back_populates="items")

     __table_args__ = (
          UniqueConstraint("order_id", "item_id", name="uq_payout_items_line_item"),
     )

     def __repr__(self):
          return f"<PayoutItem(payout_id={self.payout_id}, order_id={self.order_id}, item_id={self.item_id})>"
