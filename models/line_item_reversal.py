from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, func
from .base import Base, utcnow


class LineItemReversal(Base):
     """
     Compensating entry written when a pending or paid line item is reversed
     (refund or cancellation after delivery). History is never deleted; the
     reversed amount stays visible in the supplier balance as total_reversed.
     """

     id = Column(Integer, primary_key=True, autoincrement=True)
     order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False)
     item_id = Column(
          Integer,
          ForeignKey("line_items.id", ondelete="RESTRICT"),
          nullable=False,
          unique=True,  # A line item can only be reversed once
          index=True
     )
     supplier_id = Column(
          Integer,
          ForeignKey("suppliers.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )
     previous_state = Column(String(20), nullable=False)  # pending or paid
     amount = Column(Numeric(12, 2), nullable=False)
     payout_id = Column(String(36), ForeignKey("payouts.id", ondelete="RESTRICT"), nullable=True)
     reason = Column(String(500), nullable=False)
     created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)

     def __repr__(self):
          return f"<LineItemReversal(order_id={self.order_id}, item_id={self.item_id}, amount={self.amount})>"
