from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from sqlalchemy.orm import relationship
from .base import Base


class Supplier(Base):
     """
     Supplier directory entry.
     The ledger only reads this table to decide whether a supplier is payable.
     """

     id = Column(Integer, primary_key=True, autoincrement=True)
     business_name = Column(String(255), nullable=False)
     email = Column(String(255), nullable=True, index=True)
     is_approved = Column(Boolean, default=False, nullable=False)
     is_active = Column(Boolean, default=True, nullable=False)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     line_items = relationship("LineItem", back_populates="supplier")
     payouts = relationship("Payout", back_populates="supplier")

     def __repr__(self):
          return f"<Supplier(id={self.id}, business_name='{self.business_name}', approved={self.is_approved})>"

     @property
     def is_payable(self) -> bool:
          """Approved and active suppliers can receive payouts."""
          return bool(self.is_approved and self.is_active)
