import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum, func
from sqlalchemy.orm import relationship
from .base import Base


class ShipmentStatus(str, enum.Enum):
     """Enumeration for order shipment status."""
     PENDING = "pending"
     PROCESSING = "processing"
     SHIPPED = "shipped"
     DELIVERED = "delivered"
     CANCELLED = "cancelled"
     RETURNED = "returned"


class Order(Base):
     """
     Order model - owned by the order subsystem.

     The ledger only cares about the delivered transition, which makes the
     order's line items payable.
     """

     id = Column(Integer, primary_key=True, autoincrement=True)
     order_number = Column(String(40), unique=True, nullable=False, index=True)
     shipment_status = Column(
          Enum(
               ShipmentStatus,
               name="shipment_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=ShipmentStatus.PENDING,
          nullable=False,
          index=True
     )
     delivered_at = Column(DateTime, nullable=True)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     items = relationship(
          "LineItem",
          back_populates="order",
          order_by="LineItem.id",
          cascade="all, delete-orphan"
     )

     def __repr__(self):
          return f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.shipment_status.value}')>"

     @property
     def is_delivered(self) -> bool:
          return self.shipment_status == ShipmentStatus.DELIVERED
