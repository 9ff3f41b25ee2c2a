"""
Pydantic schemas for supplier balance and payment analysis responses.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import Field, ConfigDict
from pydantic.alias_generators import to_camel

from .base import CamelModel


class PendingItemResponse(CamelModel):
     """A line item waiting to be paid out."""
     order_id: int
     order_number: str
     item_id: int
     name: str
     quantity: int
     unit_price: float
     total: float = Field(..., description="Net amount owed to the supplier")
     eligible_at: Optional[datetime] = None


class SupplierBalanceResponse(CamelModel):
     """Response for GET /suppliers/{supplier_id}/balance."""
     supplier_id: int
     business_name: str
     total_earned: float
     total_paid: float
     pending_amount: float
     total_reversed: float
     pending_items_count: int
     pending_items: List[PendingItemResponse]

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "supplierId": 1,
                    "businessName": "Peak Sports Supply",
                    "totalEarned": 30.00,
                    "totalPaid": 0.00,
                    "pendingAmount": 30.00,
                    "totalReversed": 0.00,
                    "pendingItemsCount": 2,
                    "pendingItems": [
                         {
                              "orderId": 12,
                              "orderNumber": "SPF-1767225600000-0012",
                              "itemId": 40,
                              "name": "Trail Running Shoe",
                              "quantity": 1,
                              "unitPrice": 11.11,
                              "total": 10.00,
                              "eligibleAt": "2026-01-31T10:30:00"
                         }
                    ]
               }
          }
     )


class SupplierPaymentSummary(CamelModel):
     supplier_id: int
     business_name: str
     total_earned: float
     total_paid: float
     pending_amount: float
     total_reversed: float


class PaymentAnalysisResponse(CamelModel):
     """Response for GET /suppliers/payments/analysis."""
     total_paid: float
     total_pending: float
     total_reversed: float
     suppliers: List[SupplierPaymentSummary]


class ReconciliationResponse(CamelModel):
     supplier_id: int
     ok: bool
     message: str
