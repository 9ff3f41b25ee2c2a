"""
Pydantic schemas for the payout API.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, Field, ConfigDict
from pydantic.alias_generators import to_camel

from .base import CamelModel


class ItemRef(CamelModel):
     """Identifies one line item: (orderId, itemId)."""
     order_id: int = Field(..., gt=0)
     item_id: int = Field(..., gt=0)


class PayoutRequest(CamelModel):
     """Request body for POST /suppliers/{supplier_id}/payouts."""

     item_refs: List[ItemRef] = Field(..., min_length=1, description="Pending line items to pay")
     idempotency_key: str = Field(
          ...,
          min_length=1,
          max_length=128,
          description="Caller token, unique per logical payout request; reuse it to retry safely",
     )

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "itemRefs": [{"orderId": 12, "itemId": 40}, {"orderId": 12, "itemId": 41}],
                    "idempotencyKey": "payout-2026-01-31-supplier-1",
               }
          }
     )


class PayoutCreatedResponse(CamelModel):
     """Response for a successful or replayed payout."""
     payout_id: str
     amount: float


class PayoutItemResponse(CamelModel):
     order_id: int
     item_id: int
     amount: float


class PayoutResponse(CamelModel):
     """One historical payout batch."""
     payout_id: str = Field(..., validation_alias=AliasChoices("id", "payoutId", "payout_id"))
     supplier_id: int
     amount: float
     idempotency_key: str
     created_at: datetime
     reversed_at: Optional[datetime] = None
     items: List[PayoutItemResponse]


class PayoutListResponse(CamelModel):
     """Schema for paginated payout history."""
     payouts: List[PayoutResponse]
     total: int
     page: int = 1
     page_size: int = 50


class ReversalRequest(CamelModel):
     reason: str = Field(..., min_length=1, max_length=500)


class ReversalResponse(CamelModel):
     order_id: int
     item_id: int
     previous_state: str
     amount: float
     payout_id: Optional[str] = None
     reason: str
     created_at: datetime


class OrderDeliveredResponse(CamelModel):
     order_id: int
     order_number: str
     shipment_status: str
     payable_items: int
