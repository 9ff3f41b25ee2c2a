# routers/orders.py
"""
Order hooks the ledger needs from the order subsystem.

POST /api/orders/{order_id}/delivered: mark an order delivered, making its
line items payable to their suppliers.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import require_roles
from models.line_item import PaymentState
from schemas.payout import OrderDeliveredResponse
from services.line_item_service import LineItemService

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post(
     "/{order_id}/delivered",
     response_model=OrderDeliveredResponse,
     status_code=status.HTTP_200_OK,
     summary="Mark an order delivered"
)
def mark_delivered(
     order_id: int,
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin", "staff"))
):
     order = LineItemService.mark_order_delivered(db, order_id)
     db.commit()
     return OrderDeliveredResponse(
          order_id=order.id,
          order_number=order.order_number,
          shipment_status=order.shipment_status.value,
          payable_items=sum(1 for item in order.items if item.payment_state == PaymentState.PENDING),
     )
