# routers/suppliers.py
"""
Supplier payout API routes.

Role-based access:
- Admin: everything, and the only role that can pay or reverse
- Staff: can view any supplier's balance and payout history
- Supplier: can view only its own balance and payout history

Ledger errors raised by the services are turned into HTTP responses by the
handlers installed in main.py (400 / 404 / 409 / 503).
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import can_view_supplier, require_roles, verify_token
from models import Order, Supplier
from schemas.balance import (
     PaymentAnalysisResponse,
     ReconciliationResponse,
     SupplierBalanceResponse,
)
from schemas.payout import (
     PayoutCreatedResponse,
     PayoutListResponse,
     PayoutRequest,
     PayoutResponse,
     ReversalRequest,
     ReversalResponse,
)
from services import balance_service, payout_service
from services.line_item_service import LineItemService
from utils import email

log = logging.getLogger("ledger.api")

router = APIRouter(prefix="/api/suppliers", tags=["supplier payouts"])


def _ensure_can_view(token: dict, supplier_id: int) -> None:
     if not can_view_supplier(token, supplier_id):
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail="You do not have permission to view this supplier's payments"
          )


def _notify_supplier(db: Session, supplier_id: int, payout_id: str) -> None:
     """E-mail the supplier about a new payout. Failures never affect the payout."""
     if not email.PAYOUT_EMAILS_ENABLED:
          return
     try:
          supplier = db.get(Supplier, supplier_id)
          if supplier is None or not supplier.email:
               return
          payout = payout_service.get_payout(db, payout_id)
          order_ids = {item.order_id for item in payout.items}
          order_numbers = [
               row.order_number
               for row in db.query(Order.order_number).filter(Order.id.in_(order_ids)).order_by(Order.id)
          ]
          email.send_payout_email(supplier.email, supplier.business_name, payout.amount, order_numbers)
     except Exception:
          log.exception("Failed to send payout email for payout %s", payout_id)


@router.get(
     "/payments/analysis",
     response_model=PaymentAnalysisResponse,
     summary="Payment totals across all suppliers"
)
def get_payment_analysis(
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin"))
):
     """Total paid, pending and reversed amounts with a per-supplier breakdown."""
     return balance_service.get_payment_analysis(db)


@router.get(
     "/{supplier_id}/balance",
     response_model=SupplierBalanceResponse,
     summary="Get supplier balance"
)
def get_supplier_balance(
     supplier_id: int,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     """
     Earned, paid, pending and reversed totals for a supplier, plus the
     line items currently waiting to be paid.

     **Role-based access:** admin, staff, or the supplier itself.
     """
     _ensure_can_view(token, supplier_id)
     balance = balance_service.get_balance(db, supplier_id)
     return SupplierBalanceResponse.model_validate(balance)


@router.post(
     "/{supplier_id}/payouts",
     response_model=PayoutCreatedResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Pay a supplier for pending line items",
     responses={
          200: {"description": "Replay of an earlier request with the same idempotency key"},
          400: {"description": "Invalid request"},
          404: {"description": "Supplier not found"},
          409: {"description": "Some items are no longer pending"},
          503: {"description": "Store unavailable, retry with the same idempotency key"},
     },
)
def create_payout(
     supplier_id: int,
     body: PayoutRequest,
     response: Response,
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin"))
):
     """
     Pay the listed pending line items in one all-or-nothing batch.

     - **itemRefs**: `(orderId, itemId)` pairs, all owned by the supplier and pending
     - **idempotencyKey**: reuse the same key to retry safely; a replay returns the
       original payout with status 200
     """
     result = payout_service.initiate_payout(
          db,
          supplier_id,
          [(ref.order_id, ref.item_id) for ref in body.item_refs],
          body.idempotency_key,
     )
     if result.replayed:
          response.status_code = status.HTTP_200_OK
     else:
          _notify_supplier(db, supplier_id, result.payout_id)

     return PayoutCreatedResponse(payout_id=result.payout_id, amount=result.amount)


@router.get(
     "/{supplier_id}/payouts",
     response_model=PayoutListResponse,
     summary="Get payout history for a supplier"
)
def get_supplier_payouts(
     supplier_id: int,
     page: int = Query(1, ge=1, description="Page number"),
     page_size: int = Query(50, ge=1, le=100, description="Items per page"),
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     """
     Payout batches for a supplier, newest first.

     **Role-based access:** admin, staff, or the supplier itself.
     """
     _ensure_can_view(token, supplier_id)
     payouts, total = payout_service.list_payouts(db, supplier_id, page, page_size)
     return PayoutListResponse(
          payouts=[PayoutResponse.model_validate(p) for p in payouts],
          total=total,
          page=page,
          page_size=page_size,
     )


@router.get(
     "/payouts/{payout_id}",
     response_model=PayoutResponse,
     summary="Get a payout"
)
def get_payout(
     payout_id: str,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     payout = payout_service.get_payout(db, payout_id)
     _ensure_can_view(token, payout.supplier_id)
     return PayoutResponse.model_validate(payout)


@router.get(
     "/{supplier_id}/reconciliation",
     response_model=ReconciliationResponse,
     summary="Verify a supplier's ledger"
)
def reconcile_supplier(
     supplier_id: int,
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin"))
):
     """Check earned == paid + pending + reversed and that no item was paid twice."""
     ok, message = balance_service.check_reconciliation(db, supplier_id)
     return ReconciliationResponse(supplier_id=supplier_id, ok=ok, message=message)


@router.post(
     "/line-items/{order_id}/{item_id}/reversal",
     response_model=ReversalResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Reverse a pending or paid line item"
)
def reverse_line_item(
     order_id: int,
     item_id: int,
     body: ReversalRequest,
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin"))
):
     """Refund or cancellation after delivery. Records a compensating entry."""
     reversal = LineItemService.reverse_line_item(db, order_id, item_id, body.reason)
     return ReversalResponse.model_validate(reversal)


@router.post(
     "/payouts/{payout_id}/reversal",
     response_model=list[ReversalResponse],
     status_code=status.HTTP_201_CREATED,
     summary="Reverse a whole payout"
)
def reverse_payout(
     payout_id: str,
     body: ReversalRequest,
     db: Session = Depends(get_session),
     token: dict = Depends(require_roles("admin"))
):
     reversals = LineItemService.reverse_payout(db, payout_id, body.reason)
     return [ReversalResponse.model_validate(r) for r in reversals]
