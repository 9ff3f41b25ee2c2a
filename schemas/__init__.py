from .balance import (
     PendingItemResponse,
     SupplierBalanceResponse,
     PaymentAnalysisResponse,
     ReconciliationResponse,
)
from .payout import (
     ItemRef,
     PayoutRequest,
     PayoutCreatedResponse,
     PayoutResponse,
     PayoutListResponse,
     ReversalRequest,
     ReversalResponse,
     OrderDeliveredResponse,
)

__all__ = [
     "PendingItemResponse",
     "SupplierBalanceResponse",
     "PaymentAnalysisResponse",
     "ReconciliationResponse",
     "ItemRef",
     "PayoutRequest",
     "PayoutCreatedResponse",
     "PayoutResponse",
     "PayoutListResponse",
     "ReversalRequest",
     "ReversalResponse",
     "OrderDeliveredResponse",
]
