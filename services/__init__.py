from .line_item_service import LineItemService, compute_supplier_net
from .balance_service import (
     SupplierBalance,
     PendingItem,
     get_balance,
     get_payment_analysis,
     check_reconciliation,
)
from .payout_service import (
     PayoutResult,
     initiate_payout,
     get_payout,
     list_payouts,
     compute_request_fingerprint,
)

__all__ = [
     "LineItemService",
     "compute_supplier_net",
     "SupplierBalance",
     "PendingItem",
     "get_balance",
     "get_payment_analysis",
     "check_reconciliation",
     "PayoutResult",
     "initiate_payout",
     "get_payout",
     "list_payouts",
     "compute_request_fingerprint",
]
