from .base import Base
from .supplier import Supplier
from .order import Order
from .line_item import LineItem
from .payout import Payout, PayoutItem
from .line_item_reversal import LineItemReversal

__all__ = [
     "Base",
     "Supplier",
     "Order",
     "LineItem",
     "Payout",
     "PayoutItem",
     "LineItemReversal",
]
