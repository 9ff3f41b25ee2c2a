# errors.py
"""
Ledger error taxonomy.

Every error carries a human-readable ``reason``; the API layer maps each class
to an HTTP status (see main.install_error_handlers). None of these are retried
internally.
"""
from typing import Iterable, List, Optional, Tuple

ItemRef = Tuple[int, int]  # (order_id, item_id)


class LedgerError(Exception):
     """Base class for supplier payout ledger errors."""

     status_code = 500

     def __init__(self, reason: str):
          super().__init__(reason)
          self.reason = reason

     def to_dict(self) -> dict:
          return {"reason": self.reason}


class ValidationError(LedgerError):
     """Malformed input, unpayable supplier, or item not owned by the supplier."""

     status_code = 400

     def __init__(self, reason: str, invalid_items: Optional[Iterable[ItemRef]] = None):
          super().__init__(reason)
          self.invalid_items: List[ItemRef] = list(invalid_items or [])

     def to_dict(self) -> dict:
          body = super().to_dict()
          if self.invalid_items:
               body["invalidItems"] = [
                    {"orderId": order_id, "itemId": item_id}
                    for order_id, item_id in self.invalid_items
               ]
          return body


class NotFoundError(LedgerError):
     """Supplier, payout or line item does not exist."""

     status_code = 404


class ConflictError(LedgerError):
     """
     Referenced items are not currently payable (already paid, reversed, or
     claimed by a concurrent payout). Carries only the contended refs so the
     caller can re-select and resubmit with a new idempotency key.
     """

     status_code = 409

     def __init__(self, reason: str, conflicting_items: Optional[Iterable[ItemRef]] = None):
          super().__init__(reason)
          self.conflicting_items: List[ItemRef] = list(conflicting_items or [])

     def to_dict(self) -> dict:
          body = super().to_dict()
          body["conflictingItems"] = [
               {"orderId": order_id, "itemId": item_id}
               for order_id, item_id in self.conflicting_items
          ]
          return body


class LedgerStateError(ConflictError):
     """A write attempted a transition the line item state machine forbids."""


class TransientStoreError(LedgerError):
     """The transactional store is unavailable; safe to retry with the same idempotency key."""

     status_code = 503
