"""
Payout Service - executes supplier payouts exactly once per line item.

initiate_payout is the only code path that writes payment_state = paid.
For one request it:
1. Answers from the idempotency ledger (payouts.idempotency_key) when the key
   was already used by a committed payout with the same request fingerprint
2. Validates supplier and item ownership, and that every item is pending
3. Inside one transaction inserts the Payout row, then flips every item
   pending -> paid with a conditional UPDATE guarded by the version read in
   step 2, then records the payout item rows
4. Commits only if every conditional UPDATE hit exactly one row; otherwise
   rolls the whole batch back and raises ConflictError naming the contended
   items

Nothing is retried internally. Callers retry with the same idempotency key.
"""
import hashlib
import logging
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import desc, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, selectinload

from errors import (
     ConflictError,
     ItemRef,
     LedgerError,
     NotFoundError,
     TransientStoreError,
     ValidationError,
)
from models import LineItem, Payout, PayoutItem, Supplier
from models.line_item import PaymentState
from models.payout import new_payout_id

log = logging.getLogger("ledger.payouts")

MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass(frozen=True)
class PayoutResult:
     payout_id: str
     amount: Decimal
     replayed: bool = False


def normalize_item_refs(item_refs: Iterable) -> List[ItemRef]:
     """
     Coerce item refs to (order_id, item_id) int pairs.

     Accepts pairs or dicts with order_id/item_id (or orderId/itemId) keys.

     Raises:
          ValidationError: If the list is empty, malformed or has duplicates.
     """
     refs: List[ItemRef] = []
     for raw in item_refs or []:
          try:
               if isinstance(raw, dict):
                    order_id = raw.get("order_id", raw.get("orderId"))
                    item_id = raw.get("item_id", raw.get("itemId"))
               else:
                    order_id, item_id = raw
               refs.append((int(order_id), int(item_id)))
          except (TypeError, ValueError):
               raise ValidationError(f"Malformed item reference: {raw!r}")

     if not refs:
          raise ValidationError("itemRefs must contain at least one line item")

     duplicates = sorted(ref for ref, seen in Counter(refs).items() if seen > 1)
     if duplicates:
          raise ValidationError("itemRefs contains duplicate line items", duplicates)
     return refs


def compute_request_fingerprint(supplier_id: int, refs: Iterable[ItemRef]) -> str:
     """
     SHA-256 of the canonical request: supplier_id|order:item,order:item (sorted).

     Lets a replayed idempotency key be told apart from a key reused for a
     different request. Returns 64-char hex string.
     """
     payload = "|".join([
          str(supplier_id),
          ",".join(f"{order_id}:{item_id}" for order_id, item_id in sorted(refs)),
     ])
     return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def find_payout_by_key(db: Session, idempotency_key: str) -> Optional[Payout]:
     return db.query(Payout).filter(Payout.idempotency_key == idempotency_key).first()


def _replay(payout: Payout, fingerprint: str) -> PayoutResult:
     if payout.request_fingerprint != fingerprint:
          raise ValidationError(
               f"Idempotency key '{payout.idempotency_key}' was already used for a different payout request"
          )
     log.info("Replaying payout %s for idempotency key %s", payout.id, payout.idempotency_key)
     return PayoutResult(payout_id=payout.id, amount=payout.amount, replayed=True)


def _replay_after_abort(db: Session, idempotency_key: str, fingerprint: str) -> Optional[PayoutResult]:
     """After a rollback, check whether a concurrent request with our key committed."""
     existing = find_payout_by_key(db, idempotency_key)
     if existing is None:
          return None
     return _replay(existing, fingerprint)


def _load_payable_supplier(db: Session, supplier_id: int) -> Supplier:
     supplier = db.get(Supplier, supplier_id)
     if supplier is None:
          raise NotFoundError(f"Supplier with ID {supplier_id} not found")
     if not supplier.is_payable:
          raise ValidationError(f"Supplier {supplier_id} is not approved or not active")
     return supplier


def _load_pending_items(db: Session, supplier_id: int, refs: List[ItemRef]) -> List[LineItem]:
     """Load the referenced items fresh from the store and check they can be paid."""
     rows = (
          db.query(LineItem)
          .filter(LineItem.id.in_([item_id for _, item_id in refs]))
          .populate_existing()
          .all()
     )
     by_id = {item.id: item for item in rows}

     invalid = []
     items = []
     for order_id, item_id in refs:
          item = by_id.get(item_id)
          if item is None or item.order_id != order_id or item.supplier_id != supplier_id:
               invalid.append((order_id, item_id))
          else:
               items.append(item)
     if invalid:
          raise ValidationError(
               f"{len(invalid)} item(s) do not exist or do not belong to supplier {supplier_id}",
               invalid,
          )

     not_pending = [item.ref for item in items if item.payment_state != PaymentState.PENDING]
     if not_pending:
          raise ConflictError(
               f"{len(not_pending)} item(s) are not pending payout",
               not_pending,
          )
     return items


def _claim_item(db: Session, payout: Payout, ref: ItemRef, version: int) -> bool:
     """Conditional pending -> paid UPDATE of one item. True if the row was ours."""
     order_id, item_id = ref
     result = db.execute(
          update(LineItem)
          .where(
               LineItem.order_id == order_id,
               LineItem.id == item_id,
               LineItem.version == version,
               LineItem.payment_state == PaymentState.PENDING,
          )
          .values(
               payment_state=PaymentState.PAID,
               payout_id=payout.id,
               version=LineItem.version + 1,
          )
          .execution_options(synchronize_session=False)
     )
     return result.rowcount == 1


def _claim_items(db: Session, payout: Payout, items: List[LineItem], versions: dict) -> None:
     """
     Flip every item pending -> paid, guarded by the version read during
     validation. Raises ConflictError listing the items another writer
     changed first; the caller rolls back.

     Rows are locked in (order_id, item_id) order, whatever order the caller
     listed them in.
     """
     contended = []
     for ref in sorted(item.ref for item in items):
          if not _claim_item(db, payout, ref, versions[ref]):
               contended.append(ref)

     if contended:
          raise ConflictError(
               f"{len(contended)} item(s) were claimed by a concurrent payout",
               contended,
          )


def _store_failure(supplier_id: int, idempotency_key: str) -> TransientStoreError:
     log.exception("Payout store failure for supplier %s (key %s)", supplier_id, idempotency_key)
     return TransientStoreError(
          "The payout store is unavailable; retry with the same idempotency key"
     )


def _execute_payout(
     db: Session,
     supplier: Supplier,
     items: List[LineItem],
     idempotency_key: str,
     fingerprint: str
) -> Payout:
     versions = {item.ref: item.version for item in items}
     amount = sum((item.total for item in items), Decimal("0.00"))

     payout = Payout(
          id=new_payout_id(),
          supplier_id=supplier.id,
          amount=amount,
          idempotency_key=idempotency_key,
          request_fingerprint=fingerprint,
     )
     db.add(payout)
     db.flush()  # claims the idempotency key before touching any item

     _claim_items(db, payout, items, versions)

     for item in items:
          db.add(PayoutItem(
               payout_id=payout.id,
               order_id=item.order_id,
               item_id=item.id,
               amount=item.total,
          ))
     db.flush()
     return payout


def initiate_payout(
     db: Session,
     supplier_id: int,
     item_refs: Iterable,
     idempotency_key: str
) -> PayoutResult:
     """
     Pay a supplier for a batch of pending line items, all or nothing.

     Args:
          db: SQLAlchemy database session (committed or rolled back here)
          supplier_id: Supplier being paid
          item_refs: Non-empty list of (order_id, item_id) pairs
          idempotency_key: Caller token, unique per logical payout request

     Returns:
          PayoutResult with the payout id and amount; replayed=True when the
          key had already produced a payout

     Raises:
          ValidationError: Bad input, unpayable supplier, foreign or unknown items,
               or an idempotency key reused for a different request
          NotFoundError: Unknown supplier
          ConflictError: Items not pending, or lost a race to a concurrent payout
          TransientStoreError: The store is unavailable
     """
     refs = normalize_item_refs(item_refs)
     idempotency_key = (idempotency_key or "").strip()
     if not idempotency_key:
          raise ValidationError("idempotencyKey is required")
     if len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
          raise ValidationError(
               f"idempotencyKey must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
          )
     fingerprint = compute_request_fingerprint(supplier_id, refs)

     try:
          existing = find_payout_by_key(db, idempotency_key)
          if existing is not None:
               return _replay(existing, fingerprint)

          supplier = _load_payable_supplier(db, supplier_id)
          items = _load_pending_items(db, supplier_id, refs)
          payout = _execute_payout(db, supplier, items, idempotency_key, fingerprint)
          db.commit()
     except ConflictError as exc:
          db.rollback()
          replay = _replay_after_abort(db, idempotency_key, fingerprint)
          if replay is not None:
               return replay
          log.warning(
               "Payout for supplier %s aborted (key %s): %s %s",
               supplier_id, idempotency_key, exc.reason, exc.conflicting_items
          )
          raise
     except IntegrityError:
          # Unique idempotency key or unique payout item: someone else got there first
          db.rollback()
          replay = _replay_after_abort(db, idempotency_key, fingerprint)
          if replay is not None:
               return replay
          log.warning("Payout for supplier %s lost a race (key %s)", supplier_id, idempotency_key)
          raise ConflictError("Line items were claimed by a concurrent payout", refs)
     except LedgerError:
          db.rollback()
          raise
     except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
          db.rollback()
          raise _store_failure(supplier_id, idempotency_key) from exc
     except DBAPIError as exc:
          db.rollback()
          if not exc.connection_invalidated:
               raise
          raise _store_failure(supplier_id, idempotency_key) from exc

     for item in items:
          db.expire(item)

     log.info(
          "Payout %s created for supplier %s: %d item(s), amount %s",
          payout.id, supplier_id, len(items), payout.amount
     )
     return PayoutResult(payout_id=payout.id, amount=payout.amount)


def get_payout(db: Session, payout_id: str) -> Payout:
     payout = (
          db.query(Payout)
          .options(selectinload(Payout.items))
          .filter(Payout.id == payout_id)
          .first()
     )
     if payout is None:
          raise NotFoundError(f"Payout {payout_id} not found")
     return payout


def list_payouts(
     db: Session,
     supplier_id: int,
     page: int = 1,
     page_size: int = 50
) -> Tuple[List[Payout], int]:
     """
     Payout history of a supplier, newest first.

     Returns:
          (payouts for the requested page, total payout count)
     """
     if db.get(Supplier, supplier_id) is None:
          raise NotFoundError(f"Supplier with ID {supplier_id} not found")

     query = db.query(Payout).filter(Payout.supplier_id == supplier_id)
     total = query.count()

     offset = (page - 1) * page_size
     payouts = (
          query.options(selectinload(Payout.items))
          .order_by(desc(Payout.created_at), desc(Payout.id))
          .offset(offset)
          .limit(page_size)
          .all()
     )
     return payouts, total
