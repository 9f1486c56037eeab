# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

- Product.on_hand is the single source of truth for sellable quantity.
- on_hand never goes below zero. Decrements are conditional in-SQL updates
  (UPDATE ... SET on_hand = on_hand - :q WHERE id = :id AND on_hand >= :q),
  so two sessions racing on the same product cannot both succeed against a
  stale read. A miss is reported as ProductNotFound or InsufficientStock.
- Every change appends a StockMovement in the same DB transaction.
- Low stock is derived at read time (on_hand <= reorder_level), never stored.
- Direct edits (set_on_hand) use the version_id optimistic lock and retry.
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InsufficientStock, ProductNotFound
from ..extensions import db
from ..models import Product, StockMovement, Sale, StockSyncIssue
from ..models.sales import (
    ISSUE_ABANDONED,
    ISSUE_PENDING,
    ISSUE_RESOLVED,
    SYNC_STATUS_SYNCED,
)
from ..time_utils import utcnow
from ..validation import ValidationError, require_positive_quantity
from .concurrency import rowcount_of, run_with_retry

logger = logging.getLogger(__name__)

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_SET = "SET"


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _expire_cached(product_id: int) -> None:
    # Bulk UPDATEs bypass the identity map; drop any stale copy
    cached = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached)


def _raise_for_miss(product_id: int, requested: int) -> None:
    on_hand = db.session.query(Product.on_hand).filter(Product.id == product_id).scalar()
    db.session.rollback()
    if on_hand is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    raise InsufficientStock(
        f"Only {on_hand} on hand for product {product_id}",
        details={"product_id": product_id, "requested_quantity": requested, "on_hand": on_hand},
    )


def _apply_delta(
    product_id: int,
    delta: int,
    *,
    movement_type: str,
    reference: str | None,
    note: str | None,
) -> StockMovement:
    """Conditional on_hand += delta plus its movement row. Does not commit."""
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.on_hand + delta >= 0)
        .values(on_hand=Product.on_hand + delta, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if rowcount_of(result) == 0:
        _raise_for_miss(product_id, -delta if delta < 0 else delta)

    _expire_cached(product_id)
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=delta,
        reference=reference,
        note=note,
    )
    db.session.add(movement)
    return movement


def decrement(product_id: int, amount: int, *, reference: str | None = None, note: str | None = None) -> StockMovement:
    """
    Take amount units off a product's on-hand quantity in its own transaction.

    Raises:
        ProductNotFound: the product row is gone
        InsufficientStock: current on_hand < amount (nothing written)
    """
    require_positive_quantity(amount)

    def _op():
        try:
            movement = _apply_delta(
                product_id, -amount, movement_type=MOVEMENT_OUT, reference=reference, note=note,
            )
            db.session.commit()
            return movement
        except SQLAlchemyError:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def increment(
    product_id: int,
    amount: int,
    *,
    reference: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """Add amount units (deliveries). commit=False lets the caller batch it."""
    require_positive_quantity(amount)
    movement = _apply_delta(product_id, amount, movement_type=MOVEMENT_IN, reference=reference, note=note)
    if commit:
        db.session.commit()
    return movement


def adjust(product_id: int, delta: int, note: str | None = None) -> Product:
    """Signed manual correction. The result may not go below zero."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _op():
        _apply_delta(
            product_id,
            delta,
            movement_type=MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
            reference=None,
            note=note or "Manual adjustment",
        )
        db.session.commit()
        return get_product(product_id)

    return run_with_retry(_op)


def set_on_hand(product_id: int, quantity: int, note: str | None = None) -> Product:
    """
    Overwrite on_hand (inventory edit).

    Goes through the ORM so the version_id check catches a concurrent sale;
    on StaleDataError the edit is re-read and re-applied.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("on_hand must be an integer >= 0")

    def _op():
        product = get_product(product_id)
        delta = quantity - product.on_hand
        product.on_hand = quantity
        if delta:
            db.session.add(StockMovement(
                product_id=product.id,
                movement_type=MOVEMENT_SET,
                quantity=delta,
                note=note or "Inventory edit",
            ))
        db.session.commit()
        return product

    return run_with_retry(_op)


def is_low_stock(product: Product) -> bool:
    return product.on_hand <= product.reorder_level


def list_low_stock() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.on_hand <= Product.reorder_level)
        .order_by(Product.on_hand.asc(), Product.name.asc())
        .all()
    )


def list_movements(product_id: int, limit: int = 50) -> list[StockMovement]:
    get_product(product_id)
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_sync_issues(status: str | None = ISSUE_PENDING) -> list[StockSyncIssue]:
    query = db.session.query(StockSyncIssue)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(StockSyncIssue.id.asc()).all()


def retry_pending_stock_sync(*, max_attempts: int = 5) -> dict:
    """
    Re-issue every PENDING stock decrement left behind by a partial checkout.

    - success -> RESOLVED
    - product deleted -> ABANDONED (there is nothing left to decrement)
    - still short or a write error -> attempts += 1, ABANDONED once attempts
      reaches max_attempts

    A sale goes back to SYNCED once all of its issues are RESOLVED.
    """
    summary = {"resolved": 0, "pending": 0, "abandoned": 0}
    sale_ids: set[int] = set()

    for issue_id in [i.id for i in list_sync_issues(ISSUE_PENDING)]:
        issue = db.session.get(StockSyncIssue, issue_id)
        sale_ids.add(issue.sale_id)
        product_id, quantity = issue.product_id, issue.quantity
        sale_number = issue.sale.sale_number

        outcome, detail = ISSUE_RESOLVED, None
        if product_id is None:
            outcome, detail = ISSUE_ABANDONED, "product reference missing"
        else:
            try:
                decrement(product_id, quantity, reference=sale_number, note=f"Stock sync for {sale_number}")
            except ProductNotFound as e:
                outcome, detail = ISSUE_ABANDONED, str(e)
            except InsufficientStock as e:
                outcome, detail = ISSUE_PENDING, str(e)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.exception("Stock sync retry for issue %s failed to write", issue_id)
                outcome, detail = ISSUE_PENDING, e.__class__.__name__

        issue = db.session.get(StockSyncIssue, issue_id)
        issue.attempts += 1
        issue.detail = detail
        if outcome == ISSUE_PENDING and issue.attempts >= max_attempts:
            outcome = ISSUE_ABANDONED
        issue.status = outcome
        if outcome == ISSUE_RESOLVED:
            issue.resolved_at = utcnow()
        db.session.commit()

        summary[outcome.lower()] += 1
        logger.info("Stock sync issue %s for sale %s -> %s", issue_id, sale_number, outcome)

    for sale_id in sale_ids:
        open_count = (
            db.session.query(StockSyncIssue)
            .filter(StockSyncIssue.sale_id == sale_id, StockSyncIssue.status != ISSUE_RESOLVED)
            .count()
        )
        if open_count == 0:
            sale = db.session.get(Sale, sale_id)
            sale.stock_sync_status = SYNC_STATUS_SYNCED
    db.session.commit()

    return summary
