"""
Sales Service - checkout commit engine

Turns a Cart into a Sale plus one stock decrement per line.

Order of operations:
1. Validate the cart (non-empty, sane quantities and prices) and re-check
   every line against live on_hand. Nothing is written if this fails.
2. Persist the Sale and its items in one transaction (SaleWriteFailed on error,
   stock untouched).
3. Decrement stock line by line, each in its own transaction, using the
   conditional decrement from stock_service. All lines are attempted even when
   an earlier one fails.
4. Failed lines do NOT roll the sale back: the sale is already final. They are
   queued as StockSyncIssue rows, the sale is marked PARTIAL and
   PartialStockSyncFailure is raised. `flask stock retry-sync` drains the queue.
5. On full success the receipt is rendered and handed to the printer, and the
   cart is cleared.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..cart import Cart
from ..errors import (
    EmptyCart,
    ExceedsStock,
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    PartialStockSyncFailure,
    ProductNotFound,
    SaleWriteFailed,
)
from ..extensions import db
from ..money import quantize
from ..models import Product, Sale, SaleItem, StockSyncIssue
from ..models.sales import (
    PAYMENT_CASH,
    REASON_INSUFFICIENT_STOCK,
    REASON_PRODUCT_NOT_FOUND,
    REASON_WRITE_ERROR,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_SYNCED,
    VALID_PAYMENT_METHODS,
)
from ..receipts import LogReceiptPrinter, ReceiptPrinter, render_for_app
from ..time_utils import epoch_millis, utcnow
from ..validation import MAX_AMOUNT, has_subcent_precision, require_non_negative_amount
from . import stock_service
from .concurrency import run_with_retry

DEFAULT_CUSTOMER = "Walk-in Customer"


def load_products(product_ids) -> dict[int, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.id.in_(ids))
        .execution_options(populate_existing=True)
        .all()
    )
    return {p.id: p for p in rows}


def _validate_cart(cart: Cart) -> None:
    if cart.is_empty:
        raise EmptyCart("Cannot commit an empty cart")

    for line in cart.lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            raise InvalidQuantity(
                "Line quantity must be a positive integer",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
        unit_price = Decimal(line.unit_price)
        if (
            not unit_price.is_finite()
            or not 0 <= unit_price <= MAX_AMOUNT
            or has_subcent_precision(unit_price)
        ):
            raise InvalidAmount(
                "Unit price must be a non-negative amount in whole cents",
                details={"product_id": line.product_id, "unit_price": str(line.unit_price)},
            )


def _validate_on_hand(cart: Cart) -> None:
    """Re-check every line against current stock; add-time snapshots may be stale."""
    products = load_products(line.product_id for line in cart.lines)

    missing = [line.product_id for line in cart.lines if line.product_id not in products]
    if missing:
        raise ProductNotFound(
            "Some products in the cart no longer exist",
            details={"product_ids": missing},
        )

    insufficient = []
    for line in cart.lines:
        on_hand = products[line.product_id].on_hand
        if line.quantity > on_hand:
            insufficient.append({
                "product_id": line.product_id,
                "requested_quantity": line.quantity,
                "on_hand": on_hand,
            })

    if insufficient:
        raise ExceedsStock(
            "Insufficient inventory to commit sale",
            details={"items": insufficient},
        )


def _next_sale_number(now) -> str:
    return f"SALE-{epoch_millis(now)}-{uuid4().hex[:4].upper()}"


def _build_sale(
    cart: Cart,
    *,
    payment_method: str,
    customer_name: str | None,
    amount_tendered,
    notes: str | None,
) -> Sale:
    now = utcnow()
    priced = [(line, quantize(line.unit_price), quantize(line.subtotal)) for line in cart.lines]
    # The stored total is the sum of the stored line subtotals
    total = sum((subtotal for _, _, subtotal in priced), Decimal("0.00"))

    tendered = change = None
    if payment_method == PAYMENT_CASH and amount_tendered is not None:
        tendered = require_non_negative_amount(amount_tendered, "amount_tendered")
        if tendered < total:
            raise InvalidAmount(
                "Cash tendered is less than the sale total",
                details={"amount_tendered": str(tendered), "total_amount": str(total)},
            )
        change = tendered - total

    sale = Sale(
        sale_number=_next_sale_number(now),
        customer_name=(customer_name or "").strip() or DEFAULT_CUSTOMER,
        total_amount=total,
        payment_method=payment_method,
        amount_tendered=tendered,
        change_due=change,
        notes=notes,
        stock_sync_status=SYNC_STATUS_SYNCED,
        created_at=now,
    )
    for position, (line, unit_price, subtotal) in enumerate(priced, start=1):
        sale.items.append(SaleItem(
            position=position,
            product_id=line.product_id,
            product_name=line.product.name,
            quantity=line.quantity,
            unit_price=unit_price,
            subtotal=subtotal,
        ))
    return sale


def _persist_sale(sale: Sale) -> Sale:
    try:
        db.session.add(sale)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Sale write failed")
        raise SaleWriteFailed(
            "Could not save the sale; no stock was changed",
            details={"sale_number": sale.sale_number, "cause": e.__class__.__name__},
        )
    return sale


def _sync_stock(sale_number: str, cart: Cart) -> list[dict]:
    """Issue one decrement per line. Returns a failure dict per line that did not land."""
    failures = []
    for line in cart.lines:
        reason = detail = None
        try:
            stock_service.decrement(
                line.product_id,
                line.quantity,
                reference=sale_number,
                note=f"Sale {sale_number}",
            )
        except ProductNotFound as e:
            reason, detail = REASON_PRODUCT_NOT_FOUND, str(e)
        except InsufficientStock as e:
            reason, detail = REASON_INSUFFICIENT_STOCK, str(e)
        except SQLAlchemyError as e:
            db.session.rollback()
            reason, detail = REASON_WRITE_ERROR, e.__class__.__name__

        if reason:
            failures.append({
                "product_id": line.product_id,
                "product_name": line.product.name,
                "quantity": line.quantity,
                "reason": reason,
                "detail": detail,
            })
    return failures


def _mark_partial(sale_id: int) -> None:
    sale = db.session.get(Sale, sale_id)
    sale.stock_sync_status = SYNC_STATUS_PARTIAL


def _queue_sync_issues(sale_id: int, failures: list[dict]) -> bool:
    """
    Mark the sale PARTIAL and queue one StockSyncIssue per failed line.

    Returns False when the issues could not be written. The PARTIAL flag is
    then attempted on its own so the sale still shows up as out of sync.
    """
    def _op():
        _mark_partial(sale_id)
        for f in failures:
            db.session.add(StockSyncIssue(
                sale_id=sale_id,
                product_id=f["product_id"],
                product_name=f["product_name"],
                quantity=f["quantity"],
                reason=f["reason"],
                detail=(f["detail"] or "")[:255] or None,
            ))
        db.session.commit()

    try:
        run_with_retry(_op)
        return True
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not queue stock sync issues for sale %s", sale_id)

    try:
        _mark_partial(sale_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not mark sale %s as PARTIAL", sale_id)
    return False


def commit_sale(
    cart: Cart,
    *,
    payment_method: str,
    customer_name: str | None = None,
    amount_tendered=None,
    notes: str | None = None,
    printer: ReceiptPrinter | None = None,
) -> Sale:
    """
    Commit a cart as a sale.

    Raises:
        EmptyCart, InvalidQuantity, InvalidAmount, ProductNotFound, ExceedsStock:
            validation failed, nothing written
        SaleWriteFailed: sale not saved, nothing written
        PartialStockSyncFailure: sale saved, some stock not decremented
    """
    if payment_method not in VALID_PAYMENT_METHODS:
        raise InvalidAmount(
            f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )

    _validate_cart(cart)
    _validate_on_hand(cart)

    sale = _build_sale(
        cart,
        payment_method=payment_method,
        customer_name=customer_name,
        amount_tendered=amount_tendered,
        notes=notes,
    )
    _persist_sale(sale)
    sale_id, sale_number = sale.id, sale.sale_number

    failures = _sync_stock(sale_number, cart)
    # The sale cannot be undone from here on; a retry would sell twice
    cart.clear()

    if failures:
        queued = _queue_sync_issues(sale_id, failures)
        sale = db.session.get(Sale, sale_id)
        current_app.logger.warning(
            "Sale %s committed with %d stock line(s) out of sync", sale_number, len(failures)
        )
        raise PartialStockSyncFailure(
            f"Sale {sale_number} saved but stock was not updated for {len(failures)} item(s)",
            sale=sale,
            failures=failures,
            queued=queued,
        )

    sale = db.session.get(Sale, sale_id)
    printer = printer or LogReceiptPrinter()
    try:
        printer.emit(sale, render_for_app(sale))
    except Exception:
        current_app.logger.exception("Receipt printer failed for sale %s", sale_number)

    return sale


def get_sale(sale_id: int) -> Sale | None:
    return db.session.get(Sale, sale_id)


def list_sales(limit: int = 50, sync_status: str | None = None, since=None) -> list[Sale]:
    """Newest first. since is a UTC-naive datetime lower bound on created_at."""
    query = db.session.query(Sale)
    if sync_status:
        query = query.filter(Sale.stock_sync_status == sync_status)
    if since is not None:
        query = query.filter(Sale.created_at >= since)
    return query.order_by(Sale.id.desc()).limit(limit).all()
