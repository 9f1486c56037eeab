# Overview: Service-layer operations for suppliers and their debt ledger.

"""
Supplier Debt Ledger

Each supplier carries a running balance of what the shop owes. Two operations
move it:
- record_purchase: goods taken on credit, balance += amount
- record_payment:  money paid to the supplier, balance -= amount (may go negative)

Each movement writes the balance change and its LedgerEntry in ONE database
transaction. The balance is changed with an in-SQL increment
(balance = balance + :amount), so two operators paying the same supplier at
the same time both land. History is looked up by supplier_id.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidAmount, SupplierNotFound
from ..extensions import db
from ..money import quantize
from ..models import LedgerEntry, Product, Supplier
from ..models.suppliers import ENTRY_PAYMENT, ENTRY_PURCHASE
from ..time_utils import utcnow
from ..validation import (
    MAX_AMOUNT,
    ConflictError,
    ValidationError,
    has_subcent_precision,
    require_non_negative_amount,
    require_positive_amount,
    require_positive_quantity,
    to_decimal,
)
from . import stock_service
from .concurrency import rowcount_of, run_with_retry

FULL_SETTLEMENT_NOTE = "Full Settlement"


def create_supplier(*, name: str, phone: str | None = None, opening_balance=0) -> Supplier:
    """
    Create a supplier. opening_balance is the debt carried in from before the
    ledger existed; it is the base of the reconciliation check.
    """
    if not name or not name.strip():
        raise ValidationError("Supplier name is required")
    name = name.strip()

    opening = to_decimal(opening_balance or 0, "opening_balance")
    if abs(opening) > MAX_AMOUNT or has_subcent_precision(opening):
        raise ValidationError("opening_balance must be a money amount with at most 2 decimal places")
    opening = quantize(opening)

    if db.session.query(Supplier).filter(func.lower(Supplier.name) == name.lower()).first():
        raise ConflictError(f"Supplier '{name}' already exists")

    supplier = Supplier(name=name, phone=(phone or "").strip() or None, opening_balance=opening, balance=opening)
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Supplier '{name}' already exists")
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise SupplierNotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def list_suppliers(search: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier)
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Supplier.name.asc()).all()


def delete_supplier(supplier_id: int) -> None:
    """
    Remove a supplier and its ledger history.

    Refused with ConflictError while the balance is non-zero in either direction.
    """
    supplier = get_supplier(supplier_id)
    if quantize(supplier.balance) != 0:
        raise ConflictError(
            f"Supplier '{supplier.name}' still has a balance of {quantize(supplier.balance)}"
        )

    db.session.query(LedgerEntry).filter(LedgerEntry.supplier_id == supplier_id).delete()
    db.session.delete(supplier)
    db.session.commit()


def _post_entry(supplier_id: int, entry_type: str, amount: Decimal, note: str | None, *, commit: bool = True) -> LedgerEntry:
    """Move the balance and append the history row in the same transaction."""
    delta = amount if entry_type == ENTRY_PURCHASE else -amount

    result = db.session.execute(
        update(Supplier)
        .where(Supplier.id == supplier_id)
        .values(balance=Supplier.balance + delta, version_id=Supplier.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if rowcount_of(result) == 0:
        db.session.rollback()
        raise SupplierNotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})

    cached = db.session.identity_map.get(db.session.identity_key(Supplier, supplier_id))
    if cached is not None:
        db.session.expire(cached)

    entry = LedgerEntry(
        supplier_id=supplier_id,
        entry_type=entry_type,
        amount=amount,
        note=(note or "").strip()[:255] or None,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def record_purchase(supplier_id: int, amount, note: str | None = None) -> Supplier:
    """Goods taken on credit: balance += amount, one 'purchase' entry."""
    amount = quantize(require_positive_amount(amount))

    def _op():
        _post_entry(supplier_id, ENTRY_PURCHASE, amount, note)
        return get_supplier(supplier_id)

    return run_with_retry(_op)


def record_payment(supplier_id: int, amount, note: str | None = None) -> Supplier:
    """Payment to the supplier: balance -= amount, one 'payment' entry. No floor at zero."""
    amount = quantize(require_positive_amount(amount))

    def _op():
        _post_entry(supplier_id, ENTRY_PAYMENT, amount, note)
        return get_supplier(supplier_id)

    return run_with_retry(_op)


def settle_full(supplier_id: int) -> Supplier:
    """Pay off the whole current balance."""
    balance = get_supplier(supplier_id).balance
    if balance is None or balance <= 0:
        raise InvalidAmount(
            "Nothing to settle; balance is not positive",
            details={"supplier_id": supplier_id, "balance": str(balance)},
        )
    return record_payment(supplier_id, balance, FULL_SETTLEMENT_NOTE)


def history(supplier_id: int, *, limit: int | None = None) -> list[LedgerEntry]:
    """Ledger entries for one supplier, newest first."""
    get_supplier(supplier_id)
    query = (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.supplier_id == supplier_id)
        .order_by(LedgerEntry.occurred_at.desc(), LedgerEntry.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def reconcile_supplier_balance(supplier_id: int) -> dict:
    """
    Compare the stored balance with opening_balance + purchases - payments.

    Read-only. A non-zero drift means a balance was edited outside this service.
    """
    supplier = get_supplier(supplier_id)

    def _sum(entry_type: str) -> Decimal:
        value = (
            db.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0))
            .filter(LedgerEntry.supplier_id == supplier_id, LedgerEntry.entry_type == entry_type)
            .scalar()
        )
        return quantize(value or 0)

    purchases = _sum(ENTRY_PURCHASE)
    payments = _sum(ENTRY_PAYMENT)
    expected = quantize(supplier.opening_balance) + purchases - payments
    stored = quantize(supplier.balance)

    return {
        "supplier_id": supplier.id,
        "opening_balance": quantize(supplier.opening_balance),
        "purchases": purchases,
        "payments": payments,
        "expected_balance": expected,
        "stored_balance": stored,
        "drift": stored - expected,
        "in_sync": stored == expected,
    }


def record_delivery(supplier_id: int, lines: list[dict], note: str | None = None) -> dict:
    """
    Receive goods on credit from a supplier.

    lines: [{"product_id", "quantity", optional "unit_cost"}]; unit_cost
    defaults to the product's cost_price. Restocks every line and records the
    delivery value as one purchase entry, all in a single transaction.
    """
    if not lines:
        raise ValidationError("A delivery needs at least one line")

    def _op():
        get_supplier(supplier_id)
        total = Decimal("0")
        received = []
        reference = f"DELIVERY-{supplier_id}-{utcnow():%Y%m%d%H%M%S}"

        for raw in lines:
            product_id = raw.get("product_id")
            quantity = require_positive_quantity(raw.get("quantity"))
            product = stock_service.get_product(product_id)

            unit_cost = raw.get("unit_cost")
            if unit_cost is None:
                unit_cost = quantize(product.cost_price)
            else:
                unit_cost = require_non_negative_amount(unit_cost, "unit_cost")

            stock_service.increment(
                product_id,
                quantity,
                reference=reference,
                note=note or "Supplier delivery",
                commit=False,
            )
            total += unit_cost * quantity
            received.append({"product_id": product_id, "quantity": quantity, "unit_cost": unit_cost})

        entry = None
        if total > 0:
            entry = _post_entry(supplier_id, ENTRY_PURCHASE, quantize(total), note or f"Delivery {reference}", commit=False)
        db.session.commit()

        return {
            "supplier": get_supplier(supplier_id),
            "entry": entry,
            "total": quantize(total),
            "lines": received,
            "products": [db.session.get(Product, r["product_id"]) for r in received],
        }

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
