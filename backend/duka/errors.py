# Overview: Exception taxonomy for the commerce engine (cart, checkout, stock and supplier ledgers).

"""
Every domain failure carries a human-readable message plus a ``details`` dict
that routes return verbatim to the client.

Recoverable, no state change:
- OutOfStock, ExceedsStock, InvalidQuantity, EmptyCart (cart/checkout validation)
- ProductNotFound, SupplierNotFound, ExpenseNotFound, InvalidAmount (ledger input validation)
- SaleWriteFailed (checkout aborted before any stock was touched; safe to retry)

Partially applied:
- PartialStockSyncFailure: the sale exists, some stock decrements did not land.
  The failed lines are queued as StockSyncIssue rows for `flask stock retry-sync`.
"""

from __future__ import annotations


class CommerceError(Exception):
    """Base class for domain errors raised by the commerce engine."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OutOfStock(CommerceError):
    """Raised when adding a product with nothing on hand to a cart."""

    status_code = 409


class ExceedsStock(CommerceError):
    """Raised when a requested quantity is above the available on-hand quantity."""

    status_code = 409


class InvalidQuantity(CommerceError):
    pass


class EmptyCart(CommerceError):
    pass


class InvalidAmount(CommerceError):
    pass


class ProductNotFound(CommerceError):
    status_code = 404


class SupplierNotFound(CommerceError):
    status_code = 404


class ExpenseNotFound(CommerceError):
    status_code = 404


class InsufficientStock(CommerceError):
    """Raised by a conditional decrement that found less stock than requested."""

    status_code = 409


class SaleWriteFailed(CommerceError):
    """The sale record could not be persisted; no stock was mutated."""

    status_code = 503


class PartialStockSyncFailure(CommerceError):
    """
    The sale was persisted but one or more stock decrements failed.

    ``sale`` is the committed Sale; ``failures`` lists one dict per failed line.
    ``queued`` is False when the failed lines could not be queued for retry.
    """

    status_code = 409

    def __init__(self, message: str, *, sale, failures: list[dict], queued: bool = True):
        super().__init__(message, details={
            "sale_id": sale.id,
            "sale_number": sale.sale_number,
            "failed_product_ids": [f["product_id"] for f in failures],
            "failures": failures,
            "queued": queued,
        })
        self.sale = sale
        self.failures = failures
        self.queued = queued


class PaymentGatewayError(CommerceError):
    status_code = 502
