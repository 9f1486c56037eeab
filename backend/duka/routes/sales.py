# Overview: Flask API routes for checkout and sales; parses input and returns JSON responses.

# backend/duka/routes/sales.py
"""Checkout and sale lookup routes."""

from flask import Blueprint, current_app, jsonify, request

from ..cart import Cart
from ..errors import CommerceError, PartialStockSyncFailure
from ..receipts import render_for_app
from ..services import sales_service, stock_service
from ..time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/checkout")
def checkout_route():
    """
    Commit a client cart as a sale.

    Request body:
    {
        "payment_method": "Cash" | "M-Pesa",
        "customer_name": "...",          // optional
        "amount_tendered": "200.00",     // optional, Cash only
        "notes": "...",                  // optional
        "lines": [{"product_id": 1, "quantity": 2, "unit_price": "50.00"}]
    }

    unit_price is the price shown when the item went into the cart; when
    omitted the current selling price is used.

    Responses:
    - 201 {"sale", "receipt"}: sale and all stock updates committed
    - 409 {"error", "details", "sale"}: sale committed, some stock out of sync
    - 4xx {"error", "details"}: nothing written
    - 503: sale could not be written, nothing changed
    """
    data = request.get_json(silent=True) or {}
    lines = data.get("lines")
    if not isinstance(lines, list):
        return jsonify({"error": "lines must be a list"}), 400

    try:
        products = sales_service.load_products(line.get("product_id") for line in lines if isinstance(line, dict))
        cart = Cart.from_lines(products, [line for line in lines if isinstance(line, dict)])
        sale = sales_service.commit_sale(
            cart,
            payment_method=data.get("payment_method", "Cash"),
            customer_name=data.get("customer_name"),
            amount_tendered=data.get("amount_tendered"),
            notes=data.get("notes"),
        )
    except PartialStockSyncFailure as e:
        return jsonify({"error": str(e), "details": e.details, "sale": e.sale.to_dict()}), e.status_code
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(), "receipt": render_for_app(sale)}), 201


@sales_bp.get("")
def list_sales_route():
    """
    Recent sales, newest first.

    Query params:
    - limit (1-500, default 50)
    - stock_sync_status: SYNCED | PARTIAL
    - since: ISO-8601 timestamp, e.g. 2026-10-01T00:00:00Z
    """
    limit = min(max(request.args.get("limit", 50, type=int), 1), 500)
    try:
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError:
        return jsonify({"error": "since must be an ISO-8601 datetime"}), 400

    sales = sales_service.list_sales(
        limit=limit,
        sync_status=request.args.get("stock_sync_status"),
        since=since,
    )
    return jsonify({"items": [s.to_dict(include_items=False) for s in sales], "count": len(sales)})


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.get("/<int:sale_id>/receipt")
def get_receipt_route(sale_id: int):
    """Plain-text receipt; safe to fetch any number of times."""
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return render_for_app(sale), 200, {"Content-Type": "text/plain; charset=utf-8"}


@sales_bp.get("/sync-issues")
def list_sync_issues_route():
    status = request.args.get("status", "PENDING")
    issues = stock_service.list_sync_issues(None if status == "ALL" else status)
    return jsonify({"items": [i.to_dict() for i in issues], "count": len(issues)})
