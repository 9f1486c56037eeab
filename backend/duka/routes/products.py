# Overview: Flask API routes for products and stock operations; parses input and returns JSON responses.

# backend/duka/routes/products.py
"""
Product and stock routes.

Stock quantities are not writable through the product PATCH; use
/adjust (signed delta) or /stock (direct set) so every change leaves a
StockMovement behind.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import CommerceError
from ..models import Product
from ..services import products_service, stock_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category", "unit",
        "cost_price", "selling_price", "on_hand", "reorder_level",
    },
    required_on_create={"name", "selling_price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "unit", "cost_price", "selling_price", "reorder_level"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List products.

    Query params:
    - search: case-insensitive name filter
    - page / per_page: optional pagination (default 20, max 100)
    """
    return products_service.list_products(
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    product = products_service.create_product(patch=patch)
    return {"product": product.to_dict()}, 201


@products_bp.get("/low-stock")
def low_stock_route():
    items = stock_service.list_low_stock()
    return {"items": [p.to_dict() for p in items], "count": len(items)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = stock_service.get_product(product_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return {"product": product.to_dict()}


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Product,
            payload=payload,
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return {"product": product.to_dict()}


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return "", 204


@products_bp.post("/<int:product_id>/adjust")
def adjust_stock_route(product_id: int):
    """
    Signed stock adjustment.

    Request body: {"delta": -3, "note": "damaged"}
    """
    data = request.get_json(silent=True) or {}
    try:
        product = stock_service.adjust(product_id, data.get("delta"), note=data.get("note"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
    return {"product": product.to_dict()}


@products_bp.put("/<int:product_id>/stock")
def set_stock_route(product_id: int):
    """
    Overwrite on-hand quantity (stock take).

    Request body: {"on_hand": 12, "note": "count 2026-10-01"}
    """
    data = request.get_json(silent=True) or {}
    try:
        product = stock_service.set_on_hand(product_id, data.get("on_hand"), note=data.get("note"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock")
        return jsonify({"error": "Internal server error"}), 500
    return {"product": product.to_dict()}


@products_bp.get("/<int:product_id>/movements")
def list_movements_route(product_id: int):
    limit = min(max(request.args.get("limit", 50, type=int), 1), 500)
    try:
        movements = stock_service.list_movements(product_id, limit=limit)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}
