# Overview: Flask API routes for supplier debt operations; parses input and returns JSON responses.

"""
Supplier Routes

Debt ledger endpoints. Every balance change goes through supplier_service so
the matching history entry is written with it.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import CommerceError
from ..money import money_str
from ..services import supplier_service
from ..validation import ConflictError, ValidationError


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _reconciliation_to_json(report: dict) -> dict:
    return {
        k: (money_str(v) if k not in ("supplier_id", "in_sync") else v)
        for k, v in report.items()
    }


@suppliers_bp.get("")
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(search=request.args.get("search"))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)})


@suppliers_bp.post("")
def create_supplier_route():
    """
    Create a supplier.

    Request body:
    {
        "name": "Mama Mboga Distributors",  // required, unique
        "phone": "0712345678",              // optional
        "opening_balance": "0.00"           // optional debt carried in
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(
            name=data.get("name"),
            phone=data.get("phone"),
            opening_balance=data.get("opening_balance", 0),
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"supplier": supplier.to_dict()}), 201


@suppliers_bp.get("/<int:supplier_id>")
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify({"supplier": supplier.to_dict()})


@suppliers_bp.delete("/<int:supplier_id>")
def delete_supplier_route(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return "", 204


def _ledger_op(op, supplier_id: int, *args, status: int = 201):
    try:
        supplier = op(supplier_id, *args)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Supplier ledger operation failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"supplier": supplier.to_dict()}), status


@suppliers_bp.post("/<int:supplier_id>/purchases")
def record_purchase_route(supplier_id: int):
    """Request body: {"amount": "500.00", "note": "restock"}"""
    data = request.get_json(silent=True) or {}
    return _ledger_op(supplier_service.record_purchase, supplier_id, data.get("amount"), data.get("note"))


@suppliers_bp.post("/<int:supplier_id>/payments")
def record_payment_route(supplier_id: int):
    """Request body: {"amount": "500.00", "note": "Installment payment"}"""
    data = request.get_json(silent=True) or {}
    return _ledger_op(
        supplier_service.record_payment,
        supplier_id,
        data.get("amount"),
        data.get("note") or "Installment payment",
    )


@suppliers_bp.post("/<int:supplier_id>/settle")
def settle_route(supplier_id: int):
    return _ledger_op(supplier_service.settle_full, supplier_id)


@suppliers_bp.post("/<int:supplier_id>/deliveries")
def record_delivery_route(supplier_id: int):
    """
    Receive stock on credit.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 10, "unit_cost": "35.00"}],
        "note": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    lines = data.get("lines")
    if not isinstance(lines, list):
        return jsonify({"error": "lines must be a list"}), 400

    try:
        result = supplier_service.record_delivery(supplier_id, lines, note=data.get("note"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record delivery")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "supplier": result["supplier"].to_dict(),
        "entry": result["entry"].to_dict() if result["entry"] else None,
        "total": money_str(result["total"]),
        "products": [p.to_dict() for p in result["products"]],
    }), 201


@suppliers_bp.get("/<int:supplier_id>/history")
def history_route(supplier_id: int):
    limit = request.args.get("limit", type=int)
    try:
        entries = supplier_service.history(supplier_id, limit=limit)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})


@suppliers_bp.get("/<int:supplier_id>/reconcile")
def reconcile_route(supplier_id: int):
    try:
        report = supplier_service.reconcile_supplier_balance(supplier_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return jsonify(_reconciliation_to_json(report))
