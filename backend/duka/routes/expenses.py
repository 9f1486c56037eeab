# Overview: Flask API routes for the expense log; parses input and returns JSON responses.

# backend/duka/routes/expenses.py
"""Expense log routes."""
from datetime import date

from flask import Blueprint, jsonify, request

from ..errors import CommerceError
from ..models import Expense
from ..money import money_str
from ..services import expense_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

EXPENSE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=set(expense_service.EXPENSE_MUTABLE_FIELDS),
    required_on_create={"description", "amount"},
)

EXPENSE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(expense_service.EXPENSE_MUTABLE_FIELDS),
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_arg(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


@expenses_bp.get("")
def list_expenses_route():
    """
    List expenses, newest first.

    Query params:
    - period: today | week | month | all (default all)
    - start / end: inclusive YYYY-MM-DD bounds on expense_date
    """
    try:
        expenses = expense_service.list_expenses(
            period=request.args.get("period", "all"),
            start=_date_arg("start"),
            end=_date_arg("end"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total": money_str(expense_service.total_of(expenses)),
    }


@expenses_bp.post("")
def create_expense_route():
    """
    Log an expense.

    Request body:
    {
        "description": "Shop rent October",  // required
        "amount": "15000.00",                // required, > 0
        "category": "Rent",                  // default General
        "payment_method": "Mobile Money",    // default Cash
        "expense_date": "2026-10-01",        // default today
        "notes": "..."
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Expense,
            payload=payload,
            policy=EXPENSE_CREATE_POLICY,
            partial=False,
        )
        expense_service.enforce_rules_expense(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    expense = expense_service.create_expense(patch=patch)
    return {"expense": expense.to_dict()}, 201


@expenses_bp.get("/<int:expense_id>")
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(expense_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return {"expense": expense.to_dict()}


@expenses_bp.patch("/<int:expense_id>")
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Expense,
            payload=payload,
            policy=EXPENSE_UPDATE_POLICY,
            partial=True,
        )
        expense_service.enforce_rules_expense(patch)
        expense = expense_service.update_expense(expense_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return {"expense": expense.to_dict()}


@expenses_bp.delete("/<int:expense_id>")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id)
    except CommerceError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    return "", 204
