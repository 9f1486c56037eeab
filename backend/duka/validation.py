from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Date, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidAmount
from .money import CENT


# Largest amount any money column accepts (Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate supplier name)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce JSON input into a finite Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite")
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers: reject floats, decimals and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Numeric):
        amount = to_decimal(value, col.key)
        if abs(amount) > MAX_AMOUNT:
            raise ValidationError(f"{col.key} cannot exceed {MAX_AMOUNT}")
        if has_subcent_precision(amount):
            raise ValidationError(f"{col.key} cannot have more than 2 decimal places")
        return amount

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a YYYY-MM-DD date")
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be a YYYY-MM-DD date")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate and normalize incoming JSON against column metadata and a policy.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Non-negative prices and stock figures."""
    for field in ("cost_price", "selling_price"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
    for field in ("on_hand", "reorder_level"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")


def has_subcent_precision(amount: Decimal) -> bool:
    return amount != amount.quantize(CENT)


def _checked_amount(value: Any, field: str) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except ValidationError as e:
        raise InvalidAmount(str(e), details={field: str(value)})
    if abs(amount) > MAX_AMOUNT:
        raise InvalidAmount(f"{field} cannot exceed {MAX_AMOUNT}", details={field: str(amount)})
    if has_subcent_precision(amount):
        raise InvalidAmount(f"{field} cannot have more than 2 decimal places", details={field: str(amount)})
    return amount


def require_positive_amount(value: Any, field: str = "amount") -> Decimal:
    """Ledger amounts must be positive whole cents, finite and within column range."""
    amount = _checked_amount(value, field)
    if amount <= 0:
        raise InvalidAmount(f"{field} must be greater than zero", details={field: str(amount)})
    return amount


def require_non_negative_amount(value: Any, field: str = "amount") -> Decimal:
    amount = _checked_amount(value, field)
    if amount < 0:
        raise InvalidAmount(f"{field} must be >= 0", details={field: str(amount)})
    return amount


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be > 0")
    return value
