# backend/duka/services/expense_service.py
"""
Expense Log

Operating costs paid out of the till or account: rent, transport, airtime.
Supplier debt payments are NOT expenses; they go through supplier_service so
the supplier balance moves with them.

Listing is by expense_date, the business day the cost belongs to:
- today: expense_date == today
- week:  the last 7 days including today
- month: since the same day last month
- all:   everything
An explicit start/end (inclusive) narrows any of these.
"""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal

from ..errors import ExpenseNotFound
from ..extensions import db
from ..models import Expense
from ..models.expenses import (
    DEFAULT_CATEGORY,
    DEFAULT_PAYMENT_METHOD,
    EXPENSE_CATEGORIES,
    EXPENSE_PAYMENT_METHODS,
)
from ..time_utils import utcnow
from ..validation import ValidationError

EXPENSE_MUTABLE_FIELDS = {"description", "category", "amount", "payment_method", "expense_date", "notes"}
PERIODS = ("today", "week", "month", "all")


def enforce_rules_expense(patch: dict) -> None:
    if "amount" in patch and (patch["amount"] is None or patch["amount"] <= 0):
        raise ValidationError("amount must be > 0")
    if patch.get("category") is not None and patch["category"] not in EXPENSE_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(EXPENSE_CATEGORIES)}")
    if patch.get("payment_method") is not None and patch["payment_method"] not in EXPENSE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(EXPENSE_PAYMENT_METHODS)}")


def _today() -> date:
    return utcnow().date()


def _month_before(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def period_start(period: str, today: date | None = None) -> date | None:
    """First expense_date included in a named period; None for 'all'."""
    today = today or _today()
    if period == "today":
        return today
    if period == "week":
        return today - timedelta(days=6)
    if period == "month":
        return _month_before(today)
    if period == "all":
        return None
    raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise ExpenseNotFound(f"Expense {expense_id} not found", details={"expense_id": expense_id})
    return expense


def list_expenses(*, period: str = "all", start: date | None = None, end: date | None = None) -> list[Expense]:
    """Newest expense_date first."""
    query = db.session.query(Expense)

    lower = period_start(period)
    if start is not None and (lower is None or start > lower):
        lower = start
    if lower is not None:
        query = query.filter(Expense.expense_date >= lower)
    if end is not None:
        query = query.filter(Expense.expense_date <= end)

    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def total_of(expenses: list[Expense]) -> Decimal:
    return sum((e.amount for e in expenses), Decimal("0.00"))


def create_expense(*, patch: dict) -> Expense:
    """Create an expense from a validated patch dict."""
    expense = Expense(
        category=DEFAULT_CATEGORY,
        payment_method=DEFAULT_PAYMENT_METHOD,
        expense_date=_today(),
    )
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, k, v)
    db.session.add(expense)
    db.session.commit()
    return expense


def update_expense(expense_id: int, *, patch: dict) -> Expense:
    expense = get_expense(expense_id)
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, k, v)
    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> None:
    expense = get_expense(expense_id)
    db.session.delete(expense)
    db.session.commit()
