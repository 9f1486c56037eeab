from datetime import date, timedelta
from decimal import Decimal

import pytest

from duka.errors import ExpenseNotFound
from duka.models import Expense
from duka.services import expense_service
from duka.time_utils import utcnow
from duka.validation import ValidationError


def log(description, amount, days_ago=0, **fields):
    return expense_service.create_expense(patch={
        "description": description,
        "amount": Decimal(amount),
        "expense_date": utcnow().date() - timedelta(days=days_ago),
        **fields,
    })


class TestExpenseLog:
    def test_create_uses_defaults(self, db_session):
        expense = expense_service.create_expense(patch={"description": "Airtime", "amount": Decimal("100.00")})

        assert expense.category == "General"
        assert expense.payment_method == "Cash"
        assert expense.expense_date == utcnow().date()
        assert expense.to_dict()["amount"] == "100.00"

    def test_update_and_delete(self, db_session):
        expense = log("Shop rent", "15000", category="Rent")

        updated = expense_service.update_expense(expense.id, patch={"amount": Decimal("14500.00"), "notes": "discount"})
        assert updated.amount == Decimal("14500.00")
        assert updated.notes == "discount"
        assert updated.category == "Rent"

        expense_service.delete_expense(expense.id)
        assert db_session.query(Expense).count() == 0
        with pytest.raises(ExpenseNotFound):
            expense_service.get_expense(expense.id)

    def test_list_by_period_newest_first(self, db_session):
        log("Tea for staff", "50")
        log("Boda boda delivery", "200", days_ago=3, category="Transportation")
        log("Electricity token", "1000", days_ago=20, category="Utilities")
        log("Last year's license", "5000", days_ago=400)

        assert [e.description for e in expense_service.list_expenses(period="today")] == ["Tea for staff"]
        assert len(expense_service.list_expenses(period="week")) == 2
        assert len(expense_service.list_expenses(period="month")) == 3

        everything = expense_service.list_expenses()
        assert [e.description for e in everything] == [
            "Tea for staff", "Boda boda delivery", "Electricity token", "Last year's license",
        ]
        assert expense_service.total_of(everything) == Decimal("6250.00")

    def test_explicit_range(self, db_session):
        log("Inside", "10", days_ago=5)
        log("Outside", "10", days_ago=50)
        today = utcnow().date()

        found = expense_service.list_expenses(start=today - timedelta(days=10), end=today)
        assert [e.description for e in found] == ["Inside"]

    def test_unknown_period(self, db_session):
        with pytest.raises(ValidationError):
            expense_service.list_expenses(period="fortnight")


class TestRules:
    @pytest.mark.parametrize("patch", [
        {"amount": Decimal("0")},
        {"amount": Decimal("-5")},
        {"category": "Bribes"},
        {"payment_method": "Barter"},
    ])
    def test_rejected(self, patch):
        with pytest.raises(ValidationError):
            expense_service.enforce_rules_expense(patch)

    def test_month_start_clamps_to_short_months(self):
        assert expense_service.period_start("month", today=date(2026, 3, 31)) == date(2026, 2, 28)
        assert expense_service.period_start("month", today=date(2026, 1, 15)) == date(2025, 12, 15)
        assert expense_service.period_start("week", today=date(2026, 10, 17)) == date(2026, 10, 11)
        assert expense_service.period_start("all") is None
