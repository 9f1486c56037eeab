from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


DEFAULT_CATEGORY = "General"
DEFAULT_PAYMENT_METHOD = "Cash"

EXPENSE_CATEGORIES = (
    "Rent", "Utilities", "Salaries", "Stock Purchase", "Transportation",
    "Marketing", "Maintenance", "Insurance", "Supplies", "General",
)
EXPENSE_PAYMENT_METHODS = ("Cash", "Card", "Bank Transfer", "Mobile Money", "Check")


class Expense(db.Model):
    """
    Money paid out of the shop that is not a supplier debt payment.

    expense_date is the business day the cost belongs to, set by the operator;
    created_at is when the row was written.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default=DEFAULT_CATEGORY)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default=DEFAULT_PAYMENT_METHOD)
    expense_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Expense id={self.id} {self.expense_date} {self.category} {self.amount}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount": money_str(self.amount),
            "payment_method": self.payment_method,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
