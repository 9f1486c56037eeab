from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


ENTRY_PURCHASE = "purchase"
ENTRY_PAYMENT = "payment"


class Supplier(db.Model):
    """
    Supplier (distributor) with a running debt balance.

    balance is what the shop owes. It may go negative (overpayment/credit).
    Expected invariant, checked by supplier_service.reconcile_supplier_balance:
        balance == opening_balance + sum(purchases) - sum(payments)
    """
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(32), nullable=True)

    opening_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    entries = db.relationship(
        "LedgerEntry",
        back_populates="supplier",
        order_by="LedgerEntry.id",
        lazy="dynamic",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} balance={self.balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "opening_balance": money_str(self.opening_balance),
            "balance": money_str(self.balance),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerEntry(db.Model):
    """
    Immutable history row for one movement on a supplier balance.

    Linked by supplier_id, never by name, so "Acme" cannot pick up
    "Acme Wholesale" entries. amount is always positive; entry_type gives the sign.
    """
    __tablename__ = "supplier_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="amount_positive"),
        db.Index("ix_supplier_ledger_supplier_occurred", "supplier_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    entry_type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    supplier = db.relationship("Supplier", back_populates="entries")

    @property
    def signed_amount(self):
        return self.amount if self.entry_type == ENTRY_PURCHASE else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "entry_type": self.entry_type,
            "amount": money_str(self.amount),
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
