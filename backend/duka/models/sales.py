from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


PAYMENT_CASH = "Cash"
PAYMENT_MPESA = "M-Pesa"
VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_MPESA)

SYNC_STATUS_SYNCED = "SYNCED"
SYNC_STATUS_PARTIAL = "PARTIAL"


class Sale(db.Model):
    """
    A committed sale. Written once by the checkout engine and never edited.

    Line prices are copied from the cart, not re-read from Product, so a later
    price change does not alter history. stock_sync_status is the only column
    that moves after creation: PARTIAL while StockSyncIssue rows are pending.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(64), nullable=False, unique=True)
    customer_name = db.Column(db.String(255), nullable=False, default="Walk-in Customer")

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    amount_tendered = db.Column(db.Numeric(12, 2), nullable=True)
    change_due = db.Column(db.Numeric(12, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    stock_sync_status = db.Column(db.String(16), nullable=False, default=SYNC_STATUS_SYNCED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number!r} total={self.total_amount}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_name": self.customer_name,
            "total_amount": money_str(self.total_amount),
            "payment_method": self.payment_method,
            "amount_tendered": money_str(self.amount_tendered),
            "change_due": money_str(self.change_due),
            "notes": self.notes,
            "stock_sync_status": self.stock_sync_status,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """One line of a sale. subtotal is always quantity * unit_price."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # Nullable: the product may be removed later, the sale keeps its name
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "subtotal": money_str(self.subtotal),
        }


ISSUE_PENDING = "PENDING"
ISSUE_RESOLVED = "RESOLVED"
ISSUE_ABANDONED = "ABANDONED"

REASON_PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
REASON_INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
REASON_WRITE_ERROR = "WRITE_ERROR"


class StockSyncIssue(db.Model):
    """
    A stock decrement that did not land after its sale was committed.

    Created by the checkout engine, retried by `flask stock retry-sync`.
    """
    __tablename__ = "stock_sync_issues"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(32), nullable=False)
    detail = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ISSUE_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("stock_sync_issues", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "reason": self.reason,
            "detail": self.detail,
            "status": self.status,
            "attempts": self.attempts,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
