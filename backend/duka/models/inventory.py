from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and the authoritative on-hand counter.

    on_hand is a mutable column, not a ledger sum. Sales and deliveries never
    write it through the ORM: they issue conditional in-SQL updates
    (see services/stock_service.py) so concurrent commits cannot overdraw.
    Direct edits go through set_on_hand/adjust and still bump version_id.

    Low stock is derived (on_hand <= reorder_level) and never stored.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("on_hand >= 0", name="on_hand_non_negative"),
        db.CheckConstraint("selling_price >= 0", name="selling_price_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="pcs")

    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    movements = db.relationship(
        "StockMovement",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.on_hand <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} on_hand={self.on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "cost_price": money_str(self.cost_price),
            "selling_price": money_str(self.selling_price),
            "on_hand": self.on_hand,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every on-hand change.

    movement_type:
    - OUT: sale decrement or negative adjustment (quantity negative)
    - IN: delivery or positive adjustment
    - SET: inventory edit that overwrote on_hand (quantity is the delta applied)
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference": self.reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
