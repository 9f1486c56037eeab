# Overview: In-memory checkout cart; never touches the database.

"""
Cart

A cart lives for one checkout session. Each line holds a snapshot of the
product taken when it was first added: the unit price is frozen there and
carried into the sale, and the on-hand figure is the ceiling for explicit
increments. The checkout engine re-validates quantities against live stock,
so the snapshot ceiling is a convenience check only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .errors import ExceedsStock, InvalidAmount, InvalidQuantity, OutOfStock, ProductNotFound
from .validation import ValidationError, to_decimal


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    name: str
    unit_price: Decimal
    on_hand: int

    @classmethod
    def from_product(cls, product) -> "ProductSnapshot":
        return cls(
            product_id=product.id,
            name=product.name,
            unit_price=Decimal(product.selling_price),
            on_hand=int(product.on_hand),
        )


@dataclass
class CartLine:
    product: ProductSnapshot
    quantity: int = 1

    @property
    def product_id(self) -> int:
        return self.product.product_id

    @property
    def unit_price(self) -> Decimal:
        return self.product.unit_price

    @property
    def subtotal(self) -> Decimal:
        return self.product.unit_price * self.quantity


class Cart:
    def __init__(self):
        self._lines: dict[int, CartLine] = {}

    @classmethod
    def from_lines(cls, products: dict, lines: Iterable[dict]) -> "Cart":
        """
        Rebuild a cart sent by a client.

        products maps product id -> Product. Each line is
        {"product_id", "quantity", optional "unit_price"}; a client-supplied
        unit_price is the price the cashier saw when the item was added.
        """
        cart = cls()
        for raw in lines:
            product_id = raw.get("product_id")
            product = products.get(product_id)
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

            quantity = raw.get("quantity", 1)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise InvalidQuantity("quantity must be a positive integer", details={"product_id": product_id})

            snapshot = ProductSnapshot.from_product(product)
            if raw.get("unit_price") is not None:
                try:
                    unit_price = to_decimal(raw["unit_price"], "unit_price")
                except ValidationError as e:
                    raise InvalidAmount(str(e), details={"product_id": product_id})
                snapshot = ProductSnapshot(
                    product_id=snapshot.product_id,
                    name=snapshot.name,
                    unit_price=unit_price,
                    on_hand=snapshot.on_hand,
                )

            existing = cart._lines.get(product_id)
            if existing:
                existing.quantity += quantity
            else:
                cart._lines[product_id] = CartLine(product=snapshot, quantity=quantity)
        return cart

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def get(self, product_id: int) -> CartLine | None:
        return self._lines.get(product_id)

    def add(self, product) -> CartLine:
        """
        Add one unit of product.

        Raises OutOfStock when nothing is on hand. A repeat add increments the
        existing line without checking the ceiling; that is enforced by
        set_quantity and again at commit.
        """
        snapshot = product if isinstance(product, ProductSnapshot) else ProductSnapshot.from_product(product)
        if snapshot.on_hand <= 0:
            raise OutOfStock(
                f"{snapshot.name} is out of stock",
                details={"product_id": snapshot.product_id},
            )

        line = self._lines.get(snapshot.product_id)
        if line is not None:
            line.quantity += 1
            return line

        line = CartLine(product=snapshot, quantity=1)
        self._lines[snapshot.product_id] = line
        return line

    def set_quantity(self, product_id: int, delta: int) -> CartLine:
        """Adjust a line by delta. Rejected changes leave the line untouched."""
        line = self._lines.get(product_id)
        if line is None:
            raise ProductNotFound(f"Product {product_id} is not in the cart", details={"product_id": product_id})

        new_quantity = line.quantity + delta
        if new_quantity <= 0:
            # Dropping a line is remove()'s job
            raise InvalidQuantity(
                "quantity cannot go below 1; remove the line instead",
                details={"product_id": product_id, "quantity": line.quantity},
            )
        if delta > 0 and new_quantity > line.product.on_hand:
            raise ExceedsStock(
                f"Only {line.product.on_hand} of {line.product.name} available",
                details={
                    "product_id": product_id,
                    "requested_quantity": new_quantity,
                    "on_hand": line.product.on_hand,
                },
            )

        line.quantity = new_quantity
        return line

    def remove(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines.values()), Decimal("0"))
