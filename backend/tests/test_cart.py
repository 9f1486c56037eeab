import unittest
from decimal import Decimal

from duka.cart import Cart, ProductSnapshot
from duka.errors import ExceedsStock, InvalidAmount, InvalidQuantity, OutOfStock, ProductNotFound


def snapshot(product_id=1, name="Sugar 1kg", price="50.00", on_hand=10):
    return ProductSnapshot(product_id=product_id, name=name, unit_price=Decimal(price), on_hand=on_hand)


class FakeProduct:
    def __init__(self, id, name, selling_price, on_hand):
        self.id = id
        self.name = name
        self.selling_price = Decimal(selling_price)
        self.on_hand = on_hand


class CartTests(unittest.TestCase):
    def test_add_new_product_creates_line_of_one(self):
        cart = Cart()
        line = cart.add(snapshot())
        self.assertEqual(line.quantity, 1)
        self.assertEqual(len(cart), 1)
        self.assertEqual(cart.total(), Decimal("50.00"))

    def test_add_out_of_stock_is_rejected(self):
        cart = Cart()
        with self.assertRaises(OutOfStock):
            cart.add(snapshot(on_hand=0))
        self.assertTrue(cart.is_empty)

    def test_repeat_add_increments_without_ceiling(self):
        cart = Cart()
        p = snapshot(on_hand=2)
        cart.add(p)
        cart.add(p)
        line = cart.add(p)
        self.assertEqual(line.quantity, 3)
        self.assertEqual(len(cart), 1)

    def test_add_accepts_product_rows(self):
        cart = Cart()
        line = cart.add(FakeProduct(7, "Beans 1kg", "160.00", 4))
        self.assertEqual(line.product_id, 7)
        self.assertEqual(line.unit_price, Decimal("160.00"))

    def test_price_is_frozen_at_first_add(self):
        cart = Cart()
        cart.add(snapshot(price="50.00"))
        cart.add(snapshot(price="65.00"))
        self.assertEqual(cart.get(1).unit_price, Decimal("50.00"))
        self.assertEqual(cart.total(), Decimal("100.00"))

    def test_set_quantity_within_stock(self):
        cart = Cart()
        cart.add(snapshot(on_hand=10))
        line = cart.set_quantity(1, 2)
        self.assertEqual(line.quantity, 3)
        self.assertEqual(line.subtotal, Decimal("150.00"))

    def test_set_quantity_above_stock_is_rejected_and_unchanged(self):
        cart = Cart()
        cart.add(snapshot(on_hand=3))
        with self.assertRaises(ExceedsStock) as ctx:
            cart.set_quantity(1, 5)
        self.assertEqual(ctx.exception.details["on_hand"], 3)
        self.assertEqual(cart.get(1).quantity, 1)

    def test_set_quantity_to_zero_is_rejected(self):
        cart = Cart()
        cart.add(snapshot())
        cart.set_quantity(1, 1)
        with self.assertRaises(InvalidQuantity):
            cart.set_quantity(1, -2)
        self.assertEqual(cart.get(1).quantity, 2)

    def test_decrement_is_allowed_even_above_snapshot(self):
        cart = Cart()
        p = snapshot(on_hand=1)
        cart.add(p)
        cart.add(p)
        cart.add(p)
        self.assertEqual(cart.set_quantity(1, -1).quantity, 2)

    def test_set_quantity_unknown_line(self):
        with self.assertRaises(ProductNotFound):
            Cart().set_quantity(99, 1)

    def test_remove_and_clear(self):
        cart = Cart()
        cart.add(snapshot(product_id=1))
        cart.add(snapshot(product_id=2, name="Salt"))
        cart.remove(1)
        self.assertIsNone(cart.get(1))
        cart.remove(1)
        cart.clear()
        self.assertTrue(cart.is_empty)
        self.assertEqual(cart.total(), Decimal("0"))

    def test_from_lines_merges_duplicates_and_uses_client_price(self):
        products = {1: FakeProduct(1, "Sugar 1kg", "55.00", 10)}
        cart = Cart.from_lines(products, [
            {"product_id": 1, "quantity": 2, "unit_price": "50.00"},
            {"product_id": 1, "quantity": 1},
        ])
        self.assertEqual(cart.get(1).quantity, 3)
        self.assertEqual(cart.get(1).unit_price, Decimal("50.00"))

    def test_from_lines_rejects_bad_input(self):
        products = {1: FakeProduct(1, "Sugar 1kg", "55.00", 10)}
        with self.assertRaises(ProductNotFound):
            Cart.from_lines(products, [{"product_id": 2, "quantity": 1}])
        with self.assertRaises(InvalidQuantity):
            Cart.from_lines(products, [{"product_id": 1, "quantity": 0}])
        with self.assertRaises(InvalidQuantity):
            Cart.from_lines(products, [{"product_id": 1, "quantity": "2"}])
        with self.assertRaises(InvalidAmount):
            Cart.from_lines(products, [{"product_id": 1, "quantity": 1, "unit_price": "abc"}])


if __name__ == "__main__":
    unittest.main()
