"""
Checkout commit engine tests.

Covers the happy path, validation failures that must write nothing, the
sale-write failure, and the partial stock sync path with its retry.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from duka.cart import Cart
from duka.errors import (
    EmptyCart,
    ExceedsStock,
    InsufficientStock,
    InvalidAmount,
    PartialStockSyncFailure,
    SaleWriteFailed,
)
from duka.extensions import db
from duka.models import Product, Sale, SaleItem, StockMovement, StockSyncIssue
from duka.models.sales import ISSUE_ABANDONED, ISSUE_PENDING, ISSUE_RESOLVED
from duka.receipts import NullReceiptPrinter, ReceiptPrinter
from duka.services import concurrency, sales_service, stock_service


class RecordingPrinter(ReceiptPrinter):
    def __init__(self):
        self.printed = []

    def emit(self, sale, text):
        self.printed.append((sale.sale_number, text))


class BrokenPrinter(ReceiptPrinter):
    def emit(self, sale, text):
        raise RuntimeError("paper jam")


def cart_with(*pairs):
    cart = Cart()
    for product, quantity in pairs:
        cart.add(product)
        if quantity > 1:
            cart.get(product.id).quantity = quantity
    return cart


class TestCommitSale:
    def test_scenario_sell_three_then_three(self, db_session, product):
        """10 on hand, reorder at 5, price 50: sell 3 then 3."""
        printer = RecordingPrinter()
        cart = cart_with((product, 3))

        sale = sales_service.commit_sale(cart, payment_method="Cash", printer=printer)

        assert sale.total_amount == Decimal("150.00")
        assert sale.stock_sync_status == "SYNCED"
        assert sale.customer_name == "Walk-in Customer"
        assert [(i.product_name, i.quantity, i.subtotal) for i in sale.items] == [
            ("Maize Flour 2kg", 3, Decimal("150.00")),
        ]
        assert cart.is_empty

        p = stock_service.get_product(product.id)
        assert p.on_hand == 7
        assert not p.is_low_stock

        sales_service.commit_sale(cart_with((p, 3)), payment_method="M-Pesa", printer=printer)
        p = stock_service.get_product(product.id)
        assert p.on_hand == 4
        assert p.is_low_stock

        assert len(printer.printed) == 2
        assert sale.sale_number in printer.printed[0][1]

    def test_cash_tendered_and_change(self, db_session, product):
        sale = sales_service.commit_sale(
            cart_with((product, 3)),
            payment_method="Cash",
            amount_tendered="200",
            customer_name="  Wanjiru ",
            printer=NullReceiptPrinter(),
        )
        assert sale.amount_tendered == Decimal("200.00")
        assert sale.change_due == Decimal("50.00")
        assert sale.customer_name == "Wanjiru"

    def test_cash_tendered_below_total_writes_nothing(self, db_session, product):
        with pytest.raises(InvalidAmount):
            sales_service.commit_sale(cart_with((product, 3)), payment_method="Cash", amount_tendered="100")
        assert db_session.query(Sale).count() == 0
        assert stock_service.get_product(product.id).on_hand == 10

    def test_unknown_payment_method(self, db_session, product):
        with pytest.raises(InvalidAmount):
            sales_service.commit_sale(cart_with((product, 1)), payment_method="Cheque")

    def test_empty_cart(self, db_session):
        with pytest.raises(EmptyCart):
            sales_service.commit_sale(Cart(), payment_method="Cash")
        assert db_session.query(Sale).count() == 0

    def test_prices_come_from_cart_not_current_product(self, db_session, product):
        cart = cart_with((product, 2))
        product.selling_price = Decimal("60.00")
        db_session.commit()

        sale = sales_service.commit_sale(cart, payment_method="Cash", printer=RecordingPrinter())
        assert sale.total_amount == Decimal("100.00")
        assert sale.items[0].unit_price == Decimal("50.00")

    def test_stock_dropped_after_add_is_caught_before_writing(self, db_session, product):
        cart = cart_with((product, 8))
        stock_service.adjust(product.id, -5)

        with pytest.raises(ExceedsStock) as exc:
            sales_service.commit_sale(cart, payment_method="Cash")

        assert exc.value.details["items"] == [
            {"product_id": product.id, "requested_quantity": 8, "on_hand": 5},
        ]
        assert db_session.query(Sale).count() == 0
        assert stock_service.get_product(product.id).on_hand == 5
        assert not cart.is_empty

    def test_sale_write_failure_touches_no_stock(self, db_session, product, monkeypatch):
        def boom():
            raise OperationalError("INSERT INTO sales", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "commit", boom)
        with pytest.raises(SaleWriteFailed):
            sales_service.commit_sale(cart_with((product, 3)), payment_method="Cash")
        monkeypatch.undo()

        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert stock_service.get_product(product.id).on_hand == 10

    def test_printer_failure_does_not_undo_sale(self, db_session, product):
        sale = sales_service.commit_sale(cart_with((product, 1)), payment_method="Cash", printer=BrokenPrinter())
        assert db_session.get(Sale, sale.id) is not None
        assert stock_service.get_product(product.id).on_hand == 9

    def test_total_is_sum_of_stored_line_subtotals(self, db_session, product, second_product):
        cart = Cart.from_lines(
            {product.id: product, second_product.id: second_product},
            [
                {"product_id": product.id, "quantity": 3, "unit_price": "0.33"},
                {"product_id": second_product.id, "quantity": 7, "unit_price": "12.49"},
            ],
        )
        sale = sales_service.commit_sale(cart, payment_method="Cash", printer=NullReceiptPrinter())

        assert sale.total_amount == sum(i.subtotal for i in sale.items)
        assert sale.total_amount == Decimal("88.42")

    def test_sub_cent_unit_prices_write_nothing(self, db_session, product, second_product):
        cart = Cart.from_lines(
            {product.id: product, second_product.id: second_product},
            [
                {"product_id": product.id, "quantity": 1, "unit_price": "0.005"},
                {"product_id": second_product.id, "quantity": 1, "unit_price": "0.005"},
            ],
        )
        with pytest.raises(InvalidAmount):
            sales_service.commit_sale(cart, payment_method="Cash")

        assert db_session.query(Sale).count() == 0
        assert stock_service.get_product(product.id).on_hand == 10

    def test_sale_numbers_are_unique(self, db_session, product):
        numbers = {
            sales_service.commit_sale(
                cart_with((stock_service.get_product(product.id), 1)),
                payment_method="Cash",
                printer=RecordingPrinter(),
            ).sale_number
            for _ in range(3)
        }
        assert len(numbers) == 3


class TestPartialStockSync:
    def test_failed_line_is_queued_and_sale_kept(self, db_session, product, second_product, monkeypatch):
        real_decrement = stock_service.decrement

        def flaky_decrement(product_id, amount, **kwargs):
            if product_id == second_product.id:
                raise InsufficientStock("simulated", details={"product_id": product_id})
            return real_decrement(product_id, amount, **kwargs)

        monkeypatch.setattr(sales_service.stock_service, "decrement", flaky_decrement)

        printer = RecordingPrinter()
        cart = cart_with((product, 2), (second_product, 4))
        with pytest.raises(PartialStockSyncFailure) as exc:
            sales_service.commit_sale(cart, payment_method="Cash", printer=printer)
        monkeypatch.undo()

        err = exc.value
        assert err.details["failed_product_ids"] == [second_product.id]
        assert err.details["queued"] is True
        assert err.sale.stock_sync_status == "PARTIAL"
        assert cart.is_empty
        assert printer.printed == []

        assert db_session.query(Sale).count() == 1
        assert stock_service.get_product(product.id).on_hand == 8
        assert stock_service.get_product(second_product.id).on_hand == 20

        issues = stock_service.list_sync_issues()
        assert [(i.product_id, i.quantity, i.reason) for i in issues] == [
            (second_product.id, 4, "INSUFFICIENT_STOCK"),
        ]

        summary = stock_service.retry_pending_stock_sync()
        assert summary == {"resolved": 1, "pending": 0, "abandoned": 0}
        assert stock_service.get_product(second_product.id).on_hand == 16
        db_session.expire_all()
        assert db_session.get(Sale, err.sale.id).stock_sync_status == "SYNCED"
        assert db_session.get(StockSyncIssue, issues[0].id).status == ISSUE_RESOLVED

    def test_race_for_last_units_never_goes_negative(self, db_session, monkeypatch):
        from conftest import make_product
        last = make_product(db_session, name="Last bag", on_hand=3, reorder_level=1)

        cart_a = cart_with((last, 3))
        cart_b = cart_with((last, 3))

        sales_service.commit_sale(cart_a, payment_method="Cash", printer=RecordingPrinter())

        # Second operator validated against the old figure before the first commit landed
        monkeypatch.setattr(sales_service, "_validate_on_hand", lambda cart: None)
        with pytest.raises(PartialStockSyncFailure):
            sales_service.commit_sale(cart_b, payment_method="Cash", printer=RecordingPrinter())

        assert stock_service.get_product(last.id).on_hand == 0
        out_movements = db_session.query(StockMovement).filter_by(product_id=last.id).all()
        assert sum(m.quantity for m in out_movements) == -3

    def test_retry_abandons_deleted_products_and_caps_attempts(self, db_session, product, second_product):
        sale = Sale(
            sale_number="SALE-X",
            customer_name="Walk-in Customer",
            total_amount=Decimal("10.00"),
            payment_method="Cash",
            stock_sync_status="PARTIAL",
            created_at=db.func.now(),
        )
        db_session.add(sale)
        db_session.flush()
        db_session.add_all([
            StockSyncIssue(sale_id=sale.id, product_id=9999, product_name="Gone", quantity=1,
                           reason="PRODUCT_NOT_FOUND"),
            StockSyncIssue(sale_id=sale.id, product_id=product.id, product_name=product.name, quantity=50,
                           reason="INSUFFICIENT_STOCK"),
        ])
        db_session.commit()

        assert stock_service.retry_pending_stock_sync(max_attempts=2) == {"resolved": 0, "pending": 1, "abandoned": 1}
        assert stock_service.retry_pending_stock_sync(max_attempts=2) == {"resolved": 0, "pending": 0, "abandoned": 1}

        statuses = {i.product_name: (i.status, i.attempts) for i in stock_service.list_sync_issues(None)}
        assert statuses == {"Gone": (ISSUE_ABANDONED, 1), product.name: (ISSUE_ABANDONED, 2)}
        assert stock_service.list_sync_issues(ISSUE_PENDING) == []
        assert db_session.get(Sale, sale.id).stock_sync_status == "PARTIAL"
        assert stock_service.get_product(product.id).on_hand == 10

    def test_queue_write_failure_still_flags_sale(self, client, db_session, product, monkeypatch):
        real_commit = db.session.commit

        def commit_without_issues():
            if any(isinstance(obj, StockSyncIssue) for obj in db.session.new):
                raise OperationalError("INSERT INTO stock_sync_issues", {}, Exception("database is locked"))
            return real_commit()

        def always_short(product_id, amount, **kwargs):
            raise InsufficientStock("simulated", details={"product_id": product_id})

        monkeypatch.setattr(sales_service.stock_service, "decrement", always_short)
        monkeypatch.setattr(db.session, "commit", commit_without_issues)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        with pytest.raises(PartialStockSyncFailure) as exc:
            sales_service.commit_sale(cart_with((product, 2)), payment_method="Cash")
        monkeypatch.undo()

        assert exc.value.details["queued"] is False
        db_session.expire_all()
        assert db_session.get(Sale, exc.value.sale.id).stock_sync_status == "PARTIAL"
        assert stock_service.list_sync_issues(None) == []

        health = client.get("/api/health").get_json()
        assert health["status"] == "degraded"

    def test_retry_write_error_keeps_issue_pending(self, db_session, product, second_product, monkeypatch):
        locked_id, free_id = product.id, second_product.id
        sale = Sale(
            sale_number="SALE-Y",
            customer_name="Walk-in Customer",
            total_amount=Decimal("390.00"),
            payment_method="Cash",
            stock_sync_status="PARTIAL",
            created_at=db.func.now(),
        )
        db_session.add(sale)
        db_session.flush()
        db_session.add_all([
            StockSyncIssue(sale_id=sale.id, product_id=locked_id, product_name="Maize Flour 2kg", quantity=1,
                           reason="WRITE_ERROR"),
            StockSyncIssue(sale_id=sale.id, product_id=free_id, product_name="Rice 1kg", quantity=2,
                           reason="WRITE_ERROR"),
        ])
        db_session.commit()
        sale_id = sale.id

        real_decrement = stock_service.decrement

        def locked_decrement(product_id, amount, **kwargs):
            if product_id == locked_id:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return real_decrement(product_id, amount, **kwargs)

        monkeypatch.setattr(stock_service, "decrement", locked_decrement)
        assert stock_service.retry_pending_stock_sync() == {"resolved": 1, "pending": 1, "abandoned": 0}
        monkeypatch.undo()

        pending = stock_service.list_sync_issues(ISSUE_PENDING)
        assert [(i.product_id, i.attempts, i.detail) for i in pending] == [(locked_id, 1, "OperationalError")]
        assert stock_service.get_product(free_id).on_hand == 18
        assert db_session.get(Sale, sale_id).stock_sync_status == "PARTIAL"

        assert stock_service.retry_pending_stock_sync() == {"resolved": 1, "pending": 0, "abandoned": 0}
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).stock_sync_status == "SYNCED"
        assert stock_service.get_product(locked_id).on_hand == 9


def test_list_sales_filters_by_sync_status(db_session, product):
    sales_service.commit_sale(cart_with((product, 1)), payment_method="Cash", printer=RecordingPrinter())
    assert len(sales_service.list_sales()) == 1
    assert sales_service.list_sales(sync_status="PARTIAL") == []
    assert db_session.query(Product).count() == 1
