from decimal import Decimal

import pytest

from duka.errors import InvalidAmount, ProductNotFound, SupplierNotFound
from duka.models import LedgerEntry, Supplier
from duka.services import stock_service, supplier_service
from duka.services.supplier_service import FULL_SETTLEMENT_NOTE
from duka.validation import ConflictError, ValidationError


def balance_of(session, supplier_id):
    session.expire_all()
    return session.get(Supplier, supplier_id).balance


class TestDebtLedger:
    def test_purchase_then_full_settlement(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, "1000")
        assert balance_of(db_session, supplier.id) == Decimal("1000.00")

        supplier_service.settle_full(supplier.id)
        assert balance_of(db_session, supplier.id) == Decimal("0.00")

        entries = supplier_service.history(supplier.id)
        assert [(e.entry_type, e.amount, e.note) for e in entries] == [
            ("payment", Decimal("1000.00"), FULL_SETTLEMENT_NOTE),
            ("purchase", Decimal("1000.00"), None),
        ]

    def test_purchase_and_payment_round_trip(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, 500, note="restock")
        supplier_service.record_payment(supplier.id, 500, note="Installment payment")
        assert balance_of(db_session, supplier.id) == Decimal("0.00")
        assert len(supplier_service.history(supplier.id)) == 2

    def test_overpayment_goes_negative(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, "300.00")
        updated = supplier_service.record_payment(supplier.id, "450.50")
        assert updated.balance == Decimal("-150.50")

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, True, "NaN", "0.004", "12.345"])
    def test_invalid_amounts_change_nothing(self, db_session, supplier, amount):
        with pytest.raises(InvalidAmount):
            supplier_service.record_purchase(supplier.id, amount)
        with pytest.raises(InvalidAmount):
            supplier_service.record_payment(supplier.id, amount)
        assert balance_of(db_session, supplier.id) == Decimal("0.00")
        assert db_session.query(LedgerEntry).count() == 0

    def test_unknown_supplier(self, db_session):
        with pytest.raises(SupplierNotFound):
            supplier_service.record_purchase(404, "10")
        with pytest.raises(SupplierNotFound):
            supplier_service.history(404)
        assert db_session.query(LedgerEntry).count() == 0

    def test_settle_with_nothing_owed(self, db_session, supplier):
        with pytest.raises(InvalidAmount):
            supplier_service.settle_full(supplier.id)

    def test_history_is_isolated_by_supplier_not_name(self, db_session, supplier):
        similar = supplier_service.create_supplier(name="Distributor D Wholesale")
        supplier_service.record_purchase(supplier.id, "100")
        supplier_service.record_purchase(similar.id, "900")

        assert [e.amount for e in supplier_service.history(supplier.id)] == [Decimal("100.00")]
        assert [e.amount for e in supplier_service.history(similar.id)] == [Decimal("900.00")]

    def test_history_limit(self, db_session, supplier):
        for amount in ("10", "20", "30"):
            supplier_service.record_purchase(supplier.id, amount)
        assert [e.amount for e in supplier_service.history(supplier.id, limit=2)] == [
            Decimal("30.00"), Decimal("20.00"),
        ]


class TestSupplierCrud:
    def test_create_with_opening_balance(self, db_session):
        s = supplier_service.create_supplier(name="  Mama Mboga  ", phone="", opening_balance="250")
        assert s.name == "Mama Mboga"
        assert s.phone is None
        assert s.balance == Decimal("250.00")
        assert s.opening_balance == Decimal("250.00")

    def test_duplicate_name_is_case_insensitive(self, db_session, supplier):
        with pytest.raises(ConflictError):
            supplier_service.create_supplier(name="distributor d")

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(name="   ")

    @pytest.mark.parametrize("opening", ["1.005", "lots"])
    def test_opening_balance_must_be_whole_cents(self, db_session, opening):
        with pytest.raises(ValidationError):
            supplier_service.create_supplier(name="Precise Ltd", opening_balance=opening)
        assert db_session.query(Supplier).count() == 0

    def test_list_search(self, db_session, supplier):
        supplier_service.create_supplier(name="Kisumu Fish Traders")
        assert [s.name for s in supplier_service.list_suppliers(search="fish")] == ["Kisumu Fish Traders"]
        assert len(supplier_service.list_suppliers()) == 2

    def test_delete_settled_supplier_removes_history(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, "300")
        supplier_service.settle_full(supplier.id)

        supplier_service.delete_supplier(supplier.id)

        assert db_session.query(Supplier).count() == 0
        assert db_session.query(LedgerEntry).count() == 0

    def test_delete_refused_while_balance_outstanding(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, "300")
        with pytest.raises(ConflictError):
            supplier_service.delete_supplier(supplier.id)
        assert balance_of(db_session, supplier.id) == Decimal("300.00")
        assert db_session.query(LedgerEntry).count() == 1

        with pytest.raises(SupplierNotFound):
            supplier_service.delete_supplier(404)


class TestReconcile:
    def test_in_sync_after_normal_operations(self, db_session):
        s = supplier_service.create_supplier(name="Opening Co", opening_balance="100")
        supplier_service.record_purchase(s.id, "400")
        supplier_service.record_payment(s.id, "150")

        report = supplier_service.reconcile_supplier_balance(s.id)
        assert report["expected_balance"] == Decimal("350.00")
        assert report["stored_balance"] == Decimal("350.00")
        assert report["drift"] == Decimal("0.00")
        assert report["in_sync"] is True

    def test_detects_out_of_band_edit(self, db_session, supplier):
        supplier_service.record_purchase(supplier.id, "400")
        s = db_session.get(Supplier, supplier.id)
        assert s.balance == Decimal("400.00")
        s.balance = Decimal("999.00")
        db_session.commit()

        report = supplier_service.reconcile_supplier_balance(supplier.id)
        assert report["in_sync"] is False
        assert report["drift"] == Decimal("599.00")


class TestDelivery:
    def test_delivery_restocks_and_posts_one_purchase(self, db_session, supplier, product, second_product):
        result = supplier_service.record_delivery(supplier.id, [
            {"product_id": product.id, "quantity": 10},
            {"product_id": second_product.id, "quantity": 5, "unit_cost": "150.00"},
        ])

        # 10 x 40.00 cost price + 5 x 150.00
        assert result["total"] == Decimal("1150.00")
        assert result["entry"].entry_type == "purchase"
        assert balance_of(db_session, supplier.id) == Decimal("1150.00")
        assert stock_service.get_product(product.id).on_hand == 20
        assert stock_service.get_product(second_product.id).on_hand == 25

    def test_delivery_with_unknown_product_writes_nothing(self, db_session, supplier, product):
        with pytest.raises(ProductNotFound):
            supplier_service.record_delivery(supplier.id, [
                {"product_id": product.id, "quantity": 10},
                {"product_id": 9999, "quantity": 1},
            ])
        assert stock_service.get_product(product.id).on_hand == 10
        assert balance_of(db_session, supplier.id) == Decimal("0.00")
        assert db_session.query(LedgerEntry).count() == 0

    def test_delivery_needs_lines(self, db_session, supplier):
        with pytest.raises(ValidationError):
            supplier_service.record_delivery(supplier.id, [])

    def test_free_goods_restock_without_debt(self, db_session, supplier, product):
        result = supplier_service.record_delivery(supplier.id, [
            {"product_id": product.id, "quantity": 5, "unit_cost": "0"},
        ])

        assert result["total"] == Decimal("0.00")
        assert result["entry"] is None
        assert stock_service.get_product(product.id).on_hand == 15
        assert balance_of(db_session, supplier.id) == Decimal("0.00")

    def test_negative_unit_cost_rejected(self, db_session, supplier, product):
        with pytest.raises(InvalidAmount):
            supplier_service.record_delivery(supplier.id, [
                {"product_id": product.id, "quantity": 5, "unit_cost": "-1"},
            ])
        assert stock_service.get_product(product.id).on_hand == 10
