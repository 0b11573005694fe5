"""
Sale transaction tests.

Verifies:
- Totals, VAT and stock after a successful sale
- A failing line leaves stock and the sales tables untouched
- Input is rejected before storage is touched
- Item prices are snapshots of the selling price at sale time
"""

from datetime import datetime
from decimal import Decimal

import pytest

from posdesk.errors import ForbiddenError, ValidationError
from posdesk.extensions import db
from posdesk.models import Product, Sale, SaleItem
from posdesk.services import sales_service
from posdesk.services.invoice_service import invoice_prefix
from posdesk.services.sales_service import (
    InactiveProductError,
    InsufficientStockError,
    ProductNotFoundError,
    SaleAmountLimitError,
)
from posdesk.time_utils import local_today


def _stock(product_id):
    return db.session.get(Product, product_id).stock_quantity


def _nothing_recorded():
    return db.session.query(Sale).count() == 0 and db.session.query(SaleItem).count() == 0


class TestRecordSale:
    """Successful sales."""

    def test_standard_rated_totals(self, db_session, cashier_user, standard_product):
        sale = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 2}],
            "CASH",
            actor=cashier_user,
        )

        assert sale.subtotal == Decimal("200.00")
        assert sale.vat_total == Decimal("36.00")
        assert sale.total_amount == Decimal("236.00")
        assert sale.status == "COMPLETED"
        assert sale.user_id == cashier_user.id
        assert len(sale.items) == 1

        item = sale.items[0]
        assert item.quantity == 2
        assert item.unit_price == Decimal("100.00")
        assert item.total_price == Decimal("200.00")
        assert item.vat_amount == Decimal("36.00")

        assert _stock(standard_product.id) == 8

    def test_totals_add_up_across_vat_categories(
        self, db_session, cashier_user, standard_product, zero_rated_product, exempt_product
    ):
        sale = sales_service.record_sale(
            [
                {"product_id": standard_product.id, "quantity": 1},
                {"product_id": zero_rated_product.id, "quantity": 3},
                {"product_id": exempt_product.id, "quantity": 1},
            ],
            "MOMO",
            actor=cashier_user,
        )

        by_product = {item.product_id: item for item in sale.items}
        assert by_product[zero_rated_product.id].vat_amount == Decimal("0.00")
        assert by_product[exempt_product.id].vat_amount == Decimal("0.00")
        assert by_product[standard_product.id].vat_amount == Decimal("18.00")

        assert sale.subtotal == sum(item.total_price for item in sale.items)
        assert sale.vat_total == sum(item.vat_amount for item in sale.items)
        assert sale.total_amount == sale.subtotal + sale.vat_total
        assert sale.subtotal == Decimal("182.50")
        assert sale.total_amount == Decimal("200.50")

        assert _stock(zero_rated_product.id) == 47
        assert _stock(exempt_product.id) == 4

    def test_vat_rounds_half_up_to_the_cent(self, db_session, cashier_user, category):
        from conftest import make_product

        product = make_product(
            db_session, category,
            barcode="6001000000042", name="Gum", selling="0.25", buying="0.10", stock=5,
        )
        sale = sales_service.record_sale(
            [{"product_id": product.id, "quantity": 1}], "CASH", actor=cashier_user,
        )

        # 0.25 * 0.18 = 0.045
        assert sale.vat_total == Decimal("0.05")
        assert sale.total_amount == Decimal("0.30")

    def test_selling_out_exact_stock(self, db_session, cashier_user, exempt_product):
        sales_service.record_sale(
            [{"product_id": exempt_product.id, "quantity": 5}], "CARD", actor=cashier_user,
        )
        assert _stock(exempt_product.id) == 0

    def test_invoice_number_uses_sale_day(self, db_session, cashier_user, standard_product):
        now = datetime(2025, 1, 1, 12, 0, 0)
        first = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=cashier_user, now=now,
        )
        second = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=cashier_user, now=now,
        )

        prefix = invoice_prefix(local_today(now))
        assert first.invoice_number == f"{prefix}00001"
        assert second.invoice_number == f"{prefix}00002"

    def test_payment_method_is_case_insensitive(self, db_session, cashier_user, standard_product):
        sale = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "card", actor=cashier_user,
        )
        assert sale.payment_method == "CARD"

    def test_customer_id_is_stored_as_tag(self, db_session, cashier_user, standard_product):
        sale = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", 42, actor=cashier_user,
        )
        assert sale.customer_id == "42"

    def test_admin_can_record_sale(self, db_session, admin_user, standard_product):
        sale = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=admin_user,
        )
        assert sale.user_id == admin_user.id

    def test_item_prices_are_snapshots(self, db_session, cashier_user, standard_product):
        sale = sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=cashier_user,
        )

        product = db.session.get(Product, standard_product.id)
        product.selling_price = Decimal("150.00")
        db.session.commit()

        reloaded = sales_service.get_sale(sale.id)
        assert reloaded.items[0].unit_price == Decimal("100.00")
        assert reloaded.total_amount == Decimal("118.00")


class TestRecordSaleFailures:
    """A failing sale writes nothing."""

    def test_insufficient_stock_on_later_line_rolls_back(
        self, db_session, cashier_user, standard_product, exempt_product
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.record_sale(
                [
                    {"product_id": standard_product.id, "quantity": 3},
                    {"product_id": exempt_product.id, "quantity": 6},
                ],
                "CASH",
                actor=cashier_user,
            )

        assert exc_info.value.message == "Insufficient stock for Infant Formula. Available: 5"
        assert exc_info.value.details["requested_quantity"] == 6
        assert _stock(standard_product.id) == 10
        assert _stock(exempt_product.id) == 5
        assert _nothing_recorded()

    def test_same_product_twice_cannot_oversell(self, db_session, cashier_user, exempt_product):
        with pytest.raises(InsufficientStockError):
            sales_service.record_sale(
                [
                    {"product_id": exempt_product.id, "quantity": 3},
                    {"product_id": exempt_product.id, "quantity": 3},
                ],
                "CASH",
                actor=cashier_user,
            )

        assert _stock(exempt_product.id) == 5
        assert _nothing_recorded()

    def test_unknown_product(self, db_session, cashier_user, standard_product):
        with pytest.raises(ProductNotFoundError) as exc_info:
            sales_service.record_sale(
                [
                    {"product_id": standard_product.id, "quantity": 1},
                    {"product_id": 999999, "quantity": 1},
                ],
                "CASH",
                actor=cashier_user,
            )

        assert exc_info.value.message == "Product with ID 999999 not found"
        assert _stock(standard_product.id) == 10
        assert _nothing_recorded()

    def test_inactive_product(self, db_session, cashier_user, standard_product):
        product = db.session.get(Product, standard_product.id)
        product.is_active = False
        db.session.commit()

        with pytest.raises(InactiveProductError):
            sales_service.record_sale(
                [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=cashier_user,
            )

        assert _stock(standard_product.id) == 10
        assert _nothing_recorded()

    def test_sale_total_above_money_limit(self, db_session, cashier_user, category):
        from conftest import make_product

        product = make_product(
            db_session, category,
            barcode="6001000000059", name="Generator Set", selling="60000000.00", buying="1.00",
            stock=5, vat_category="EXEMPT",
        )

        with pytest.raises(SaleAmountLimitError):
            sales_service.record_sale(
                [{"product_id": product.id, "quantity": 2}], "CARD", actor=cashier_user,
            )

        assert _stock(product.id) == 5
        assert _nothing_recorded()

    def test_inactive_actor_is_refused(self, db_session, standard_product):
        from conftest import make_user

        inactive = make_user(db_session, "former_cashier", "CASHIER", is_active=False)
        with pytest.raises(ForbiddenError):
            sales_service.record_sale(
                [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=inactive,
            )
        assert _nothing_recorded()


class TestBasketValidation:
    """Malformed input never reaches storage."""

    @pytest.mark.parametrize("items", [None, [], "1x2", {"product_id": 1, "quantity": 1}])
    def test_items_required(self, db_session, cashier_user, items):
        with pytest.raises(ValidationError) as exc_info:
            sales_service.record_sale(items, "CASH", actor=cashier_user)
        assert exc_info.value.errors[0]["field"] == "items"

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5, None, True])
    def test_quantity_must_be_positive_integer(self, db_session, cashier_user, standard_product, quantity):
        with pytest.raises(ValidationError) as exc_info:
            sales_service.record_sale(
                [{"product_id": standard_product.id, "quantity": quantity}], "CASH", actor=cashier_user,
            )
        assert {"field": "items[0].quantity", "message": "Valid quantity is required"} in exc_info.value.errors
        assert _stock(standard_product.id) == 10

    def test_every_bad_line_is_reported(self, db_session, cashier_user):
        with pytest.raises(ValidationError) as exc_info:
            sales_service.record_sale(
                [{"product_id": "x", "quantity": 1}, {"product_id": 1, "quantity": 0}],
                "CASH",
                actor=cashier_user,
            )
        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"items[0].product_id", "items[1].quantity"}

    @pytest.mark.parametrize("method", [None, "", "BITCOIN", 3])
    def test_payment_method_must_be_known(self, db_session, cashier_user, standard_product, method):
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                [{"product_id": standard_product.id, "quantity": 1}], method, actor=cashier_user,
            )
        assert _nothing_recorded()

    def test_customer_id_length_is_bounded(self, db_session, cashier_user, standard_product):
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                [{"product_id": standard_product.id, "quantity": 1}], "CASH", "c" * 65, actor=cashier_user,
            )


class TestSalesQuery:
    def test_filters_by_user_and_method(self, db_session, cashier_user, other_cashier, standard_product):
        sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CASH", actor=cashier_user,
        )
        sales_service.record_sale(
            [{"product_id": standard_product.id, "quantity": 1}], "CARD", actor=other_cashier,
        )

        mine = sales_service.sales_query(user_id=cashier_user.id).all()
        assert [s.user_id for s in mine] == [cashier_user.id]

        cards = sales_service.sales_query(payment_method="card").all()
        assert [s.payment_method for s in cards] == ["CARD"]

    def test_rejects_bad_dates(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.sales_query(start_date="yesterday")
