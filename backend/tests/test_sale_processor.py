from decimal import Decimal

import pytest

from costledger.errors import (
    InsufficientStock,
    InvalidPrice,
    NotSellable,
    ProductNotFound,
    ValidationError,
)
from costledger.models import LedgerEntry, Product, SaleLine, SaleTransaction
from costledger.services.events import QuantityChanged, SaleCreated
from costledger.services.sales_service import SaleItemRequest


def _quantity(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).current_quantity


def test_single_line_sale(engine, make_product, db_session):
    product = make_product(current_quantity=25, selling_price="12.00")

    result = engine.sales.create_sale(
        [{"product_id": product.id, "quantity": 5}], "Cash", actor_id="cashier"
    )

    sale = result.sale
    assert sale.total_amount == Decimal("60.00")
    assert sale.payment_method == "Cash"
    assert len(sale.lines) == 1
    assert sale.lines[0].unit_price == Decimal("12.00")
    assert sale.lines[0].total_price == Decimal("60.00")
    assert _quantity(db_session, product.id) == Decimal("20")

    entries = db_session.query(LedgerEntry).filter_by(product_id=product.id, kind="sale").all()
    assert len(entries) == 1
    assert entries[0].quantity_delta == Decimal("-5")
    assert entries[0].previous_quantity == Decimal("25")
    assert entries[0].new_quantity == Decimal("20")
    assert entries[0].sale_id == sale.id
    assert entries[0].reason == f"Sale transaction {sale.id}"


def test_insufficient_stock_rejects_whole_sale(engine, make_product, db_session):
    product = make_product(current_quantity=25)

    with pytest.raises(InsufficientStock) as exc_info:
        engine.sales.create_sale([{"product_id": product.id, "quantity": 100}], "Cash")

    assert exc_info.value.available == Decimal("25")
    assert exc_info.value.requested == Decimal("100")
    assert _quantity(db_session, product.id) == Decimal("25")
    assert db_session.query(LedgerEntry).filter_by(kind="sale").count() == 0
    assert db_session.query(SaleTransaction).count() == 0


def test_missing_product_on_second_line_rolls_back_first(engine, make_product, db_session):
    product = make_product(current_quantity=25)

    with pytest.raises(ProductNotFound):
        engine.sales.create_sale(
            [
                {"product_id": product.id, "quantity": 2},
                {"product_id": product.id + 1000, "quantity": 1},
            ],
            "Telebirr",
        )

    assert _quantity(db_session, product.id) == Decimal("25")
    assert db_session.query(SaleTransaction).count() == 0
    assert db_session.query(SaleLine).count() == 0
    assert db_session.query(LedgerEntry).filter_by(kind="sale").count() == 0


def test_multi_line_sale_is_one_unit(engine, make_product, db_session):
    injera = make_product(name="Injera", current_quantity=10, selling_price="3.50")
    tibs = make_product(name="Tibs", type="combination", current_quantity=4,
                        selling_price="15.25", cost_price="9.00")

    result = engine.sales.create_sale(
        [
            {"product_id": injera.id, "quantity": 3},
            {"product_id": tibs.id, "quantity": "1.5"},
        ],
        "CBE",
    )

    assert result.sale.total_amount == Decimal("33.375")
    assert [line.position for line in result.sale.lines] == [1, 2]
    assert _quantity(db_session, injera.id) == Decimal("7")
    assert _quantity(db_session, tibs.id) == Decimal("2.5")
    assert db_session.query(LedgerEntry).filter_by(sale_id=result.sale.id).count() == 2


def test_repeated_product_checked_against_summed_quantity(engine, make_product, db_session):
    product = make_product(current_quantity=5)

    with pytest.raises(InsufficientStock) as exc_info:
        engine.sales.create_sale(
            [
                {"product_id": product.id, "quantity": 3},
                {"product_id": product.id, "quantity": 3},
            ],
            "Cash",
        )

    assert exc_info.value.requested == Decimal("6")
    assert _quantity(db_session, product.id) == Decimal("5")


def test_stock_item_is_not_sellable(engine, make_product):
    flour = make_product(name="Flour", type="stock", current_quantity=50)

    with pytest.raises(NotSellable):
        engine.sales.create_sale([{"product_id": flour.id, "quantity": 1}], "Cash")


def test_zero_selling_price_is_invalid(engine, make_product):
    product = make_product(current_quantity=5, selling_price="0")

    with pytest.raises(InvalidPrice):
        engine.sales.create_sale([{"product_id": product.id, "quantity": 1}], "Cash")


def test_client_unit_price_is_ignored(engine, make_product):
    product = make_product(current_quantity=5, selling_price="12.00")

    result = engine.sales.create_sale(
        [{"product_id": product.id, "quantity": 1, "unit_price": "0.01"}], "POS"
    )

    assert result.sale.lines[0].unit_price == Decimal("12.00")
    assert result.sale.total_amount == Decimal("12.00")


@pytest.mark.parametrize("items, payment_method", [
    ([], "Cash"),
    (None, "Cash"),
    ([{"product_id": 1, "quantity": 0}], "Cash"),
    ([{"product_id": "1", "quantity": 1}], "Cash"),
    ([{"product_id": 1, "quantity": 1}], "Bitcoin"),
    ([{"product_id": 1, "quantity": 1}], None),
])
def test_malformed_requests_rejected(engine, db_session, items, payment_method):
    with pytest.raises(ValidationError):
        engine.sales.create_sale(items, payment_method)
    assert db_session.query(SaleTransaction).count() == 0


@pytest.mark.parametrize("quantity", [Decimal("-5"), Decimal("0")])
def test_typed_requests_are_validated(engine, make_product, db_session, quantity):
    product = make_product(current_quantity=10, selling_price="12.00")

    with pytest.raises(ValidationError):
        engine.sales.create_sale([SaleItemRequest(product_id=product.id, quantity=quantity)], "Cash")

    assert _quantity(db_session, product.id) == Decimal("10")
    assert db_session.query(SaleTransaction).count() == 0
    assert db_session.query(LedgerEntry).filter_by(kind="sale").count() == 0


def test_typed_request_product_id_must_be_integer(engine, db_session):
    with pytest.raises(ValidationError):
        engine.sales.create_sale([SaleItemRequest(product_id="1", quantity=Decimal("1"))], "Cash")
    assert db_session.query(SaleTransaction).count() == 0


def test_events_published_after_commit(engine, events, make_product):
    sales, changes = [], []
    events.subscribe(SaleCreated, sales.append)
    events.subscribe(QuantityChanged, changes.append)
    product = make_product(current_quantity=10)

    result = engine.sales.create_sale([{"product_id": product.id, "quantity": 4}], "Awash", actor_id="cashier")

    assert result.delivery.ok
    assert len(sales) == 1
    assert sales[0].sale["id"] == result.sale.id
    assert sales[0].actor_id == "cashier"
    assert len(changes) == 1
    assert changes[0].kind == "sale"
    assert changes[0].new_quantity == Decimal("6")


def test_failing_subscriber_does_not_undo_sale(engine, events, make_product, db_session):
    def broken(event):
        raise RuntimeError("audit log unavailable")

    events.subscribe(SaleCreated, broken)
    product = make_product(current_quantity=10)

    result = engine.sales.create_sale([{"product_id": product.id, "quantity": 1}], "Zemen")

    assert not result.delivery.ok
    assert result.delivery.failures[0]["error"] == "audit log unavailable"
    assert db_session.query(SaleTransaction).count() == 1
    assert _quantity(db_session, product.id) == Decimal("9")


def test_list_and_get_sales(engine, make_product):
    product = make_product(current_quantity=10)
    first = engine.sales.create_sale([{"product_id": product.id, "quantity": 1}], "Cash").sale
    second = engine.sales.create_sale([{"product_id": product.id, "quantity": 2}], "Cash").sale

    page = engine.sales.list_sales(page=1, per_page=1)
    assert page["pagination"]["total"] == 2
    assert page["pagination"]["total_pages"] == 2
    assert page["count"] == 1
    assert page["items"][0]["id"] in (first.id, second.id)

    assert engine.sales.get_sale(first.id).total_amount == Decimal("12.00")
    assert engine.sales.get_sale(12345) is None
