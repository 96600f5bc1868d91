from decimal import Decimal

import pytest

from costledger.errors import (
    InsufficientStock,
    ProductNotFound,
    StockTrackingDisabled,
    ValidationError,
)
from costledger.models import LedgerEntry, Product
from costledger.services.events import QuantityChanged


def _reload(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id)


def test_add_stock_writes_quantity_and_entry(engine, make_product, db_session):
    product = make_product(type="stock", current_quantity=2)

    entry = engine.stock.add_stock(product.id, "3.5", reason="Delivery", actor_id="chef")

    assert entry.kind == "addition"
    assert entry.previous_quantity == Decimal("2")
    assert entry.new_quantity == Decimal("5.5")
    assert entry.actor_id == "chef"
    assert _reload(db_session, product.id).current_quantity == Decimal("5.5")


def test_usage_beyond_available_writes_nothing(engine, make_product, db_session):
    product = make_product(type="stock", current_quantity=4)

    with pytest.raises(InsufficientStock) as exc_info:
        engine.stock.record_usage(product.id, 5)

    assert exc_info.value.available == Decimal("4")
    assert exc_info.value.requested == Decimal("5")
    assert _reload(db_session, product.id).current_quantity == Decimal("4")
    assert db_session.query(LedgerEntry).filter_by(product_id=product.id).count() == 1


def test_usage_down_to_zero_is_allowed(engine, make_product, db_session):
    product = make_product(type="stock", current_quantity=4)

    entry = engine.stock.record_usage(product.id, 4)

    assert entry.new_quantity == Decimal("0")
    assert _reload(db_session, product.id).current_quantity == Decimal("0")


def test_adjustment_records_difference(engine, make_product, db_session):
    product = make_product(type="stock", current_quantity=10)

    entry = engine.stock.adjust_to(product.id, "7.25", reason="Weekly count")

    assert entry.kind == "adjustment"
    assert entry.quantity_delta == Decimal("-2.75")
    assert entry.reason == "Weekly count"
    assert _reload(db_session, product.id).current_quantity == Decimal("7.25")


def test_adjustment_requires_reason(engine, make_product):
    product = make_product(type="stock", current_quantity=10)

    with pytest.raises(ValidationError):
        engine.stock.adjust_to(product.id, 5, reason="  ")


def test_non_positive_quantities_rejected(engine, make_product):
    product = make_product(type="stock", current_quantity=10)

    with pytest.raises(ValidationError):
        engine.stock.add_stock(product.id, 0)
    with pytest.raises(ValidationError):
        engine.stock.record_usage(product.id, "-1")
    with pytest.raises(ValidationError):
        engine.stock.add_stock(product.id, "abc")


def test_tracking_disabled_product_rejected(engine, make_product, db_session):
    product = make_product(type="stock", stock_tracking_enabled=False)

    with pytest.raises(StockTrackingDisabled):
        engine.stock.add_stock(product.id, 1)
    assert db_session.query(LedgerEntry).count() == 0


def test_unknown_product(engine):
    with pytest.raises(ProductNotFound):
        engine.stock.add_stock(999, 1)


def test_quantity_changed_published_after_commit(engine, events, make_product):
    received = []
    events.subscribe(QuantityChanged, received.append)
    product = make_product(type="stock", current_quantity=1)

    engine.stock.add_stock(product.id, 2, actor_id="chef")

    assert len(received) == 1
    assert received[0].product_id == product.id
    assert received[0].new_quantity == Decimal("3")
    assert received[0].delta == Decimal("2")
    assert received[0].kind == "addition"


def test_low_stock(engine, make_product):
    low = make_product(name="Berbere", type="stock", current_quantity=1, min_stock_level=2)
    make_product(name="Teff", type="stock", current_quantity=20, min_stock_level=2)
    make_product(name="Untracked", type="stock", stock_tracking_enabled=False, min_stock_level=5)

    assert [p.id for p in engine.stock.low_stock()] == [low.id]
