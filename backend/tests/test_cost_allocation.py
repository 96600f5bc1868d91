from datetime import datetime, timedelta, timezone
from decimal import Decimal, localcontext

import pytest

from costledger.errors import InvalidAllocation, InvariantViolation, ProductNotFound, ValidationError
from costledger.models import CostOperation
from costledger.money import MONEY_CONTEXT


def _op(engine, amount, category, product=None, **fields):
    payload = {"description": f"{category} cost", "amount": amount, "category": category, **fields}
    if product is not None:
        payload["related_entity"] = {"type": "product", "id": product.id}
    return engine.costs.record_cost_operation(payload, actor_id="manager")


def test_general_cost_allocated_by_inventory_share(engine, make_product):
    # 200 of 500 inventory value -> 40% share
    doro = make_product(name="Doro Wot", type="combination", cost_price="8.00",
                        selling_price="20.00", current_quantity=25)
    make_product(name="Rice", type="stock", cost_price="10.00", current_quantity=30)
    _op(engine, "100.00", "operational")

    breakdown = engine.costs.product_cost(doro.id)

    assert breakdown.inventory_cost == Decimal("200.00")
    assert breakdown.allocation_share == Decimal("0.4")
    assert breakdown.operational_cost == Decimal("40.00")
    assert breakdown.overhead_cost == Decimal("0")
    assert breakdown.total_cost == Decimal("240.00")
    assert breakdown.cost_per_unit == Decimal("9.6")
    assert breakdown.profit_margin == Decimal("52")


def test_direct_costs_are_not_shared(engine, make_product):
    doro = make_product(name="Doro Wot", type="combination", cost_price="8.00",
                        selling_price="20.00", current_quantity=25)
    rice = make_product(name="Rice", type="stock", cost_price="10.00", current_quantity=30)
    _op(engine, "30", "overhead", product=doro)

    assert engine.costs.product_cost(doro.id).overhead_cost == Decimal("30")
    assert engine.costs.product_cost(rice.id).overhead_cost == Decimal("0")


def test_components_sum_exactly_to_total(engine, make_product):
    a = make_product(name="A", type="stock", cost_price="1.00", current_quantity=1)
    make_product(name="B", type="stock", cost_price="1.00", current_quantity=2)
    _op(engine, "100.00", "operational")
    _op(engine, "33.33", "overhead")
    _op(engine, "7", "operational", product=a)

    breakdown = engine.costs.product_cost(a.id)

    with localcontext(MONEY_CONTEXT):
        assert breakdown.inventory_cost + breakdown.operational_cost + breakdown.overhead_cost == breakdown.total_cost
    assert isinstance(breakdown.total_cost, Decimal)


def test_recomputation_is_identical(engine, make_product):
    a = make_product(name="A", type="stock", cost_price="3.10", current_quantity=7)
    make_product(name="B", type="stock", cost_price="2.20", current_quantity=11)
    _op(engine, "123.45", "overhead")

    assert engine.costs.product_cost(a.id) == engine.costs.product_cost(a.id)
    assert engine.costs.profit_margins() == engine.costs.profit_margins()
    assert engine.costs.total_costs() == engine.costs.total_costs()


def test_zero_denominators_yield_zero(engine, make_product):
    # no inventory value anywhere, no quantity, no selling price
    product = make_product(name="Empty", type="stock", cost_price="5.00", current_quantity=0)
    _op(engine, "50", "operational")

    breakdown = engine.costs.product_cost(product.id)

    assert breakdown.allocation_share == Decimal("0")
    assert breakdown.operational_cost == Decimal("0")
    assert breakdown.cost_per_unit == Decimal("0")
    assert breakdown.profit_margin == Decimal("0")


def test_unknown_product_cost(engine):
    with pytest.raises(ProductNotFound):
        engine.costs.product_cost(42)


def test_profit_margins_only_priced_products(engine, make_product):
    make_product(name="Flour", type="stock", cost_price="2.00", current_quantity=10)
    kitfo = make_product(name="Kitfo", type="combination", cost_price="5.00",
                         selling_price="10.00", current_quantity=2)

    rows = engine.costs.profit_margins()

    assert [r["product_id"] for r in rows] == [kitfo.id]
    assert Decimal(rows[0]["cost_per_unit"]) == Decimal("5")
    assert Decimal(rows[0]["profit_amount"]) == Decimal("5")
    assert Decimal(rows[0]["profit_margin"]) == Decimal("50")


@pytest.mark.parametrize("shares", [
    (60, 30, 20),
    (50, 30, 19.98),
    (-10, 60, 50),
    (101, 0, -1),
])
def test_allocation_must_sum_to_hundred(engine, make_product, shares):
    product = make_product(type="stock", cost_price="1.00")

    with pytest.raises(InvalidAllocation):
        engine.products.update_cost_allocation(product.id, *shares)


def test_allocation_within_tolerance_accepted(engine, make_product):
    product = make_product(type="stock", cost_price="1.00")

    updated = engine.products.update_cost_allocation(product.id, "33.33", "33.33", "33.33")

    assert updated.allocation_inventory_pct == Decimal("33.33")
    assert updated.allocation_updated_at is not None


def test_cost_operation_validation(engine, make_product):
    with pytest.raises(ValidationError):
        engine.costs.record_cost_operation({"description": "Rent", "amount": "10", "category": "marketing"})
    with pytest.raises(ValidationError):
        engine.costs.record_cost_operation({"description": "", "amount": "10", "category": "overhead"})
    with pytest.raises(ValidationError):
        engine.costs.record_cost_operation({"description": "Rent", "amount": "-1", "category": "overhead"})
    with pytest.raises(ValidationError):
        engine.costs.record_cost_operation(
            {"description": "Rent", "amount": "10", "category": "overhead", "recurrence": "recurring"}
        )
    with pytest.raises(ProductNotFound):
        engine.costs.record_cost_operation(
            {"description": "Gas", "amount": "10", "category": "operational",
             "related_entity": {"type": "product", "id": 999}}
        )


def test_cost_operations_are_immutable(engine, db_session):
    op = _op(engine, "10", "overhead")
    op.amount = Decimal("1")
    with pytest.raises(InvariantViolation):
        db_session.flush()
    db_session.rollback()
    assert db_session.get(CostOperation, op.id).amount == Decimal("10")


def test_total_costs_breakdowns(engine, make_product):
    make_product(name="Rice", type="stock", cost_price="10.00", current_quantity=10)
    _op(engine, "300", "overhead", expense_type="rent", incurred_at="2026-01-15T09:00:00Z")
    _op(engine, "100", "operational", expense_type="salary", incurred_at="2026-02-01T00:00:00Z")
    _op(engine, "50", "inventory", incurred_at="2026-02-20")

    report = engine.costs.total_costs()

    assert report["total_inventory_costs"] == "150.00"
    assert report["total_operational_costs"] == "100"
    assert report["total_overhead_costs"] == "300"
    assert report["grand_total"] == "550.00"

    assert [m["month"] for m in report["monthly_breakdown"]] == ["2026-01", "2026-02"]
    assert report["monthly_breakdown"][0]["label"] == "January 2026"
    assert report["monthly_breakdown"][1]["total"] == "150"

    categories = [c["category"] for c in report["category_breakdown"]]
    assert categories == ["overhead", "inventory", "operational"]
    total_pct = sum(Decimal(c["percentage"]) for c in report["category_breakdown"])
    assert abs(total_pct - Decimal("100")) < Decimal("0.000001")

    types = {t["expense_type"]: t for t in report["expense_type_breakdown"]}
    assert types["rent"]["amount"] == "300"
    assert abs(Decimal(types["rent"]["percentage"]) - Decimal("66.6666666")) < Decimal("0.0000001")


def test_total_costs_date_range_is_inclusive(engine):
    _op(engine, "10", "overhead", incurred_at="2026-03-01T00:00:00Z")
    _op(engine, "20", "overhead", incurred_at="2026-03-31T23:59:59Z")
    _op(engine, "40", "overhead", incurred_at="2026-04-01T00:00:00Z")

    report = engine.costs.total_costs(
        start=datetime(2026, 3, 1), end=datetime(2026, 3, 31, 23, 59, 59)
    )

    assert report["total_overhead_costs"] == "30"
    assert report["start"] == "2026-03-01T00:00:00Z"


def test_aware_incurred_at_is_stored_as_utc(engine):
    minus_three = timezone(timedelta(hours=-3))
    as_datetime = _op(engine, "10", "overhead", incurred_at=datetime(2026, 3, 31, 23, 30, tzinfo=minus_three))
    as_string = _op(engine, "15", "overhead", incurred_at="2026-03-31T23:30:00-03:00")

    assert as_datetime.incurred_at == as_string.incurred_at == datetime(2026, 4, 1, 2, 30)

    report = engine.costs.total_costs()
    assert [m["month"] for m in report["monthly_breakdown"]] == ["2026-04"]

    march = engine.costs.total_costs(
        start=datetime(2026, 3, 1, tzinfo=timezone.utc), end=datetime(2026, 3, 31, 23, 59, 59)
    )
    assert march["total_overhead_costs"] == "0"


def test_total_costs_empty_store(engine):
    report = engine.costs.total_costs()

    assert report["grand_total"] == "0"
    assert report["monthly_breakdown"] == []
    assert all(c["percentage"] == "0" for c in report["category_breakdown"])
    assert report["expense_type_breakdown"] == []


def test_total_costs_rejects_inverted_range(engine):
    with pytest.raises(ValidationError):
        engine.costs.total_costs(start=datetime(2026, 5, 1), end=datetime(2026, 4, 1))
