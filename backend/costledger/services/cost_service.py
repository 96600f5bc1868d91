# Overview: Cost allocation engine; per-product cost, margins and period/category breakdowns.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, localcontext
from typing import Callable, Optional

from ..errors import ProductNotFound, ValidationError
from ..models import (
    COST_CATEGORIES,
    EXPENSE_TYPES,
    RECURRENCES,
    RECURRING_PERIODS,
    CostOperation,
    Product,
)
from ..money import MONEY_CONTEXT, ZERO, decimal_str, percentage, safe_divide, to_decimal
from costledger.time_utils import as_utc_naive, month_key, month_label, parse_iso_datetime, to_utc_z, utcnow
from .concurrency import UnitOfWork
"""
Cost Allocation Rules (authoritative)

- All arithmetic is Decimal under MONEY_CONTEXT (28 digits, half-up). No floats.
- inventory cost  = cost_price * current_quantity (0 without a cost price)
- allocation share = product inventory value / total inventory value (0 if total is 0)
- operational cost = direct operational + general operational * share; overhead alike
- direct = cost operations whose related entity is this product
- general = cost operations with no product relation
- total cost = inventory + operational + overhead, exactly
- cost per unit = total cost / quantity (0 if quantity is 0)
- profit margin = (selling price - cost per unit) / selling price * 100 when selling price > 0
- Reads are a best-effort snapshot: no locks, no writes, same inputs give same outputs.
"""


@dataclass(frozen=True)
class CostBreakdown:
    product_id: int
    inventory_cost: Decimal
    operational_cost: Decimal
    overhead_cost: Decimal
    total_cost: Decimal
    cost_per_unit: Decimal
    profit_margin: Decimal
    allocation_share: Decimal

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "inventory_cost": decimal_str(self.inventory_cost),
            "operational_cost": decimal_str(self.operational_cost),
            "overhead_cost": decimal_str(self.overhead_cost),
            "total_cost": decimal_str(self.total_cost),
            "cost_per_unit": decimal_str(self.cost_per_unit),
            "profit_margin": decimal_str(self.profit_margin),
            "allocation_share": decimal_str(self.allocation_share),
        }


def _inventory_value(product: Product) -> Decimal:
    if product.cost_price is None:
        return ZERO
    with localcontext(MONEY_CONTEXT):
        return product.cost_price * product.current_quantity


class _CostTotals:
    """Direct costs per product and general costs, per allocated category."""

    def __init__(self, operations):
        self.direct = {"operational": {}, "overhead": {}}
        self.general = {"operational": ZERO, "overhead": ZERO}
        with localcontext(MONEY_CONTEXT):
            for op in operations:
                if op.category not in self.general:
                    continue
                if op.product_id is not None:
                    bucket = self.direct[op.category]
                    bucket[op.product_id] = bucket.get(op.product_id, ZERO) + op.amount
                else:
                    self.general[op.category] += op.amount


class CostAllocationEngine:
    def __init__(self, session, unit_of_work: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.unit_of_work = unit_of_work
        self.clock = clock

    # ------------------------------------------------------------------
    # Cost records
    # ------------------------------------------------------------------

    def record_cost_operation(self, payload: dict, actor_id: Optional[str] = None) -> CostOperation:
        """Validate and append one cost record. Records are never edited."""
        description = (payload.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required", details={"field": "description"})

        amount = to_decimal(payload.get("amount"), "amount")
        if amount < 0:
            raise ValidationError("amount must be non-negative", details={"field": "amount"})

        category = payload.get("category")
        if category not in COST_CATEGORIES:
            raise ValidationError(
                f"category must be one of {', '.join(COST_CATEGORIES)}",
                details={"field": "category", "allowed": list(COST_CATEGORIES)},
            )

        expense_type = payload.get("expense_type") or "other"
        if expense_type not in EXPENSE_TYPES:
            raise ValidationError(
                f"expense_type must be one of {', '.join(EXPENSE_TYPES)}",
                details={"field": "expense_type", "allowed": list(EXPENSE_TYPES)},
            )

        recurrence = payload.get("recurrence") or "one-time"
        if recurrence not in RECURRENCES:
            raise ValidationError(
                f"recurrence must be one of {', '.join(RECURRENCES)}",
                details={"field": "recurrence", "allowed": list(RECURRENCES)},
            )
        recurring_period = payload.get("recurring_period")
        if recurrence == "recurring" and recurring_period not in RECURRING_PERIODS:
            raise ValidationError(
                "recurring costs need a recurring_period (weekly, monthly, yearly)",
                details={"field": "recurring_period", "allowed": list(RECURRING_PERIODS)},
            )
        if recurrence == "one-time" and recurring_period is not None:
            raise ValidationError(
                "recurring_period is only allowed for recurring costs",
                details={"field": "recurring_period"},
            )

        related_type = related_id = None
        related = payload.get("related_entity")
        if related is not None:
            if not isinstance(related, dict) or not related.get("type") or related.get("id") is None:
                raise ValidationError(
                    "related_entity must have a type and an id", details={"field": "related_entity"}
                )
            related_type = str(related["type"])
            related_id = related["id"]
            if isinstance(related_id, bool) or not isinstance(related_id, int):
                raise ValidationError("related_entity.id must be an integer", details={"field": "related_entity"})

        incurred_raw = payload.get("incurred_at")
        if isinstance(incurred_raw, datetime):
            incurred_at = as_utc_naive(incurred_raw)
        elif not incurred_raw:
            incurred_at = self.clock()
        else:
            try:
                incurred_at = parse_iso_datetime(str(incurred_raw))
            except ValueError:
                raise ValidationError("incurred_at must be an ISO-8601 datetime", details={"field": "incurred_at"})

        def _op():
            if related_type == "product" and self.session.get(Product, related_id) is None:
                raise ProductNotFound(related_id)
            op = CostOperation(
                description=description,
                amount=amount,
                category=category,
                expense_type=expense_type,
                recurrence=recurrence,
                recurring_period=recurring_period,
                related_entity_type=related_type,
                related_entity_id=related_id,
                incurred_at=incurred_at,
                actor_id=actor_id,
            )
            self.session.add(op)
            self.session.flush()
            return op.id

        op_id = self.unit_of_work.run(_op)
        return self.session.get(CostOperation, op_id)

    def list_cost_operations(
        self,
        *,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[CostOperation]:
        start, end = as_utc_naive(start), as_utc_naive(end)
        q = self.session.query(CostOperation)
        if category is not None:
            q = q.filter(CostOperation.category == category)
        if start is not None:
            q = q.filter(CostOperation.incurred_at >= start)
        if end is not None:
            q = q.filter(CostOperation.incurred_at <= end)
        return q.order_by(CostOperation.incurred_at.desc(), CostOperation.id.desc()).all()

    # ------------------------------------------------------------------
    # Per-product allocation
    # ------------------------------------------------------------------

    def _snapshot(self):
        products = self.session.query(Product).order_by(Product.id.asc()).all()
        operations = self.session.query(CostOperation).order_by(CostOperation.id.asc()).all()
        with localcontext(MONEY_CONTEXT):
            total_value = sum((_inventory_value(p) for p in products), ZERO)
        return products, _CostTotals(operations), total_value

    def _breakdown(self, product: Product, totals: _CostTotals, total_value: Decimal) -> CostBreakdown:
        inventory_cost = _inventory_value(product)
        share = safe_divide(inventory_cost, total_value)

        with localcontext(MONEY_CONTEXT):
            operational_cost = (
                totals.direct["operational"].get(product.id, ZERO)
                + totals.general["operational"] * share
            )
            overhead_cost = (
                totals.direct["overhead"].get(product.id, ZERO)
                + totals.general["overhead"] * share
            )
            total_cost = inventory_cost + operational_cost + overhead_cost

        cost_per_unit = safe_divide(total_cost, product.current_quantity)

        profit_margin = ZERO
        if product.selling_price is not None and product.selling_price > 0:
            with localcontext(MONEY_CONTEXT):
                profit_margin = (product.selling_price - cost_per_unit) / product.selling_price * 100

        return CostBreakdown(
            product_id=product.id,
            inventory_cost=inventory_cost,
            operational_cost=operational_cost,
            overhead_cost=overhead_cost,
            total_cost=total_cost,
            cost_per_unit=cost_per_unit,
            profit_margin=profit_margin,
            allocation_share=share,
        )

    def product_cost(self, product_id: int) -> CostBreakdown:
        """Direct plus allocated indirect cost of one product."""
        products, totals, total_value = self._snapshot()
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            raise ProductNotFound(product_id)
        return self._breakdown(product, totals, total_value)

    def profit_margins(self) -> list[dict]:
        """product_cost for every product with a selling price above zero."""
        products, totals, total_value = self._snapshot()
        rows = []
        for product in sorted(products, key=lambda p: (p.name, p.id)):
            if product.selling_price is None or product.selling_price <= 0:
                continue
            breakdown = self._breakdown(product, totals, total_value)
            with localcontext(MONEY_CONTEXT):
                profit_amount = product.selling_price - breakdown.cost_per_unit
            rows.append({
                "product_id": product.id,
                "product_name": product.name,
                "cost_per_unit": decimal_str(breakdown.cost_per_unit),
                "selling_price": decimal_str(product.selling_price),
                "profit_amount": decimal_str(profit_amount),
                "profit_margin": decimal_str(breakdown.profit_margin),
            })
        return rows

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def total_costs(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        """
        Grand totals by category, a monthly series and two breakdowns.

        The inventory total is the current inventory value plus inventory
        cost records in range. Date bounds filter cost records by
        incurred_at, inclusive.
        """
        start, end = as_utc_naive(start), as_utc_naive(end)
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end", details={"field": "start"})

        products = self.session.query(Product).all()
        operations = self.list_cost_operations(start=start, end=end)

        with localcontext(MONEY_CONTEXT):
            inventory_value = sum((_inventory_value(p) for p in products), ZERO)

            by_category = {c: ZERO for c in COST_CATEGORIES}
            by_type: dict[str, Decimal] = {}
            monthly: dict[str, dict[str, Decimal]] = {}
            for op in operations:
                by_category[op.category] += op.amount
                by_type[op.expense_type] = by_type.get(op.expense_type, ZERO) + op.amount
                bucket = monthly.setdefault(month_key(op.incurred_at), {c: ZERO for c in COST_CATEGORIES})
                bucket[op.category] += op.amount

            totals = {
                "inventory": inventory_value + by_category["inventory"],
                "operational": by_category["operational"],
                "overhead": by_category["overhead"],
            }
            grand_total = totals["inventory"] + totals["operational"] + totals["overhead"]
            operations_total = sum(by_type.values(), ZERO)

        monthly_breakdown = []
        for key in sorted(monthly):
            bucket = monthly[key]
            with localcontext(MONEY_CONTEXT):
                month_total = bucket["inventory"] + bucket["operational"] + bucket["overhead"]
            monthly_breakdown.append({
                "month": key,
                "label": month_label(key),
                "inventory_costs": decimal_str(bucket["inventory"]),
                "operational_costs": decimal_str(bucket["operational"]),
                "overhead_costs": decimal_str(bucket["overhead"]),
                "total": decimal_str(month_total),
            })

        category_breakdown = [
            {
                "category": category,
                "amount": decimal_str(totals[category]),
                "percentage": decimal_str(percentage(totals[category], grand_total)),
            }
            for category in sorted(COST_CATEGORIES, key=lambda c: (-totals[c], c))
        ]

        expense_type_breakdown = [
            {
                "expense_type": expense_type,
                "amount": decimal_str(amount),
                "percentage": decimal_str(percentage(amount, operations_total)),
            }
            for expense_type, amount in sorted(by_type.items(), key=lambda kv: (-kv[1], kv[0]))
        ]

        return {
            "start": to_utc_z(start),
            "end": to_utc_z(end),
            "total_inventory_costs": decimal_str(totals["inventory"]),
            "total_operational_costs": decimal_str(totals["operational"]),
            "total_overhead_costs": decimal_str(totals["overhead"]),
            "grand_total": decimal_str(grand_total),
            "monthly_breakdown": monthly_breakdown,
            "category_breakdown": category_breakdown,
            "expense_type_breakdown": expense_type_breakdown,
        }
