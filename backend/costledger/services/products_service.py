"""
Products Service

Product master data plus the cost-related writes that hang off it:
- cost price changes append to the cost history and enqueue a cost expense
  in the same unit of work; the expense itself is written after commit
- allocation percentages are validated to sum to 100 (+/- 0.01)
- opening stock is booked as an addition entry; after that quantities
  are only written by the stock guard
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func

from ..errors import (
    InvalidAllocation,
    ProductInUse,
    ProductNotFound,
    ValidationError,
)
from ..models import (
    PRODUCT_TYPES,
    CostExpense,
    CostHistoryEntry,
    LedgerEntry,
    Product,
    SaleLine,
)
from ..money import HUNDRED, ZERO, decimal_str, to_decimal
from costledger.time_utils import to_utc_z, utcnow
from .concurrency import UnitOfWork, lock_for_update
from .expense_service import COST_EXPENSE_TOPIC
from .ledger_service import QuantityLedger
from .outbox_service import OutboxDispatcher, enqueue

logger = logging.getLogger(__name__)

ALLOCATION_TOLERANCE = Decimal("0.01")

PRODUCT_CREATE_FIELDS = {
    "name", "type", "metric", "current_quantity", "min_stock_level",
    "cost_price", "selling_price", "stock_tracking_enabled",
}


def _optional_decimal(payload: dict, field: str) -> Decimal | None:
    value = payload.get(field)
    if value is None:
        return None
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationError(f"{field} must be non-negative", details={"field": field})
    return result


def _check_type_prices(product_type: str, cost_price, selling_price) -> None:
    if product_type in ("stock", "combination") and cost_price is None:
        raise ValidationError(
            f"cost_price is required for {product_type} products", details={"field": "cost_price"}
        )
    if product_type in ("sellable", "combination") and selling_price is None:
        raise ValidationError(
            f"selling_price is required for {product_type} products", details={"field": "selling_price"}
        )


def validate_allocation(inventory, operational, overhead) -> tuple[Decimal, Decimal, Decimal]:
    """Each share within 0..100 and the three summing to 100 +/- 0.01."""
    values = []
    for field, raw in (
        ("inventory_percentage", inventory),
        ("operational_percentage", operational),
        ("overhead_percentage", overhead),
    ):
        value = to_decimal(raw, field)
        if value < 0 or value > HUNDRED:
            raise InvalidAllocation(
                f"{field} must be between 0 and 100", details={"field": field, "value": value}
            )
        values.append(value)

    total = values[0] + values[1] + values[2]
    if abs(total - HUNDRED) > ALLOCATION_TOLERANCE:
        raise InvalidAllocation(
            f"Allocation percentages must sum to 100 (got {total})",
            details={
                "inventory_percentage": values[0],
                "operational_percentage": values[1],
                "overhead_percentage": values[2],
                "sum": total,
            },
        )
    return values[0], values[1], values[2]


class ProductCatalog:
    def __init__(
        self,
        session,
        unit_of_work: UnitOfWork,
        ledger: QuantityLedger,
        outbox: OutboxDispatcher,
        clock: Callable[[], datetime] = utcnow,
        history_limit: int = 50,
    ):
        self.session = session
        self.unit_of_work = unit_of_work
        self.ledger = ledger
        self.outbox = outbox
        self.clock = clock
        self.history_limit = history_limit

    def get_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def list_products(self, product_type: Optional[str] = None) -> list[Product]:
        q = self.session.query(Product)
        if product_type is not None:
            if product_type not in PRODUCT_TYPES:
                raise ValidationError(f"Unknown product type {product_type!r}", details={"field": "type"})
            q = q.filter(Product.type == product_type)
        return q.order_by(Product.name.asc(), Product.id.asc()).all()

    def create_product(self, payload: dict, actor_id: Optional[str] = None) -> Product:
        unknown = set(payload) - PRODUCT_CREATE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown field(s): {', '.join(sorted(unknown))}", details={"fields": sorted(unknown)}
            )

        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"field": "name"})

        product_type = payload.get("type")
        if product_type not in PRODUCT_TYPES:
            raise ValidationError(
                f"type must be one of {', '.join(PRODUCT_TYPES)}",
                details={"field": "type", "allowed": list(PRODUCT_TYPES)},
            )

        cost_price = _optional_decimal(payload, "cost_price")
        selling_price = _optional_decimal(payload, "selling_price")
        _check_type_prices(product_type, cost_price, selling_price)

        quantity = _optional_decimal(payload, "current_quantity") or ZERO
        min_stock = _optional_decimal(payload, "min_stock_level") or ZERO
        tracking = payload.get("stock_tracking_enabled", True)
        if not isinstance(tracking, bool):
            raise ValidationError("stock_tracking_enabled must be a boolean", details={"field": "stock_tracking_enabled"})

        def _op():
            now = self.clock()
            product = Product(
                name=name,
                type=product_type,
                metric=(payload.get("metric") or "pcs").strip(),
                current_quantity=ZERO,
                min_stock_level=min_stock,
                cost_price=cost_price,
                selling_price=selling_price,
                stock_tracking_enabled=tracking,
                allocation_updated_at=now,
            )
            self.session.add(product)
            self.session.flush()

            if quantity > 0:
                # Opening stock goes through the ledger so the chain starts at zero
                product.current_quantity = quantity
                self.session.flush()
                self.ledger.append(
                    product_id=product.id,
                    kind="addition",
                    delta=quantity,
                    previous_quantity=ZERO,
                    new_quantity=quantity,
                    reason="Opening stock",
                    actor_id=actor_id,
                )

            if cost_price is not None:
                self._record_cost_change(product, None, cost_price, "Initial cost price set", actor_id, now)
            return product.id

        product_id = self.unit_of_work.run(_op)
        self.outbox.dispatch()
        return self.get_product(product_id)

    def update_prices(
        self,
        product_id: int,
        *,
        cost_price=None,
        selling_price=None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Product:
        """
        Change the cost and/or selling price.

        A cost price change appends a history row and enqueues a cost
        expense; the expense is written after the commit.
        """
        new_cost = to_decimal(cost_price, "cost_price") if cost_price is not None else None
        new_selling = to_decimal(selling_price, "selling_price") if selling_price is not None else None
        if new_cost is None and new_selling is None:
            raise ValidationError("cost_price or selling_price is required", details={"field": "cost_price"})
        for field, value in (("cost_price", new_cost), ("selling_price", new_selling)):
            if value is not None and value < 0:
                raise ValidationError(f"{field} must be non-negative", details={"field": field})

        def _op():
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise ProductNotFound(product_id)

            previous_cost = product.cost_price
            if new_selling is not None:
                product.selling_price = new_selling
            if new_cost is not None and new_cost != previous_cost:
                product.cost_price = new_cost
                self._record_cost_change(
                    product, previous_cost, new_cost, reason or "Cost price updated", actor_id, self.clock()
                )
            self.session.flush()
            return product.id

        self.unit_of_work.run(_op)
        self.outbox.dispatch()
        return self.get_product(product_id)

    def _record_cost_change(self, product, previous_cost, new_cost, reason, actor_id, now) -> None:
        last_sequence = (
            self.session.query(func.max(CostHistoryEntry.sequence))
            .filter(CostHistoryEntry.product_id == product.id)
            .scalar()
        )
        self.session.add(CostHistoryEntry(
            product_id=product.id,
            sequence=(last_sequence or 0) + 1,
            cost_price=new_cost,
            previous_cost_price=previous_cost,
            reason=reason,
            actor_id=actor_id,
            recorded_at=now,
        ))
        enqueue(self.session, COST_EXPENSE_TOPIC, {
            "product_id": product.id,
            "cost_price": str(new_cost),
            "previous_cost_price": decimal_str(previous_cost),
            "quantity": str(product.current_quantity),
            "category": "inventory",
            "reason": reason,
            "actor_id": actor_id,
            "recorded_at": to_utc_z(now),
        }, clock=self.clock)

    def update_cost_allocation(self, product_id: int, inventory, operational, overhead) -> Product:
        shares = validate_allocation(inventory, operational, overhead)

        def _op():
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise ProductNotFound(product_id)
            (
                product.allocation_inventory_pct,
                product.allocation_operational_pct,
                product.allocation_overhead_pct,
            ) = shares
            product.allocation_updated_at = self.clock()
            self.session.flush()
            return product.id

        self.unit_of_work.run(_op)
        return self.get_product(product_id)

    def cost_history(self, product_id: int) -> list[CostHistoryEntry]:
        """Most recent history rows, newest first, capped at history_limit."""
        self.get_product(product_id)
        return (
            self.session.query(CostHistoryEntry)
            .filter(CostHistoryEntry.product_id == product_id)
            .order_by(CostHistoryEntry.sequence.desc())
            .limit(self.history_limit)
            .all()
        )

    def prune_cost_history(self, keep: Optional[int] = None) -> int:
        """Retention pass: drop history rows beyond the newest `keep` per product."""
        keep = self.history_limit if keep is None else keep
        if keep < 0:
            raise ValidationError("keep must be non-negative", details={"field": "keep"})

        def _op():
            removed = 0
            product_ids = [row[0] for row in self.session.query(CostHistoryEntry.product_id).distinct().all()]
            for pid in product_ids:
                cutoff = (
                    self.session.query(CostHistoryEntry.sequence)
                    .filter(CostHistoryEntry.product_id == pid)
                    .order_by(CostHistoryEntry.sequence.desc())
                    .offset(keep)
                    .limit(1)
                    .scalar()
                )
                if cutoff is None:
                    continue
                removed += (
                    self.session.query(CostHistoryEntry)
                    .filter(CostHistoryEntry.product_id == pid, CostHistoryEntry.sequence <= cutoff)
                    .delete(synchronize_session=False)
                )
            return removed

        removed = self.unit_of_work.run(_op)
        logger.info("Pruned %d cost history row(s), keeping %d per product", removed, keep)
        return removed

    def delete_product(self, product_id: int) -> None:
        """Refused while any ledger entry or sale line references the product."""
        def _op():
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise ProductNotFound(product_id)

            ledger_refs = self.session.query(LedgerEntry.id).filter_by(product_id=product_id).count()
            sale_refs = self.session.query(SaleLine.id).filter_by(product_id=product_id).count()
            expense_refs = self.session.query(CostExpense.id).filter_by(product_id=product_id).count()
            if ledger_refs or sale_refs or expense_refs:
                raise ProductInUse(
                    f"Product {product.name} is referenced by {ledger_refs} ledger entr(ies), "
                    f"{sale_refs} sale line(s) and {expense_refs} cost expense(s)",
                    details={
                        "product_id": product_id,
                        "ledger_entries": ledger_refs,
                        "sale_lines": sale_refs,
                        "cost_expenses": expense_refs,
                    },
                )

            self.session.query(CostHistoryEntry).filter_by(product_id=product_id).delete(synchronize_session=False)
            self.session.delete(product)

        self.unit_of_work.run(_op)
