# Overview: Stock guard; the only writer of Product.current_quantity.

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..errors import (
    InsufficientStock,
    ProductNotFound,
    StockTrackingDisabled,
    ValidationError,
)
from ..models import LedgerEntry, Product
from ..money import to_decimal
from .concurrency import UnitOfWork, lock_for_update
from .events import EventBus, QuantityChanged
from .ledger_service import QuantityLedger
"""
Stock Invariants (authoritative)

- current_quantity never goes negative.
- The sufficiency check and the write happen in the same unit of work, on
  the row read under lock; the product's version_id makes the UPDATE
  conditional on the version that was checked.
- Every quantity write appends exactly one LedgerEntry in the same unit.
- Sales only reach this guard for sellable/combination products; the sale
  processor filters by type. Stock items move through usage/adjustment.
"""


class StockGuard:
    def __init__(self, session, ledger: QuantityLedger, unit_of_work: UnitOfWork, events: EventBus):
        self.session = session
        self.ledger = ledger
        self.unit_of_work = unit_of_work
        self.events = events

    def _load_locked(self, product_id: int) -> Product:
        product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def apply_delta(
        self,
        product_id: int,
        delta: Decimal,
        kind: str,
        reason: Optional[str] = None,
        *,
        actor_id: Optional[str] = None,
        sale_id: Optional[int] = None,
    ) -> LedgerEntry:
        """
        Apply `delta` to the product's quantity inside the caller's unit of work.

        Raises InsufficientStock (and writes nothing) if the result would be
        negative. Does not commit.
        """
        product = self._load_locked(product_id)
        if not product.stock_tracking_enabled:
            raise StockTrackingDisabled(product_id)

        previous = product.current_quantity
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InsufficientStock(product_id, available=previous, requested=-delta, name=product.name)

        product.current_quantity = new_quantity
        # Flushing the product first issues UPDATE ... WHERE version_id = <read version>
        self.session.flush()

        return self.ledger.append(
            product_id=product_id,
            kind=kind,
            delta=delta,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason,
            actor_id=actor_id,
            sale_id=sale_id,
        )

    def _run(self, func, actor_id: Optional[str]) -> LedgerEntry:
        entry = self.unit_of_work.run(func)
        self.events.publish(
            QuantityChanged(
                product_id=entry.product_id,
                new_quantity=entry.new_quantity,
                delta=entry.quantity_delta,
                kind=entry.kind,
                actor_id=actor_id,
            )
        )
        return entry

    def add_stock(self, product_id: int, quantity, reason: Optional[str] = None, actor_id: Optional[str] = None) -> LedgerEntry:
        """Goods received: kind=addition, quantity > 0."""
        qty = to_decimal(quantity, "quantity")
        if qty <= 0:
            raise ValidationError("quantity must be greater than 0", details={"field": "quantity"})
        return self._run(
            lambda: self.apply_delta(product_id, qty, "addition", reason or "Stock added", actor_id=actor_id),
            actor_id,
        )

    def record_usage(self, product_id: int, quantity, reason: Optional[str] = None, actor_id: Optional[str] = None) -> LedgerEntry:
        """Consumption in the kitchen: kind=usage, removes quantity > 0."""
        qty = to_decimal(quantity, "quantity")
        if qty <= 0:
            raise ValidationError("quantity must be greater than 0", details={"field": "quantity"})
        return self._run(
            lambda: self.apply_delta(product_id, -qty, "usage", reason or "Stock used", actor_id=actor_id),
            actor_id,
        )

    def adjust_to(self, product_id: int, new_quantity, reason: str, actor_id: Optional[str] = None) -> LedgerEntry:
        """Physical count correction: sets the quantity, records the difference."""
        target = to_decimal(new_quantity, "new_quantity")
        if target < 0:
            raise ValidationError("new_quantity must be non-negative", details={"field": "new_quantity"})
        if not reason or not reason.strip():
            raise ValidationError("reason is required for adjustments", details={"field": "reason"})

        def _op():
            product = self._load_locked(product_id)
            return self.apply_delta(
                product_id, target - product.current_quantity, "adjustment", reason.strip(), actor_id=actor_id
            )

        return self._run(_op, actor_id)

    def low_stock(self) -> list[Product]:
        """Tracked products at or below their minimum stock level."""
        products = (
            self.session.query(Product)
            .filter(Product.stock_tracking_enabled.is_(True))
            .order_by(Product.name.asc(), Product.id.asc())
            .all()
        )
        return [p for p in products if p.is_low_stock]
