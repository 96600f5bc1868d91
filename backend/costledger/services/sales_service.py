"""
Sales Service - atomic multi-item sale processing

A sale is one unit of work: the receipt, its lines, the quantity decrements
and one ledger entry per line commit together or not at all. Notifications
go out only after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from ..errors import (
    InsufficientStock,
    InvalidPrice,
    NotSellable,
    ProductNotFound,
    ValidationError,
)
from ..models import PAYMENT_METHODS, Product, SaleLine, SaleTransaction
from ..money import MONEY_CONTEXT, ZERO, to_decimal
from costledger.time_utils import utcnow
from .concurrency import UnitOfWork, lock_for_update
from .events import DeliveryReport, EventBus, QuantityChanged, SaleCreated
from .stock_service import StockGuard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: Decimal
    # Informational only: the product's current selling price always wins
    unit_price: Decimal | None = None


@dataclass
class SaleResult:
    sale: SaleTransaction
    delivery: DeliveryReport


def parse_sale_items(items) -> list[SaleItemRequest]:
    """Validate `items` (dicts or SaleItemRequests) into SaleItemRequests."""
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", details={"field": "items"})

    parsed = []
    for index, raw in enumerate(items):
        if isinstance(raw, SaleItemRequest):
            raw = {"product_id": raw.product_id, "quantity": raw.quantity, "unit_price": raw.unit_price}
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})

        product_id = raw.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(
                f"items[{index}].product_id must be an integer", details={"index": index, "field": "product_id"}
            )

        quantity = to_decimal(raw.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(
                f"items[{index}].quantity must be greater than 0", details={"index": index, "field": "quantity"}
            )

        unit_price = None
        if raw.get("unit_price") is not None:
            unit_price = to_decimal(raw["unit_price"], f"items[{index}].unit_price")

        parsed.append(SaleItemRequest(product_id=product_id, quantity=quantity, unit_price=unit_price))
    return parsed


class SaleProcessor:
    def __init__(
        self,
        session,
        stock: StockGuard,
        unit_of_work: UnitOfWork,
        events: EventBus,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.stock = stock
        self.unit_of_work = unit_of_work
        self.events = events
        self.clock = clock

    def _load_sellable(self, item: SaleItemRequest) -> Product:
        product = lock_for_update(self.session.query(Product).filter_by(id=item.product_id)).first()
        if product is None:
            raise ProductNotFound(item.product_id)

        if not product.is_sellable:
            raise NotSellable(product.id, product.name, product.type)

        if product.selling_price is None or product.selling_price <= 0:
            raise InvalidPrice(product.id, product.name)

        return product

    def _create_sale_locked(self, items: list[SaleItemRequest], payment_method: str, actor_id: str | None):
        # Validate and price every line before any write
        priced = []
        requested: dict[int, Decimal] = {}
        total_amount = ZERO
        for item in items:
            product = self._load_sellable(item)

            requested[product.id] = requested.get(product.id, ZERO) + item.quantity
            if product.current_quantity < requested[product.id]:
                raise InsufficientStock(
                    product.id,
                    available=product.current_quantity,
                    requested=requested[product.id],
                    name=product.name,
                )

            unit_price = product.selling_price
            total_price = MONEY_CONTEXT.multiply(unit_price, item.quantity)
            total_amount = MONEY_CONTEXT.add(total_amount, total_price)
            priced.append((item, unit_price, total_price))

        # Receipt and lines
        sale = SaleTransaction(
            total_amount=total_amount,
            payment_method=payment_method,
            actor_id=actor_id,
            created_at=self.clock(),
        )
        self.session.add(sale)
        self.session.flush()

        for position, (item, unit_price, total_price) in enumerate(priced, start=1):
            self.session.add(SaleLine(
                sale_id=sale.id,
                position=position,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=unit_price,
                total_price=total_price,
            ))

        # The guard re-checks on the locked row; the pre-check above only fails fast
        entries = []
        for item, _, _ in priced:
            entries.append(self.stock.apply_delta(
                item.product_id,
                -item.quantity,
                "sale",
                f"Sale transaction {sale.id}",
                actor_id=actor_id,
                sale_id=sale.id,
            ))

        self.session.flush()
        return sale.id, entries

    def create_sale(self, items, payment_method: str, actor_id: str | None = None) -> SaleResult:
        """
        Create a sale atomically.

        Raises ValidationError, ProductNotFound, NotSellable, InvalidPrice or
        InsufficientStock with nothing written. Store-level conflicts are
        retried by re-running the whole unit.
        """
        requests = parse_sale_items(items)

        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                "Payment method is required" if not payment_method else f"Unknown payment method {payment_method!r}",
                details={"field": "payment_method", "allowed": list(PAYMENT_METHODS)},
            )

        sale_id, entries = self.unit_of_work.run(
            lambda: self._create_sale_locked(requests, payment_method, actor_id)
        )

        sale = self.session.get(SaleTransaction, sale_id)
        logger.info("Sale %s committed: %d line(s), total %s", sale.id, len(sale.lines), sale.total_amount)

        # Post-commit notifications; failures are reported, never rolled back
        events = [SaleCreated(sale=sale.to_dict(), actor_id=actor_id)]
        for entry in entries:
            events.append(QuantityChanged(
                product_id=entry.product_id,
                new_quantity=entry.new_quantity,
                delta=entry.quantity_delta,
                kind=entry.kind,
                actor_id=actor_id,
            ))
        delivery = self.events.publish_all(events)
        if not delivery.ok:
            logger.error("Sale %s committed but %d notification(s) failed", sale.id, len(delivery.failures))

        return SaleResult(sale=sale, delivery=delivery)

    def get_sale(self, sale_id: int) -> SaleTransaction | None:
        return self.session.get(SaleTransaction, sale_id)

    def list_sales(self, page: int = 1, per_page: int = 10) -> dict:
        per_page = min(max(per_page, 1), 100)
        page = max(page, 1)

        base_query = self.session.query(SaleTransaction).order_by(
            SaleTransaction.created_at.desc(), SaleTransaction.id.desc()
        )
        total = base_query.count()
        total_pages = (total + per_page - 1) // per_page if total > 0 else 1
        sales = base_query.offset((page - 1) * per_page).limit(per_page).all()

        return {
            "items": [s.to_dict() for s in sales],
            "count": len(sales),
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "total_pages": total_pages,
            },
        }
