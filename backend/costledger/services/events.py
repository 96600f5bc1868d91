# Overview: Post-commit notifications (sale created, quantity changed) and their delivery.

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleCreated:
    sale: dict
    actor_id: str | None = None


@dataclass(frozen=True)
class QuantityChanged:
    product_id: int
    new_quantity: Decimal
    delta: Decimal
    kind: str
    actor_id: str | None = None


@dataclass
class DeliveryReport:
    delivered: int = 0
    failures: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: "DeliveryReport") -> "DeliveryReport":
        self.delivered += other.delivered
        self.failures.extend(other.failures)
        return self


class EventBus:
    """
    In-process fan-out of committed facts to subscribers (audit log, cache
    invalidation, ...).

    Publishing happens only after the unit of work commits. A failing
    handler is logged and reported in the DeliveryReport; it never undoes
    the committed change and never stops delivery to other handlers.
    """

    def __init__(self):
        self._handlers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event) -> DeliveryReport:
        report = DeliveryReport()
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
                report.delivered += 1
            except Exception as exc:
                logger.exception(
                    "Event handler %s failed for %s", getattr(handler, "__name__", handler), type(event).__name__
                )
                report.failures.append({
                    "event": type(event).__name__,
                    "handler": getattr(handler, "__name__", repr(handler)),
                    "error": str(exc),
                })
        return report

    def publish_all(self, events) -> DeliveryReport:
        report = DeliveryReport()
        for event in events:
            report.merge(self.publish(event))
        return report


def log_event(event) -> None:
    """Default subscriber: one INFO line per committed fact."""
    if isinstance(event, SaleCreated):
        logger.info(
            "sale.created id=%s total=%s payment=%s actor=%s",
            event.sale.get("id"), event.sale.get("total_amount"), event.sale.get("payment_method"), event.actor_id,
        )
    elif isinstance(event, QuantityChanged):
        logger.info(
            "inventory.%s product_id=%s delta=%s new_quantity=%s actor=%s",
            event.kind, event.product_id, event.delta, event.new_quantity, event.actor_id,
        )
