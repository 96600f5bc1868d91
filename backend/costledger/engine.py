# Overview: Builds the engine's services once and wires them together explicitly.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from flask import current_app

from .services.concurrency import UnitOfWork
from .services.cost_service import CostAllocationEngine
from .services.events import EventBus, QuantityChanged, SaleCreated, log_event
from .services.expense_service import COST_EXPENSE_TOPIC, CostExpenseRecorder
from .services.ledger_service import QuantityLedger
from .services.outbox_service import OutboxDispatcher
from .services.products_service import ProductCatalog
from .services.sales_service import SaleProcessor
from .services.stock_service import StockGuard
from .time_utils import utcnow


@dataclass
class Engine:
    events: EventBus
    unit_of_work: UnitOfWork
    ledger: QuantityLedger
    stock: StockGuard
    sales: SaleProcessor
    costs: CostAllocationEngine
    products: ProductCatalog
    outbox: OutboxDispatcher
    expenses: CostExpenseRecorder


def build_engine(
    session,
    *,
    clock: Callable[[], datetime] = utcnow,
    events: Optional[EventBus] = None,
    attempts: int = 5,
    backoff_base: float = 0.05,
    sqlite_immediate: bool = True,
    history_limit: int = 50,
) -> Engine:
    """
    Construct every service against one session.

    `session` may be a scoped session (Flask-SQLAlchemy's db.session); each
    request/thread then works on its own underlying Session.
    """
    if events is None:
        events = EventBus()
        events.subscribe(SaleCreated, log_event)
        events.subscribe(QuantityChanged, log_event)

    unit_of_work = UnitOfWork(
        session, attempts=attempts, backoff_base=backoff_base, sqlite_immediate=sqlite_immediate
    )
    ledger = QuantityLedger(session, clock=clock)
    stock = StockGuard(session, ledger, unit_of_work, events)
    expenses = CostExpenseRecorder(session)
    outbox = OutboxDispatcher(session, unit_of_work, clock=clock)
    outbox.register(COST_EXPENSE_TOPIC, expenses.handle_message)

    return Engine(
        events=events,
        unit_of_work=unit_of_work,
        ledger=ledger,
        stock=stock,
        sales=SaleProcessor(session, stock, unit_of_work, events, clock=clock),
        costs=CostAllocationEngine(session, unit_of_work, clock=clock),
        products=ProductCatalog(
            session, unit_of_work, ledger, outbox, clock=clock, history_limit=history_limit
        ),
        outbox=outbox,
        expenses=expenses,
    )


def get_engine() -> Engine:
    """The Engine built by create_app for the current application."""
    return current_app.extensions["costledger"]
