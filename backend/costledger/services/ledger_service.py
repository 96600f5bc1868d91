# Overview: Append-only quantity ledger; every stock change with its before/after values.

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from ..errors import InvariantViolation, ValidationError
from ..models import LedgerEntry, LEDGER_KINDS
from costledger.time_utils import utcnow

logger = logging.getLogger(__name__)
"""
Quantity Ledger Invariants (authoritative)

- Append-only: entries are never updated or deleted (enforced on the model).
- new_quantity == previous_quantity + quantity_delta, both >= 0.
- Entries are written inside the same unit of work as the quantity change
  they record.
- For a single product, id order is commit order and replaying the
  entries in that order yields a continuous previous/new chain.
"""


class QuantityLedger:
    def __init__(self, session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def append(
        self,
        *,
        product_id: int,
        kind: str,
        delta: Decimal,
        previous_quantity: Decimal,
        new_quantity: Decimal,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        sale_id: Optional[int] = None,
    ) -> LedgerEntry:
        """
        Append one entry. Does not commit.

        Raises InvariantViolation when the arithmetic does not hold; that
        means the caller's write path is broken and must not proceed.
        """
        if kind not in LEDGER_KINDS:
            raise ValidationError(f"Unknown ledger kind {kind!r}", details={"kind": kind})

        if new_quantity < 0 or previous_quantity < 0:
            self._violation(
                "Ledger quantities must be non-negative",
                product_id, kind, delta, previous_quantity, new_quantity,
            )
        if new_quantity != previous_quantity + delta:
            self._violation(
                "Ledger arithmetic mismatch: new_quantity != previous_quantity + delta",
                product_id, kind, delta, previous_quantity, new_quantity,
            )

        entry = LedgerEntry(
            product_id=product_id,
            kind=kind,
            quantity_delta=delta,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            reason=reason,
            actor_id=actor_id,
            sale_id=sale_id,
            occurred_at=self.clock(),
        )
        self.session.add(entry)
        self.session.flush()  # ensures entry.id is assigned without committing
        return entry

    def _violation(self, message, product_id, kind, delta, previous_quantity, new_quantity):
        details = {
            "product_id": product_id,
            "kind": kind,
            "delta": delta,
            "previous_quantity": previous_quantity,
            "new_quantity": new_quantity,
        }
        logger.critical("%s %s", message, details)
        raise InvariantViolation(message, details=details)

    def entries(
        self,
        *,
        product_id: Optional[int] = None,
        kind: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[LedgerEntry]:
        """Query entries by product, by kind and by time (inclusive bounds)."""
        q = self.session.query(LedgerEntry)
        if product_id is not None:
            q = q.filter(LedgerEntry.product_id == product_id)
        if kind is not None:
            if kind not in LEDGER_KINDS:
                raise ValidationError(f"Unknown ledger kind {kind!r}", details={"kind": kind})
            q = q.filter(LedgerEntry.kind == kind)
        if start is not None:
            q = q.filter(LedgerEntry.occurred_at >= start)
        if end is not None:
            q = q.filter(LedgerEntry.occurred_at <= end)

        q = q.order_by(LedgerEntry.id.desc() if newest_first else LedgerEntry.id.asc())
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def history(self, product_id: int) -> list[dict]:
        """Quantity history of one product, oldest first."""
        return [
            {
                "entry_id": e.id,
                "kind": e.kind,
                "delta": e.quantity_delta,
                "quantity": e.new_quantity,
                "occurred_at": e.occurred_at,
            }
            for e in self.entries(product_id=product_id)
        ]

    def verify_chain(self, product_id: int, current_quantity: Optional[Decimal] = None) -> int:
        """
        Replay a product's entries in commit order and check continuity.

        Returns the number of entries checked. When current_quantity is
        given, the last entry must end on it.
        """
        previous_new = None
        count = 0
        for entry in self.entries(product_id=product_id):
            count += 1
            if entry.new_quantity != entry.previous_quantity + entry.quantity_delta:
                self._violation(
                    f"Ledger entry {entry.id} arithmetic mismatch",
                    product_id, entry.kind, entry.quantity_delta, entry.previous_quantity, entry.new_quantity,
                )
            if entry.new_quantity < 0 or entry.previous_quantity < 0:
                self._violation(
                    f"Ledger entry {entry.id} has a negative quantity",
                    product_id, entry.kind, entry.quantity_delta, entry.previous_quantity, entry.new_quantity,
                )
            if previous_new is not None and entry.previous_quantity != previous_new:
                self._violation(
                    f"Ledger chain broken at entry {entry.id}: expected previous_quantity {previous_new}",
                    product_id, entry.kind, entry.quantity_delta, entry.previous_quantity, entry.new_quantity,
                )
            previous_new = entry.new_quantity

        if current_quantity is not None and previous_new is not None and previous_new != current_quantity:
            logger.critical(
                "Product %s quantity %s does not match last ledger entry %s",
                product_id, current_quantity, previous_new,
            )
            raise InvariantViolation(
                "Product quantity does not match the ledger",
                details={"product_id": product_id, "current_quantity": current_quantity, "ledger_quantity": previous_new},
            )
        return count
