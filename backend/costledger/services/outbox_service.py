# Overview: Durable post-commit side effects; messages are written in the unit of work and handled after it.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..models import OutboxMessage
from costledger.time_utils import utcnow
from .concurrency import UnitOfWork

logger = logging.getLogger(__name__)


def enqueue(session, topic: str, payload: dict, clock: Callable[[], datetime] = utcnow) -> OutboxMessage:
    """Add a message to the caller's unit of work. Does not commit."""
    message = OutboxMessage(topic=topic, payload=payload, status="PENDING", attempts=0, created_at=clock())
    session.add(message)
    session.flush()
    return message


class OutboxDispatcher:
    """
    Hands PENDING messages to the handler registered for their topic.

    Each message is handled in its own unit of work together with the
    DONE mark. A failure rolls that unit back, then records attempts and
    last_error so the message stays visible and can be dispatched again.
    """

    def __init__(self, session, unit_of_work: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.unit_of_work = unit_of_work
        self.clock = clock
        self._handlers: dict[str, Callable] = {}

    def register(self, topic: str, handler: Callable) -> None:
        self._handlers[topic] = handler

    def pending(self, limit: Optional[int] = None) -> list[OutboxMessage]:
        q = self.session.query(OutboxMessage).filter_by(status="PENDING").order_by(OutboxMessage.id.asc())
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def dispatch(self, message_ids: Optional[list[int]] = None, limit: Optional[int] = None) -> dict:
        """Handle the given messages (or all pending ones). Returns counts."""
        if message_ids is None:
            message_ids = [m.id for m in self.pending(limit)]

        processed = 0
        failed = []
        for message_id in message_ids:
            try:
                if self._dispatch_one(message_id):
                    processed += 1
            except Exception as exc:
                logger.exception("Outbox message %s failed", message_id)
                self._record_failure(message_id, exc)
                failed.append({"id": message_id, "error": str(exc)})
        return {"processed": processed, "failed": failed}

    def _dispatch_one(self, message_id: int) -> bool:
        def _op():
            message = self.session.get(OutboxMessage, message_id)
            if message is None or message.status != "PENDING":
                return False
            handler = self._handlers.get(message.topic)
            if handler is None:
                raise LookupError(f"No outbox handler registered for topic {message.topic!r}")
            handler(message)
            message.status = "DONE"
            message.attempts += 1
            message.last_error = None
            message.processed_at = self.clock()
            return True

        return self.unit_of_work.run(_op)

    def _record_failure(self, message_id: int, exc: Exception) -> None:
        def _op():
            message = self.session.get(OutboxMessage, message_id)
            if message is None:
                return
            message.attempts += 1
            message.last_error = f"{type(exc).__name__}: {exc}"[:2000]

        self.unit_of_work.run(_op)
