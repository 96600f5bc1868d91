from __future__ import annotations

from ..extensions import db
from costledger.time_utils import to_utc_z


class OutboxMessage(db.Model):
    """
    Durable side-effect request written inside a unit of work.

    status: PENDING until a dispatcher handles it, then DONE.
    A failed attempt stays PENDING with attempts/last_error filled in.
    """
    __tablename__ = "outbox_messages"
    __table_args__ = (
        db.Index("ix_outbox_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    topic = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "topic": self.topic,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
        }
