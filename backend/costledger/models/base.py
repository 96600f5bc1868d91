from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..errors import InvariantViolation


def append_only(model, label: str):
    """
    Reject ORM updates and deletes of `model` rows.

    Rows dirtied only through a relationship collection carry no column
    changes and are let through; SQLAlchemy still reports them to
    before_update.
    """
    @event.listens_for(model, "before_update")
    def prevent_update(mapper, connection, target):
        session = object_session(target)
        if session is not None and not session.is_modified(target, include_collections=False):
            return
        raise InvariantViolation(
            f"{label} are immutable - cannot modify {model.__name__} {target.id}",
            details={"entity": model.__name__, "id": target.id},
        )

    @event.listens_for(model, "before_delete")
    def prevent_delete(mapper, connection, target):
        raise InvariantViolation(
            f"{label} are immutable - cannot delete {model.__name__} {target.id}",
            details={"entity": model.__name__, "id": target.id},
        )

    return model
