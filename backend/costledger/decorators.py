# Overview: Request helpers shared by API routes: actor identity, query parsing and error responses.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import EngineError, InvariantViolation, ValidationError
from .time_utils import parse_iso_datetime

ACTOR_HEADER = "X-Actor-Id"


def with_actor(f):
    """
    Establish the acting user for write routes.

    The authentication layer in front of this service resolves the session
    and forwards the user id in the X-Actor-Id header; this decorator only
    reads it. Returns 401 if it is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": {"kind": "Unauthenticated", "message": "Actor identity required"}}), 401
        g.actor_id = actor_id[:64]
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: EngineError):
    """Structured JSON body for an engine error: kind, message, details."""
    if isinstance(exc, InvariantViolation):
        current_app.logger.critical("Invariant violation: %s %s", exc.message, exc.details)
    return jsonify({"error": exc.to_dict()}), exc.status_code


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": {"kind": "InternalError", "message": "Internal server error"}}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={"field": name})


def query_datetime(name: str, *, end_of_day: bool = False):
    try:
        return parse_iso_datetime(request.args.get(name), end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name})
