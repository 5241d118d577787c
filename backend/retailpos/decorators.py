# Overview: Request decorators and JSON error helpers for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import ServiceError

ACTOR_HEADER = "X-User-Id"


def service_error_response(error: ServiceError):
    """Render a ServiceError as {"error": {...}} with its HTTP status."""
    return jsonify({"error": error.to_dict()}), error.http_status


def with_actor_context(f):
    """
    Establish who is acting for the rest of the request.

    Sets g.actor_id from the X-User-Id header (None when absent). The audit
    decorator on the service layer reads it from there. Authentication is
    handled upstream of this service; the header is trusted as given.

    Returns 400 if the header is present but not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        g.actor_id = None
        if raw is not None and raw.strip():
            value = raw.strip()
            if not value.isdigit() or int(value) < 1:
                return jsonify({"error": {
                    "code": "VALIDATION_ERROR",
                    "message": f"{ACTOR_HEADER} must be a positive integer",
                }}), 400
            g.actor_id = int(value)
        return f(*args, **kwargs)

    return decorated_function
