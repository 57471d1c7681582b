# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTING_USER_HEADER = "X-User-Id"


def require_acting_user(f):
    """
    Require the acting user id set by the upstream auth gateway.

    Sets g.acting_user_id. Authentication and permission checks happen
    before requests reach this service; the header is trusted as-is.

    Returns 401 if the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTING_USER_HEADER, "").strip()

        if not raw:
            return jsonify({"error": "Acting user required", "code": "UNAUTHENTICATED"}), 401

        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": f"Invalid {ACTING_USER_HEADER} header", "code": "UNAUTHENTICATED"}), 401

        g.acting_user_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function
