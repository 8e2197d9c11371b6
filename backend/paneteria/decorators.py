# Overview: Request decorators for API routes.

from functools import wraps
from flask import jsonify

from .extensions import get_store


def require_session(f):
    """
    Require an open dashboard session.

    Returns 401 when nobody has signed in through POST /api/session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_store().has_session:
            return jsonify({"error": "Session required"}), 401
        return f(*args, **kwargs)

    return decorated_function
