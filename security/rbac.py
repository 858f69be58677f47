from functools import wraps
from flask import current_app, jsonify, request

from security.tokens import keys_match

ADMIN_KEY_HEADER = "X-Admin-Key"

def is_admin_request() -> bool:
    expected = current_app.config.get("ADMIN_API_KEY")
    return keys_match(expected, request.headers.get(ADMIN_KEY_HEADER))

def require_admin(fn):
    """
    Usage: @require_admin
    Admin login lives in the admin console; this service only checks the
    shared key it forwards.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("ADMIN_API_KEY"):
            return jsonify(success=False, error="Admin access not configured"), 503
        if not request.headers.get(ADMIN_KEY_HEADER):
            return jsonify(success=False, error="Authentication required"), 401
        if not is_admin_request():
            return jsonify(success=False, error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
