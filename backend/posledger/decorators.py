# Overview: Request decorators establishing the operator identity for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .services.repositories import UserStore

USER_ID_HEADER = "X-User-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _denied(message: str, code: str, status: int):
    return jsonify({"error": message, "code": code, "details": {}}), status


def require_auth(f):
    """
    Resolve the operator behind the request.

    Credentials are checked upstream by the authenticating proxy, which
    forwards the user id in the X-User-Id header. Sets g.current_user.

    Returns 401 if:
    - No X-User-Id header, or not an integer
    - Unknown user
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_ID_HEADER, "").strip()
        if not raw:
            return _denied("Authentication required", "unauthorized", 401)
        if not raw.isdigit():
            return _denied("Invalid user identity", "unauthorized", 401)

        user = UserStore(db.session).get(int(raw))
        if user is None or not user.is_active:
            current_app.logger.warning("Rejected identity %s for %s %s", raw, request.method, request.path)
            return _denied("Invalid or inactive user", "unauthorized", 401)

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to hold the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return _denied("Authentication required", "unauthorized", 401)
        if not g.current_user.is_admin:
            return _denied("Admin access required", "forbidden", 403)
        return f(*args, **kwargs)
    return decorated_function
