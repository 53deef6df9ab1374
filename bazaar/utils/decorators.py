# ------- bazaar/utils/decorators.py -------
from functools import wraps
from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..model.user import User
from ..utils.api import api_error

ROLE_LEVEL = {"customer": 1, "vendor": 2, "admin": 3}

def _current_user():
    verify_jwt_in_request()
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    return db.session.get(User, uid) if uid else None

def current_user() -> User:
    """The user loaded by one of the decorators below."""
    return g.current_user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        u = _current_user()
        if not u:
            return jsonify(api_error("Unauthorized")), 401
        g.current_user = u
        return fn(*args, **kwargs)
    return wrapper

def role_at_least(min_role: str, message: str | None = None):  # admin > vendor > customer
    min_level = ROLE_LEVEL[min_role]
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_user()
            if not u:
                return jsonify(api_error("Unauthorized")), 401
            if ROLE_LEVEL.get(u.role, 0) < min_level:
                return jsonify(api_error(message or "Forbidden", {"error_kind": "forbidden"})), 403
            g.current_user = u
            return fn(*args, **kwargs)
        return wrapper
    return decorator
