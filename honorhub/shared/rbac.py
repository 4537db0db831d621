from functools import wraps

from flask import jsonify, session

from ..app import db
from ..models import User


def _session_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    return db.session.get(User, user_id)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _session_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        return fn(*args, **kwargs, current_user=user)

    return wrapper


def admin_required(fn):
    """Allow access to admin users only."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _session_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return fn(*args, **kwargs, current_user=user)

    return wrapper
