from functools import wraps

from flask import jsonify, session

from ..app import db
from ..models import User


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = session.get("user_id")
        user = db.session.get(User, user_id) if user_id else None
        if not user:
            return jsonify({"ok": False, "error": "Authentication required"}), 401
        return fn(*args, **kwargs, current_user=user)

    return wrapper


def admin_required(fn):
    """Allow access to platform administrators only."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = session.get("user_id")
        user = db.session.get(User, user_id) if user_id else None
        if not user:
            return jsonify({"ok": False, "error": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"ok": False, "error": "Admin access required"}), 403
        return fn(*args, **kwargs, current_user=user)

    return wrapper
