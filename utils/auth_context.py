from functools import wraps
from flask import g, jsonify
from security.session import get_session_from_request
from models.user import User


def load_current_user():
    """
    Set g.user for the request. Reservations and availability are open to
    guests, so a missing or dead session leaves g.user as None instead of
    rejecting the request.
    """
    sess = get_session_from_request()
    g.session = sess
    g.user = User.query.get(sess.user_id) if sess else None


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if g.get("user") is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
