from functools import wraps
from flask import g, jsonify

# operators; allowed through every role check
SUPERUSER_ROLE = "ADMIN"


def user_has_any_role(user, role_names) -> bool:
    if user is None:
        return False
    return user.has_role(SUPERUSER_ROLE, *role_names)


def require_roles(*role_names: str):
    """
    Guard a view so only signed-in users holding one of ``role_names`` get in.

        @require_roles("OWNER")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if getattr(g, "user", None) is None:
                return jsonify(error="Authentication required"), 401
            if not user_has_any_role(g.user, role_names):
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
