import hmac

from flask import request, jsonify

# double-submit: the auth service sets this cookie next to the session cookie
# and the client echoes it back in the header on every write
CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def require_csrf():
    """Return a 403 response when the header does not match the cookie, else None."""
    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    if not cookie_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None
