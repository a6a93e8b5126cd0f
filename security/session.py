import hashlib
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session

# last_seen_at is only rewritten when it is older than this, so a burst of
# requests does not turn every read into a write
TOUCH_INTERVAL = timedelta(seconds=60)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def resolve_session(raw_token, now=None):
    """
    Look up a live session for a raw cookie token.

    Sessions are issued by the auth service; this side only checks them.
    Returns None for unknown, revoked, expired or idle sessions.
    """
    if not raw_token:
        return None
    now = now or datetime.utcnow()

    sess = Session.query.filter_by(token_hash=hash_token(raw_token)).first()
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)
    if not sess or not sess.is_live(now, idle_seconds):
        return None

    if now - (sess.last_seen_at or sess.created_at) >= TOUCH_INTERVAL:
        sess.last_seen_at = now
        db.session.commit()
    return sess


def get_session_from_request():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "courtslot_session")
    return resolve_session(request.cookies.get(cookie_name))
