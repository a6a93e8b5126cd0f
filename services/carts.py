from datetime import datetime

from models import db
from models.booking import Booking
from models.cart_entry import CartEntry
from services.windows import window_to_dict


def upsert(user_id, booking_id, expires_at):
    entry = CartEntry.query.filter_by(booking_id=booking_id).first()
    if entry:
        entry.user_id = user_id
        entry.expires_at = expires_at
    else:
        entry = CartEntry(user_id=user_id, booking_id=booking_id, expires_at=expires_at)
        db.session.add(entry)
    return entry


def remove_for_bookings(booking_ids) -> int:
    booking_ids = list(booking_ids or [])
    if not booking_ids:
        return 0
    return (
        CartEntry.query
        .filter(CartEntry.booking_id.in_(booking_ids))
        .delete(synchronize_session=False)
    )


def purge_expired(user_id, now=None) -> int:
    now = now or datetime.utcnow()
    return (
        CartEntry.query
        .filter(CartEntry.user_id == user_id, CartEntry.expires_at <= now)
        .delete(synchronize_session=False)
    )


def list_active(user_id, now=None):
    """Drop stale entries, then return the customer's live holds with a countdown."""
    now = now or datetime.utcnow()
    purge_expired(user_id, now)

    rows = (
        db.session.query(CartEntry, Booking)
        .join(Booking, Booking.id == CartEntry.booking_id)
        .filter(CartEntry.user_id == user_id)
        .order_by(CartEntry.expires_at.asc())
        .all()
    )

    out = []
    for entry, booking in rows:
        out.append({
            "booking_code": booking.booking_code,
            "status": booking.status,
            "final_total": booking.final_total,
            "expires_at": entry.expires_at.isoformat(),
            "seconds_until_expiry": max(0, int((entry.expires_at - now).total_seconds())),
            "slots": [dict(window_to_dict(s), price=s.price) for s in booking.slots],
        })
    return out
