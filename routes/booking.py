from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from models.statuses import BookingStatus
from security.rbac import require_roles
from services import availability, bookings, cancellations, reservations
from services.errors import NotFoundError, ValidationError
from utils.auth_context import login_required

booking_bp = Blueprint("booking", __name__)

# owners and admins may only close bookings; confirmation comes from payment
# settlement and cancellation_pending from the customer's request
OWNER_SETTABLE_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED}


# ---------- ANYONE: availability ----------
@booking_bp.get("/fields/<int:field_id>/availability")
def field_availability(field_id: int):
    play_date = request.args.get("date")
    if not play_date:
        return jsonify(error="date query parameter required (YYYY-MM-DD)"), 400
    return jsonify(availability.get_availability(field_id, play_date)), 200


# ---------- CUSTOMERS & GUESTS: reserve (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/fields/<int:field_id>/bookings")
def reserve(field_id: int):
    data = request.get_json(silent=True) or {}

    court_id = data.get("court_id")
    if court_id is not None:
        try:
            court_id = int(court_id)
        except (TypeError, ValueError):
            raise ValidationError("court_id must be an integer")

    result = reservations.reserve(
        field_id,
        data.get("slots"),
        customer=g.user,
        promotion_code=data.get("promotion_code"),
        court_id=court_id,
        payment_method=data.get("payment_method"),
        contact=data.get("contact"),
    )
    return jsonify(result), 201


# ---------- CUSTOMERS: my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    rows = bookings.list_customer_bookings(
        g.user.id,
        status=request.args.get("status"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", type=int),
    )
    return jsonify([bookings.booking_to_dict(b) for b in rows]), 200


@booking_bp.get("/bookings/<booking_code>")
@login_required
def booking_detail(booking_code: str):
    booking = bookings.get_booking(booking_code, g.user)
    return jsonify(bookings.booking_to_dict(booking)), 200


# ---------- CUSTOMERS: request cancellation (policy window) ----------
@booking_bp.post("/bookings/<booking_code>/cancel")
@login_required
def cancel_booking(booking_code: str):
    data = request.get_json(silent=True) or {}
    result = cancellations.request_cancellation(booking_code, g.user.id, data.get("reason"))
    return jsonify(result), 200


@booking_bp.get("/bookings/<booking_code>/checkin-code")
@login_required
def checkin_code(booking_code: str):
    code = bookings.get_checkin_code(booking_code, g.user.id)
    return jsonify(booking_code=booking_code, checkin_code=code), 200


# ---------- OWNER/ADMIN ----------
@booking_bp.post("/bookings/<booking_code>/checkin")
@require_roles("OWNER")
def checkin(booking_code: str):
    data = request.get_json(silent=True) or {}
    booking = bookings.verify_checkin(booking_code, data.get("checkin_code"), g.user)
    return jsonify(booking_code=booking.booking_code, checkin_at=booking.checkin_at.isoformat()), 200


@booking_bp.patch("/bookings/<booking_code>/status")
@require_roles("OWNER")
def update_status(booking_code: str):
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip().upper()
    if new_status not in OWNER_SETTABLE_STATUSES:
        return jsonify(error="status must be COMPLETED or CANCELLED"), 400

    # owners only act on bookings of their own fields; being the customer is not enough
    booking = Booking.query.filter_by(booking_code=booking_code).first()
    if not booking or (booking.owner_user_id != g.user.id and not g.user.has_role("ADMIN")):
        raise NotFoundError("Booking not found")

    booking = bookings.transition_status(booking_code, new_status, actor_id=g.user.id)
    return jsonify(booking_code=booking.booking_code, status=booking.status), 200


@booking_bp.get("/owner/bookings")
@require_roles("OWNER")
def owner_bookings():
    rows = bookings.list_owner_bookings(
        g.user.id,
        status=request.args.get("status"),
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", type=int),
    )
    return jsonify([bookings.booking_to_dict(b) for b in rows]), 200
