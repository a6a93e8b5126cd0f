from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from models.payment import Payment
from security.rbac import require_roles
from services import payments
from services.errors import NotFoundError

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/start")
def start_payment():
    data = request.get_json(silent=True) or {}
    booking_code = (data.get("booking_code") or "").strip()
    if not booking_code:
        return jsonify(error="booking_code required"), 400

    booking = Booking.query.filter_by(booking_code=booking_code).first()
    # guests pay with the code they were given; signed-in customers only for their own bookings
    if not booking or (booking.customer_user_id is not None and
                       (g.user is None or g.user.id != booking.customer_user_id)):
        return jsonify(error="Booking not found"), 404

    checkout_url = payments.start_checkout(booking)
    return jsonify(checkout_url=checkout_url), 200


# ---------- OWNER/ADMIN: cash or bank transfer received at the desk ----------
@payments_bp.post("/<int:payment_id>/mark-paid")
@require_roles("OWNER")
def mark_paid(payment_id: int):
    intent = Payment.query.get(payment_id)
    booking = Booking.query.get(intent.booking_id) if intent else None
    if not booking or (booking.owner_user_id != g.user.id and not g.user.has_role("ADMIN")):
        raise NotFoundError("Payment not found")

    booking = payments.mark_paid(payment_id)
    return jsonify(booking_code=booking.booking_code, status=booking.status,
                   payment_status=booking.payment_status), 200
