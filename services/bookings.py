import logging
from datetime import datetime

from models.booking import Booking
from models.cancellation_request import CancellationRequest
from models.statuses import BookingStatus, CancellationStatus, PaymentStatus
from services import payments
from services.cancellations import refund_paid_booking, release_booking_slots
from services.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from services.transactions import run_in_transaction
from services.windows import window_to_dict
from utils.audit import log_event

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def booking_to_dict(b: Booking) -> dict:
    return {
        "booking_code": b.booking_code,
        "field_id": b.field_id,
        "court_id": b.court_id,
        "status": b.status,
        "payment_status": b.payment_status,
        "base_total": b.base_total,
        "discount_amount": b.discount_amount,
        "final_total": b.final_total,
        "platform_fee": b.platform_fee,
        "net_to_owner": b.net_to_owner,
        "promotion_code": b.promotion_code,
        "customer": {
            "user_id": b.customer_user_id,
            "name": b.customer_name,
            "email": b.customer_email,
            "phone": b.customer_phone,
        },
        "checked_in": b.checkin_at is not None,
        "created_at": b.created_at.isoformat() if b.created_at else None,
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
        "completed_at": b.completed_at.isoformat() if b.completed_at else None,
        "slots": [dict(window_to_dict(s), price=s.price, status=s.status) for s in b.slots],
    }


def _can_view(booking, user):
    if user is None:
        return False
    return (
        booking.customer_user_id == user.id
        or booking.owner_user_id == user.id
        or user.has_role("ADMIN")
    )


def get_booking(booking_code, viewer):
    booking = Booking.query.filter_by(booking_code=booking_code).first()
    if not booking or not _can_view(booking, viewer):
        raise NotFoundError("Booking not found")
    return booking


def _page(q, status, limit, offset):
    if status:
        status = status.strip().upper()
        if status not in BookingStatus.ALL:
            raise ValidationError("Invalid status filter")
        q = q.filter(Booking.status == status)
    limit = min(max(int(limit or 50), 1), MAX_PAGE_SIZE)
    return q.order_by(Booking.created_at.desc()).offset(max(int(offset or 0), 0)).limit(limit).all()


def list_customer_bookings(user_id, status=None, limit=50, offset=0):
    return _page(Booking.query.filter_by(customer_user_id=user_id), status, limit, offset)


def list_owner_bookings(owner_user_id, status=None, limit=50, offset=0):
    return _page(Booking.query.filter_by(owner_user_id=owner_user_id), status, limit, offset)


def _pending_request(booking):
    return (
        CancellationRequest.query
        .filter_by(booking_id=booking.id, status=CancellationStatus.PENDING)
        .with_for_update()
        .first()
    )


def _check_leave_cancellation_pending(booking, new_status, now):
    """
    A booking waiting on a cancellation decision may only be cancelled or
    put back to the status it had when the request was made. Either way
    the pending request is closed.
    """
    req = _pending_request(booking)
    if new_status != BookingStatus.CANCELLED and (req is None or req.previous_status != new_status):
        raise InvalidTransitionError(booking.status, new_status)
    if req is not None:
        req.status = CancellationStatus.VOID
        req.decided_at = now


def transition_status(booking_code, new_status, actor_id=None, now=None):
    """
    Move a booking along the closed status graph in BookingStatus.TRANSITIONS.

    CONFIRMED is only reached through payment settlement and
    CANCELLATION_PENDING only through request_cancellation, so both are
    refused here. Cancelling a paid booking refunds it in full and claws
    the owner's share back from their wallet.
    """
    now = now or datetime.utcnow()
    new_status = (new_status or "").strip().upper()
    if new_status not in BookingStatus.ALL:
        raise ValidationError(f"Unknown booking status {new_status!r}")
    if new_status == BookingStatus.CONFIRMED:
        raise ValidationError("Bookings are confirmed by payment settlement")
    if new_status == BookingStatus.CANCELLATION_PENDING:
        raise ValidationError("Use the cancellation request to ask for a cancellation")

    def work():
        booking = Booking.query.filter_by(booking_code=booking_code).with_for_update().first()
        if not booking:
            raise NotFoundError("Booking not found")

        current = booking.status
        if not BookingStatus.can_transition(current, new_status):
            raise InvalidTransitionError(current, new_status)
        if current == BookingStatus.CANCELLATION_PENDING:
            _check_leave_cancellation_pending(booking, new_status, now)

        refund = 0
        if new_status == BookingStatus.COMPLETED:
            booking.completed_at = now
        elif new_status == BookingStatus.CANCELLED:
            booking.cancelled_at = now
            release_booking_slots(booking, now)
            if booking.payment_status == PaymentStatus.PAID:
                refund = booking.final_total
                refund_paid_booking(booking, refund)
            else:
                payments.fail_pending_intents([booking.id])
                booking.payment_status = PaymentStatus.FAILED

        booking.status = new_status
        log_event(
            "BOOKING_STATUS", user_id=actor_id, entity="booking", entity_id=booking.booking_code,
            metadata={"from": current, "to": new_status, "refund_amount": refund}, commit=False,
        )
        return booking

    booking = run_in_transaction("transition_status", work)
    logger.info("Booking %s moved to %s", booking.booking_code, new_status)
    return booking


def get_checkin_code(booking_code, customer_id):
    booking = Booking.query.filter_by(booking_code=booking_code).first()
    if not booking or customer_id is None or booking.customer_user_id != customer_id:
        raise NotFoundError("Booking not found")
    if booking.status != BookingStatus.CONFIRMED:
        raise ValidationError("Check-in code is only available for confirmed bookings")
    return booking.checkin_code


def verify_checkin(booking_code, checkin_code, owner, now=None):
    now = now or datetime.utcnow()
    code = (checkin_code or "").strip().upper()
    if not code:
        raise ValidationError("checkin_code required")

    def work():
        booking = Booking.query.filter_by(booking_code=booking_code).with_for_update().first()
        if not booking or (booking.owner_user_id != owner.id and not owner.has_role("ADMIN")):
            raise NotFoundError("Booking not found")
        if booking.status != BookingStatus.CONFIRMED:
            raise ValidationError("Only confirmed bookings can check in")
        if booking.checkin_at is not None:
            raise ConflictError("Booking already checked in")
        if booking.checkin_code != code:
            raise ValidationError("Invalid check-in code")

        booking.checkin_at = now
        log_event("BOOKING_CHECKIN", user_id=owner.id, entity="booking", entity_id=booking.booking_code, commit=False)
        return booking

    return run_in_transaction("verify_checkin", work)
