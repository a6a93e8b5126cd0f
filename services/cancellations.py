"""
Customer cancellation requests and the owner's approve/reject decision.

The owner decides through a single-use link, without a session. Only the
sha256 of the link token is stored.
"""
import hashlib
import logging
import secrets
from datetime import datetime
from urllib.parse import urlencode

from flask import current_app
from models import db
from models.booking import Booking, BookingSlot
from models.cancellation_request import CancellationRequest
from models.slot import Slot
from models.statuses import (
    BookingStatus, BookingSlotStatus, CancellationStatus, PaymentStatus, SlotStatus,
)
from models.user import User
from services import carts, payments, wallets
from services.errors import (
    AlreadyCompletedError, AlreadyProcessedError, CancellationWindowClosedError,
    DuplicateRequestError, NotFoundError, ValidationError,
)
from services.pricing import round_half_up
from services.transactions import run_in_transaction
from utils import notifier
from utils.audit import log_event

logger = logging.getLogger(__name__)

DECISIONS = ("approve", "reject")


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def decision_links(token: str) -> dict:
    base = current_app.config.get("CANCELLATION_DECISION_BASE_URL", "")
    return {
        d: f"{base}?{urlencode({'token': token, 'decision': d})}"
        for d in DECISIONS
    }


def _earliest_start(booking_id):
    row = (
        db.session.query(BookingSlot.play_date, BookingSlot.start_time)
        .filter(BookingSlot.booking_id == booking_id)
        .order_by(BookingSlot.play_date.asc(), BookingSlot.start_time.asc())
        .first()
    )
    return datetime.combine(row[0], row[1]) if row else None


def request_cancellation(booking_code, customer_id, reason=None, now=None):
    now = now or datetime.utcnow()
    reason = (reason or "").strip()[:255] or None
    cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 12)
    refund_percent = current_app.config.get("CANCEL_REFUND_PERCENT", 80)
    token = secrets.token_urlsafe(32)

    def work():
        booking = Booking.query.filter_by(booking_code=booking_code).with_for_update().first()
        if not booking or customer_id is None or booking.customer_user_id != customer_id:
            raise NotFoundError("Booking not found")

        if booking.status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
            raise AlreadyCompletedError(f"Booking is already {booking.status.lower()}")

        existing = CancellationRequest.query.filter_by(booking_id=booking.id).with_for_update().first()
        if booking.status == BookingStatus.CANCELLATION_PENDING or (
            existing and existing.status == CancellationStatus.PENDING
        ):
            raise DuplicateRequestError("A cancellation request is already pending")

        start = _earliest_start(booking.id)
        if start and (start - now).total_seconds() < cutoff_hours * 3600:
            raise CancellationWindowClosedError(
                f"Cancellation not allowed within {cutoff_hours} hours of start"
            )

        if booking.payment_status == PaymentStatus.PAID:
            refund = round_half_up(booking.final_total * refund_percent, 100)
            penalty = 100 - refund_percent
        else:
            refund, penalty = 0, 0

        req = existing or CancellationRequest(booking_id=booking.id)
        req.reason = reason
        req.refund_amount = refund
        req.penalty_percent = penalty
        req.token_hash = _hash_token(token)
        req.status = CancellationStatus.PENDING
        req.previous_status = booking.status
        req.requested_at = now
        req.decided_at = None
        db.session.add(req)

        booking.status = BookingStatus.CANCELLATION_PENDING

        log_event(
            "CANCELLATION_REQUEST", user_id=customer_id, entity="booking", entity_id=booking.booking_code,
            metadata={"reason": reason, "refund_amount": refund}, commit=False,
        )
        return booking, refund, penalty

    booking, refund, penalty = run_in_transaction("request_cancellation", work)

    owner = User.query.get(booking.owner_user_id)
    links = decision_links(token)
    notifier.send(owner.email if owner else None, "cancellation_requested", {
        "booking_code": booking.booking_code,
        "reason": reason,
        "refund_amount": refund,
        "approve_url": links["approve"],
        "reject_url": links["reject"],
    })

    return {
        "status": "cancellation_requested",
        "booking_code": booking.booking_code,
        "refund_amount": refund,
        "penalty_percent": penalty,
    }


def owner_clawback(booking, refund_amount) -> int:
    """Share of the owner's net that goes back with a refund."""
    if refund_amount <= 0 or booking.final_total <= 0:
        return 0
    return round_half_up(booking.net_to_owner * refund_amount, booking.final_total)


def release_booking_slots(booking, now):
    """Free the booking's resource slots and cancel its slot rows."""
    for bs in booking.slots:
        bs.status = BookingSlotStatus.CANCELLED
    (
        Slot.query
        .filter(Slot.booking_id == booking.id)
        .update(
            {
                Slot.status: SlotStatus.AVAILABLE,
                Slot.booking_id: None,
                Slot.hold_expires_at: None,
                Slot.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    carts.remove_for_bookings([booking.id])


def refund_paid_booking(booking, refund_amount):
    """Refund a paid booking: claw back the owner's share and mark the money REFUNDED."""
    clawback = owner_clawback(booking, refund_amount)
    if clawback:
        wallets.debit_refund(booking.owner_user_id, booking.id, clawback)
    booking.payment_status = PaymentStatus.REFUNDED
    payments.refund_paid_intents(booking.id)
    return clawback


def decide(token, decision, now=None):
    now = now or datetime.utcnow()
    decision = (decision or "").strip().lower()
    if decision not in DECISIONS:
        raise ValidationError("decision must be approve or reject")
    if not token:
        raise NotFoundError("Cancellation request not found")

    token_hash = _hash_token(token)

    def work():
        req = CancellationRequest.query.filter_by(token_hash=token_hash).with_for_update().first()
        if not req:
            raise NotFoundError("Cancellation request not found")
        if req.status != CancellationStatus.PENDING:
            raise AlreadyProcessedError("Cancellation request already processed")

        booking = Booking.query.filter_by(id=req.booking_id).with_for_update().first()
        if not booking:
            raise NotFoundError("Booking not found")

        refund = 0
        if decision == "approve":
            was_paid = booking.payment_status == PaymentStatus.PAID
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = now
            release_booking_slots(booking, now)

            if was_paid and req.refund_amount > 0 and booking.final_total > 0:
                refund = req.refund_amount
                refund_paid_booking(booking, refund)
            else:
                req.refund_amount = 0
                payments.fail_pending_intents([booking.id])
                if booking.payment_status != PaymentStatus.PAID:
                    booking.payment_status = PaymentStatus.FAILED
            req.status = CancellationStatus.APPROVED
        else:
            booking.status = req.previous_status or BookingStatus.PENDING
            req.status = CancellationStatus.REJECTED

        # the token stays on the row so a replay is answered as already processed
        req.decided_at = now

        log_event(
            "CANCELLATION_DECISION", entity="booking", entity_id=booking.booking_code,
            metadata={"decision": decision, "refund_amount": refund}, commit=False,
        )
        return booking, refund

    booking, refund = run_in_transaction("decide_cancellation", work)
    logger.info("Cancellation of %s %sd", booking.booking_code, decision)

    notifier.send(payments.customer_email(booking), "cancellation_decided", {
        "booking_code": booking.booking_code,
        "decision": decision,
        "refund_amount": refund,
    })
    return {"booking_code": booking.booking_code, "decision": decision, "refund_amount": refund}
