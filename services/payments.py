"""
Payment intents and the settlement callback.

A booking only becomes CONFIRMED (and its slots BOOKED) through
settle_payment, after the paid amount has been checked against the
booking's final total.
"""
import logging
from datetime import datetime
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import stripe
from flask import current_app

from models import db
from models.booking import Booking
from models.payment import Payment
from models.slot import Slot
from models.user import User
from models.statuses import (
    BookingStatus, BookingSlotStatus, PaymentMethod, PaymentStatus, SlotStatus,
)
from services import carts, wallets
from services.errors import ConflictError, NotFoundError, ValidationError
from services.transactions import run_in_transaction
from utils import notifier
from utils.audit import log_event

logger = logging.getLogger(__name__)


def normalize_method(method) -> str:
    method = (method or PaymentMethod.CARD).strip().upper()
    if method not in PaymentMethod.ALL:
        raise ValidationError(f"Unsupported payment method {method}")
    return method


def create_intent(booking, amount, method):
    intent = Payment(
        booking_id=booking.id,
        method=method,
        provider="STRIPE" if method == PaymentMethod.CARD else None,
        amount=amount,
        currency=current_app.config.get("CURRENCY", "NPR"),
        status=PaymentStatus.PENDING,
    )
    db.session.add(intent)
    db.session.flush()
    return intent


def fail_pending_intents(booking_ids) -> int:
    booking_ids = list(booking_ids or [])
    if not booking_ids:
        return 0
    return (
        Payment.query
        .filter(Payment.booking_id.in_(booking_ids), Payment.status == PaymentStatus.PENDING)
        .update({Payment.status: PaymentStatus.FAILED}, synchronize_session=False)
    )


def refund_paid_intents(booking_id) -> int:
    return (
        Payment.query
        .filter(Payment.booking_id == booking_id, Payment.status == PaymentStatus.PAID)
        .update({Payment.status: PaymentStatus.REFUNDED}, synchronize_session=False)
    )


def _fail(intent, reason):
    intent.status = PaymentStatus.FAILED
    log_event(
        "PAYMENT_REJECTED", entity="payment", entity_id=intent.id,
        metadata={"booking_id": intent.booking_id, "reason": reason}, commit=False,
    )


def settle_payment(intent_id, amount_paid, provider_ref=None, now=None):
    """
    Apply a successful payment to its booking.

    Idempotent for an intent that is already PAID; a FAILED intent is
    never revived. A wrong amount, or a booking whose holds were already
    reclaimed, fails the intent instead of confirming the booking.
    """
    now = now or datetime.utcnow()
    outcome = {}

    def work():
        outcome.clear()
        intent = Payment.query.filter_by(id=intent_id).with_for_update().first()
        if not intent:
            raise NotFoundError("Payment not found")
        booking = Booking.query.filter_by(id=intent.booking_id).with_for_update().first()
        if not booking:
            raise NotFoundError("Booking not found")

        if intent.status == PaymentStatus.PAID:
            outcome["already_paid"] = True
            return booking
        if intent.status != PaymentStatus.PENDING:
            outcome["error"] = ConflictError(f"Payment is already {intent.status.lower()}")
            return booking

        if int(amount_paid) != booking.final_total:
            _fail(intent, "amount_mismatch")
            outcome["error"] = ValidationError(
                "Paid amount does not match booking total",
                expected=booking.final_total, received=int(amount_paid),
            )
            return booking

        held = (
            Slot.query
            .filter_by(booking_id=booking.id, status=SlotStatus.HELD)
            .with_for_update()
            .all()
        )
        if booking.status != BookingStatus.PENDING or len(held) != len(booking.slots):
            _fail(intent, "hold_lost")
            outcome["error"] = ConflictError("Booking hold has expired or was released")
            return booking

        intent.status = PaymentStatus.PAID
        intent.paid_at = now
        if provider_ref and not intent.stripe_session_id:
            intent.stripe_session_id = provider_ref

        booking.status = BookingStatus.CONFIRMED
        booking.payment_status = PaymentStatus.PAID
        for bs in booking.slots:
            bs.status = BookingSlotStatus.BOOKED
        for slot in held:
            slot.status = SlotStatus.BOOKED
            slot.hold_expires_at = None

        wallets.credit_settlement(booking.owner_user_id, booking.id, booking.net_to_owner)
        carts.remove_for_bookings([booking.id])

        log_event(
            "PAYMENT_SETTLED", user_id=booking.customer_user_id, entity="booking",
            entity_id=booking.booking_code,
            metadata={"payment_id": intent.id, "amount": intent.amount}, commit=False,
        )
        return booking

    booking = run_in_transaction("settle_payment", work)

    # the failed intent is committed before the caller sees the error
    if "error" in outcome:
        raise outcome["error"]
    if outcome.get("already_paid"):
        return booking

    logger.info("Booking %s confirmed by payment %s", booking.booking_code, intent_id)
    notifier.send(customer_email(booking), "booking_confirmed", {
        "booking_code": booking.booking_code,
        "final_total": booking.final_total,
        "checkin_code": booking.checkin_code,
    })
    return booking


def mark_paid(intent_id, now=None):
    """Desk confirmation (cash or bank transfer) for the intent's own amount."""
    intent = Payment.query.get(intent_id)
    if not intent:
        raise NotFoundError("Payment not found")
    return settle_payment(intent.id, intent.amount, now=now)


def fail_intent(intent_id, reason):
    def work():
        intent = Payment.query.get(intent_id)
        if intent and intent.status == PaymentStatus.PENDING:
            _fail(intent, reason)
        return intent

    return run_in_transaction("fail_intent", work)


def customer_email(booking):
    if booking.customer_email:
        return booking.customer_email
    if booking.customer_user_id:
        user = User.query.get(booking.customer_user_id)
        return user.email if user else None
    return None


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def start_checkout(booking):
    """Create a Stripe Checkout Session for the booking's pending card intent."""
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    success_url = current_app.config.get("STRIPE_SUCCESS_URL")
    cancel_url = current_app.config.get("STRIPE_CANCEL_URL")
    if not stripe.api_key:
        raise ValidationError("Stripe secret key not configured")
    if not success_url or not cancel_url:
        raise ValidationError("Stripe success/cancel URLs not configured")

    if booking.status != BookingStatus.PENDING:
        raise ValidationError("Booking is not awaiting payment")

    intent = (
        Payment.query
        .filter_by(booking_id=booking.id, status=PaymentStatus.PENDING, method=PaymentMethod.CARD)
        .order_by(Payment.created_at.desc())
        .first()
    )
    if not intent:
        raise NotFoundError("No pending card payment for this booking")

    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": intent.currency.lower(),
                "product_data": {"name": f"Court booking {booking.booking_code}"},
                # Stripe expects the smallest unit, which is what we store
                "unit_amount": intent.amount,
            },
            "quantity": 1,
        }],
        success_url=_append_query(success_url, {"booking_code": booking.booking_code}),
        cancel_url=_append_query(cancel_url, {"booking_code": booking.booking_code}),
        metadata={
            "payment_id": str(intent.id),
            "booking_code": booking.booking_code,
        },
    )

    intent.stripe_session_id = session["id"]
    db.session.commit()

    log_event(
        "PAYMENT_SESSION_CREATED", user_id=booking.customer_user_id, entity="payment",
        entity_id=intent.id, metadata={"stripe_session_id": session["id"]},
    )
    return session["url"]
