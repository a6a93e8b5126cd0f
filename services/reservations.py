"""
The reservation unit of work.

``reserve`` locks the requested windows, prices them, writes the booking,
its slot rows, the holds, the cart entry and a pending payment intent,
all in one transaction. Any failure rolls every row back.
"""
import logging
import secrets
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models.booking import Booking, BookingSlot
from models.statuses import BookingStatus, BookingSlotStatus, PaymentStatus
from services import carts, payments, pricing, promotions
from services.errors import NotFoundError, PromotionError, ValidationError
from services.hold_reclaimer import reclaim_quietly
from services.resources import get_resource
from services.slot_locks import lock_windows, hold_slots
from services.transactions import run_in_transaction
from services.windows import normalize_windows, window_start, window_to_dict
from utils.audit import log_event

logger = logging.getLogger(__name__)


def new_booking_code() -> str:
    return "BK-" + secrets.token_hex(6).upper()


def new_checkin_code() -> str:
    return secrets.token_hex(4).upper()


def _contact(customer, contact):
    contact = contact or {}
    name = (contact.get("name") or "").strip() or None
    email = (contact.get("email") or "").strip().lower() or None
    phone = (contact.get("phone") or "").strip() or None
    if customer is not None:
        return (
            name or customer.contact_name,
            email or customer.email,
            phone or customer.phone_number,
        )
    if not email and not phone:
        raise ValidationError("Guests must provide an email or phone number")
    return name, email, phone


def _recheck_usage(promotion, customer_id):
    # counted again with our own booking in place: stores without row locks
    # (SQLite) only serialize at the first write
    if promotion.usage_limit is not None and promotions.usage_count(promotion.id) > promotion.usage_limit:
        raise PromotionError(PromotionError.USAGE_LIMIT_REACHED, "Promotion usage limit reached")
    if (
        customer_id is not None
        and promotion.usage_per_customer is not None
        and promotions.usage_count(promotion.id, customer_id) > promotion.usage_per_customer
    ):
        raise PromotionError(
            PromotionError.CUSTOMER_USAGE_LIMIT_REACHED,
            "You have already used this promotion the maximum number of times",
        )


def reserve(field_id, windows, customer=None, promotion_code=None, court_id=None,
            payment_method=None, contact=None, now=None):
    """
    Reserve ``windows`` on a field for ``customer`` (None for a guest).

    Returns the booking code, amounts, hold deadline and the held slots.
    Raises ValidationError, NotFoundError, ConflictError or PromotionError.
    """
    now = now or datetime.utcnow()

    wanted = normalize_windows(windows)
    for window in wanted:
        if window_start(window) <= now:
            raise ValidationError("Cannot book past/started slots", window=window_to_dict(window))
    method = payments.normalize_method(payment_method)
    name, email, phone = _contact(customer, contact)
    customer_id = customer.id if customer is not None else None

    # don't let an abandoned hold make the field look busy
    reclaim_quietly(field_id=field_id, now=now)

    hold_minutes = current_app.config.get("HOLD_DURATION_MINUTES", 15)
    fee_percent = current_app.config.get("PLATFORM_FEE_PERCENT", pricing.DEFAULT_PLATFORM_FEE_PERCENT)
    hold_expires_at = now + timedelta(minutes=hold_minutes)

    def work():
        resource = get_resource(field_id)
        courts = resource.courts
        if court_id is not None:
            courts = [c for c in courts if c.id == court_id]
        if not courts:
            raise NotFoundError("Court not found")

        promotion = None
        if promotion_code:
            promotion = promotions.lock_promotion_for(resource.owner_user_id, promotion_code)
            pricing.validate_promotion(
                promotion,
                resource.owner_user_id,
                resource.base_rate * len(wanted),
                now,
                usage_count=promotions.usage_count(promotion.id),
                customer_id=customer_id,
                customer_usage_count=(
                    promotions.usage_count(promotion.id, customer_id) if customer_id is not None else 0
                ),
            )
        quote = pricing.quote(resource.base_rate, len(wanted), promotion, fee_percent)

        court, rows = lock_windows(wanted, courts, now)

        booking = Booking(
            booking_code=new_booking_code(),
            field_id=resource.field_id,
            court_id=court.id,
            owner_user_id=resource.owner_user_id,
            customer_user_id=customer_id,
            customer_name=name,
            customer_email=email,
            customer_phone=phone,
            base_total=quote.base_total,
            discount_amount=quote.discount,
            final_total=quote.final_total,
            platform_fee=quote.platform_fee,
            net_to_owner=quote.net_to_owner,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            promotion_id=promotion.id if promotion else None,
            promotion_code=promotion.code if promotion else None,
            checkin_code=new_checkin_code(),
        )
        db.session.add(booking)
        db.session.flush()
        if promotion is not None:
            _recheck_usage(promotion, customer_id)

        for window, price in zip(wanted, quote.slot_prices):
            db.session.add(BookingSlot(
                booking_id=booking.id,
                court_id=court.id,
                play_date=window.play_date,
                start_time=window.start_time,
                end_time=window.end_time,
                price=price,
                status=BookingSlotStatus.PENDING,
            ))
        hold_slots(resource.field_id, court, rows, booking.id, hold_expires_at, now)

        if customer_id is not None:
            carts.upsert(customer_id, booking.id, hold_expires_at)

        intent = payments.create_intent(booking, quote.final_total, method)

        log_event(
            "BOOKING_RESERVE", user_id=customer_id, entity="booking", entity_id=booking.booking_code,
            metadata={"court_id": court.id, "slots": len(wanted), "final_total": quote.final_total},
            commit=False,
        )
        return {
            "booking_code": booking.booking_code,
            "court_id": court.id,
            "base_total": quote.base_total,
            "discount": quote.discount,
            "final_total": quote.final_total,
            "platform_fee": quote.platform_fee,
            "promotion_code": booking.promotion_code,
            "payment_id": intent.id,
            "payment_method": method,
            "hold_expires_at": hold_expires_at.isoformat(),
            "slots": [
                dict(window_to_dict(w), price=p) for w, p in zip(wanted, quote.slot_prices)
            ],
        }

    result = run_in_transaction("reserve", work)
    logger.info(
        "Booking %s reserved on field %s (%s slot(s), total %s)",
        result["booking_code"], field_id, len(result["slots"]), result["final_total"],
    )
    return result
