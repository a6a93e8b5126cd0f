"""
Release holds whose deadline has passed.

Expiry is detected lazily: the sweep runs before availability reads and
reservation attempts on a field, and periodically from Celery beat as a
safety net (see tasks.py).
"""
import logging
from datetime import datetime

from sqlalchemy import and_, update

from models import db
from models.booking import Booking
from models.cancellation_request import CancellationRequest
from models.slot import Slot
from models.statuses import (
    BookingStatus, BookingSlotStatus, CancellationStatus, PaymentStatus, SlotStatus,
)
from services import carts, payments
from services.transactions import run_in_transaction
from utils.audit import log_event

logger = logging.getLogger(__name__)

_EXPIRABLE = (BookingStatus.PENDING, BookingStatus.CANCELLATION_PENDING)


def expire_bookings(booking_ids, now):
    """Cancel still-unpaid bookings whose hold ran out. Runs in the caller's transaction."""
    booking_ids = list(booking_ids or [])
    if not booking_ids:
        return []

    bookings = (
        Booking.query
        .filter(Booking.id.in_(booking_ids), Booking.status.in_(_EXPIRABLE))
        .with_for_update()
        .all()
    )
    for booking in bookings:
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        if booking.payment_status != PaymentStatus.PAID:
            booking.payment_status = PaymentStatus.FAILED
        for bs in booking.slots:
            bs.status = BookingSlotStatus.CANCELLED

    expired_ids = [b.id for b in bookings]
    if expired_ids:
        payments.fail_pending_intents(expired_ids)
        (
            CancellationRequest.query
            .filter(
                CancellationRequest.booking_id.in_(expired_ids),
                CancellationRequest.status == CancellationStatus.PENDING,
            )
            .update(
                {
                    CancellationRequest.status: CancellationStatus.VOID,
                    CancellationRequest.decided_at: now,
                },
                synchronize_session=False,
            )
        )
        carts.remove_for_bookings(expired_ids)
    return bookings


def release_expired_holds(field_id=None, now=None) -> int:
    """Cancel bookings behind expired holds and free their slots. Returns slots released."""
    now = now or datetime.utcnow()

    def work():
        q = Slot.query.filter(Slot.status == SlotStatus.HELD, Slot.hold_expires_at < now)
        if field_id is not None:
            q = q.filter(Slot.field_id == field_id)
        slots = (
            q.order_by(Slot.court_id, Slot.play_date, Slot.start_time)
            .with_for_update(skip_locked=True)
            .all()
        )
        if not slots:
            return 0

        bookings = expire_bookings({s.booking_id for s in slots if s.booking_id}, now)

        released = 0
        for slot in slots:
            # a reservation may have taken the slot over since we read it
            result = db.session.execute(
                update(Slot)
                .where(and_(
                    Slot.id == slot.id,
                    Slot.status == SlotStatus.HELD,
                    Slot.hold_expires_at < now,
                ))
                .values(status=SlotStatus.AVAILABLE, booking_id=None, hold_expires_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            released += result.rowcount
            db.session.expire(slot)

        if released:
            log_event(
                "HOLDS_RELEASED", entity="field", entity_id=field_id,
                metadata={"slots": released, "bookings": [b.booking_code for b in bookings]},
                commit=False,
            )
        return released

    released = run_in_transaction("release_expired_holds", work)
    if released:
        logger.info("Released %s expired hold(s)%s", released, f" on field {field_id}" if field_id else "")
    return released


def reclaim_quietly(field_id=None, now=None) -> int:
    """Sweep for read/write paths: a failed sweep is logged and never propagates."""
    try:
        return release_expired_holds(field_id=field_id, now=now)
    except Exception:
        logger.exception("Hold sweep failed for field %s", field_id)
        db.session.rollback()
        return 0
