from datetime import timedelta

import pytest

from models.booking import Booking
from models.cancellation_request import CancellationRequest
from models.payment import Payment
from models.slot import Slot
from models.statuses import BookingStatus, CancellationStatus, PaymentStatus, SlotStatus, WalletTxType
from models.wallet import WalletTransaction
from services import bookings, cancellations, payments, wallets
from services.errors import (
    ConflictError, InvalidTransitionError, NotFoundError, ValidationError,
)
from services.reservations import reserve
from tests.conftest import NOW, window


@pytest.mark.parametrize("current,new,allowed", [
    (BookingStatus.PENDING, BookingStatus.CONFIRMED, True),
    (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
    (BookingStatus.PENDING, BookingStatus.COMPLETED, False),
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED, True),
    (BookingStatus.CONFIRMED, BookingStatus.PENDING, False),
    (BookingStatus.CANCELLATION_PENDING, BookingStatus.CONFIRMED, True),
    (BookingStatus.CANCELLATION_PENDING, BookingStatus.COMPLETED, False),
    (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
    (BookingStatus.CANCELLED, BookingStatus.PENDING, False),
    (BookingStatus.CANCELLED, "ARCHIVED", False),
])
def test_transition_table(current, new, allowed):
    assert BookingStatus.can_transition(current, new) is allowed


def reserved(field, customer, **kwargs):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW, **kwargs)
    return Booking.query.filter_by(booking_code=result["booking_code"]).one(), result


def test_complete_a_confirmed_booking(field, customer, owner):
    booking, result = reserved(field, customer)
    payments.mark_paid(result["payment_id"], now=NOW)

    bookings.transition_status(booking.booking_code, "completed", actor_id=owner.id, now=NOW + timedelta(days=1))

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.COMPLETED
    assert booking.completed_at == NOW + timedelta(days=1)


def test_invalid_transition_is_rejected(field, customer):
    booking, _ = reserved(field, customer)

    with pytest.raises(InvalidTransitionError):
        bookings.transition_status(booking.booking_code, BookingStatus.COMPLETED, now=NOW)
    with pytest.raises(ValidationError):
        bookings.transition_status(booking.booking_code, "ARCHIVED", now=NOW)
    with pytest.raises(ValidationError):
        bookings.transition_status(booking.booking_code, BookingStatus.CANCELLATION_PENDING, now=NOW)
    with pytest.raises(NotFoundError):
        bookings.transition_status("BK-NOPE", BookingStatus.CANCELLED, now=NOW)

    assert Booking.query.get(booking.id).status == BookingStatus.PENDING


def test_cancelling_releases_slots_and_fails_intent(field, customer, other_customer):
    booking, _ = reserved(field, customer)

    bookings.transition_status(booking.booking_code, BookingStatus.CANCELLED, now=NOW)

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.FAILED
    assert Payment.query.filter_by(booking_id=booking.id).one().status == PaymentStatus.FAILED
    assert Slot.query.one().status == SlotStatus.AVAILABLE

    # window is free again
    reserve(field.id, [window("18:00", "19:00")], customer=other_customer, now=NOW)


def test_terminal_bookings_stay_terminal(field, customer):
    booking, _ = reserved(field, customer)
    bookings.transition_status(booking.booking_code, BookingStatus.CANCELLED, now=NOW)

    with pytest.raises(InvalidTransitionError):
        bookings.transition_status(booking.booking_code, BookingStatus.COMPLETED, now=NOW)


def test_checkin_flow(field, customer, owner, other_customer):
    booking, result = reserved(field, customer)

    with pytest.raises(ValidationError):
        bookings.get_checkin_code(booking.booking_code, customer.id)

    payments.mark_paid(result["payment_id"], now=NOW)
    code = bookings.get_checkin_code(booking.booking_code, customer.id)
    assert code == booking.checkin_code

    with pytest.raises(NotFoundError):
        bookings.get_checkin_code(booking.booking_code, other_customer.id)
    with pytest.raises(ValidationError):
        bookings.verify_checkin(booking.booking_code, "WRONG", owner, now=NOW)

    checked = bookings.verify_checkin(booking.booking_code, code.lower(), owner, now=NOW)
    assert checked.checkin_at == NOW

    with pytest.raises(ConflictError):
        bookings.verify_checkin(booking.booking_code, code, owner, now=NOW)


def test_booking_visibility(field, customer, owner, other_customer, admin):
    booking, _ = reserved(field, customer)

    assert bookings.get_booking(booking.booking_code, customer).id == booking.id
    assert bookings.get_booking(booking.booking_code, owner).id == booking.id
    assert bookings.get_booking(booking.booking_code, admin).id == booking.id
    with pytest.raises(NotFoundError):
        bookings.get_booking(booking.booking_code, other_customer)


def test_listing_filters_by_status(field, customer, owner):
    first, _ = reserved(field, customer)
    reserve(field.id, [window("20:00", "21:00")], customer=customer, now=NOW)
    bookings.transition_status(first.booking_code, BookingStatus.CANCELLED, now=NOW)

    assert len(bookings.list_customer_bookings(customer.id)) == 2
    assert [b.booking_code for b in bookings.list_customer_bookings(customer.id, status="cancelled")] == [
        first.booking_code
    ]
    assert len(bookings.list_owner_bookings(owner.id, status=BookingStatus.PENDING)) == 1
    with pytest.raises(ValidationError):
        bookings.list_customer_bookings(customer.id, status="bogus")


def test_confirmation_is_left_to_settlement(field, customer, owner):
    booking, result = reserved(field, customer)

    with pytest.raises(ValidationError):
        bookings.transition_status(booking.booking_code, "confirmed", now=NOW + timedelta(hours=2))

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.PENDING
    assert Slot.query.one().status == SlotStatus.HELD
    assert Payment.query.get(result["payment_id"]).status == PaymentStatus.PENDING
    assert wallets.get_balance(owner.id) == 0


def test_cancelling_a_paid_booking_refunds_it(field, customer, owner):
    booking, result = reserved(field, customer)
    payments.mark_paid(result["payment_id"], now=NOW)
    assert wallets.get_balance(owner.id) == 95_000

    bookings.transition_status(booking.booking_code, BookingStatus.CANCELLED, actor_id=owner.id, now=NOW)

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert Payment.query.get(result["payment_id"]).status == PaymentStatus.REFUNDED
    assert Slot.query.one().status == SlotStatus.AVAILABLE

    debit = WalletTransaction.query.filter_by(type=WalletTxType.DEBIT_REFUND).one()
    assert debit.amount == -95_000
    assert wallets.get_balance(owner.id) == 0


def test_cancellation_pending_only_returns_to_remembered_status(field, customer):
    booking, result = reserved(field, customer)
    payments.mark_paid(result["payment_id"], now=NOW)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)

    with pytest.raises(InvalidTransitionError):
        bookings.transition_status(booking.booking_code, BookingStatus.PENDING, now=NOW)
    with pytest.raises(InvalidTransitionError):
        bookings.transition_status(booking.booking_code, BookingStatus.COMPLETED, now=NOW)

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CANCELLATION_PENDING
    assert booking.payment_status == PaymentStatus.PAID
    assert CancellationRequest.query.one().status == CancellationStatus.PENDING


def test_unpaid_booking_can_go_back_to_pending(field, customer):
    booking, _ = reserved(field, customer)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)

    bookings.transition_status(booking.booking_code, BookingStatus.PENDING, now=NOW)

    assert Booking.query.get(booking.id).status == BookingStatus.PENDING
    assert CancellationRequest.query.one().status == CancellationStatus.VOID
    assert Slot.query.one().status == SlotStatus.HELD


def test_cancelling_with_a_request_open_closes_it(field, customer):
    booking, result = reserved(field, customer)
    payments.mark_paid(result["payment_id"], now=NOW)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)

    bookings.transition_status(booking.booking_code, BookingStatus.CANCELLED, now=NOW)

    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert CancellationRequest.query.one().status == CancellationStatus.VOID
