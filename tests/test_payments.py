from datetime import timedelta

import pytest

from models.booking import Booking
from models.cart_entry import CartEntry
from models.payment import Payment
from models.slot import Slot
from models.statuses import BookingStatus, PaymentStatus, SlotStatus, WalletTxType
from models.wallet import WalletTransaction
from services import payments, wallets
from services.errors import ConflictError, ValidationError
from services.hold_reclaimer import release_expired_holds
from services.reservations import reserve
from tests.conftest import NOW, window


def test_settlement_confirms_booking_and_credits_owner(field, owner, customer, outbox):
    result = reserve(field.id, [window("18:00", "19:00"), window("19:00", "20:00")], customer=customer, now=NOW)

    booking = payments.settle_payment(result["payment_id"], 200_000, provider_ref="cs_test_1", now=NOW)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.PAID
    slots = Slot.query.all()
    assert {s.status for s in slots} == {SlotStatus.BOOKED}
    assert all(s.hold_expires_at is None for s in slots)
    assert CartEntry.query.count() == 0

    intent = Payment.query.get(result["payment_id"])
    assert intent.status == PaymentStatus.PAID
    assert intent.stripe_session_id == "cs_test_1"

    credit = WalletTransaction.query.filter_by(type=WalletTxType.CREDIT_SETTLEMENT).one()
    assert credit.amount == 190_000
    assert wallets.get_balance(owner.id) == 190_000

    [message] = outbox
    assert message["to"] == customer.email
    assert booking.checkin_code in message["body"]


def test_settlement_is_idempotent(field, owner, customer):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)

    payments.settle_payment(result["payment_id"], 100_000, now=NOW)
    payments.settle_payment(result["payment_id"], 100_000, now=NOW)

    assert WalletTransaction.query.count() == 1
    assert wallets.get_balance(owner.id) == 95_000


def test_amount_mismatch_fails_intent(field, owner, customer):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)

    with pytest.raises(ValidationError) as exc:
        payments.settle_payment(result["payment_id"], 99_999, now=NOW)

    assert exc.value.details["expected"] == 100_000
    assert Payment.query.get(result["payment_id"]).status == PaymentStatus.FAILED
    booking = Booking.query.filter_by(booking_code=result["booking_code"]).one()
    assert booking.status == BookingStatus.PENDING
    assert Slot.query.one().status == SlotStatus.HELD
    assert wallets.get_balance(owner.id) == 0


def test_late_payment_after_reclaim_is_refused(field, customer):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)
    release_expired_holds(field_id=field.id, now=NOW + timedelta(minutes=16))

    with pytest.raises(ConflictError):
        payments.settle_payment(result["payment_id"], 100_000, now=NOW + timedelta(minutes=17))

    booking = Booking.query.filter_by(booking_code=result["booking_code"]).one()
    assert booking.status == BookingStatus.CANCELLED
    assert Slot.query.one().status == SlotStatus.AVAILABLE


def test_failed_intent_is_not_revived(field, customer):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)
    with pytest.raises(ValidationError):
        payments.settle_payment(result["payment_id"], 1, now=NOW)

    with pytest.raises(ConflictError):
        payments.settle_payment(result["payment_id"], 100_000, now=NOW)
    assert Slot.query.one().status == SlotStatus.HELD
