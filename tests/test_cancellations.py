from datetime import timedelta

import pytest

from models import db
from models.booking import Booking, BookingSlot
from models.cancellation_request import CancellationRequest
from models.payment import Payment
from models.slot import Slot
from models.statuses import (
    BookingSlotStatus, BookingStatus, CancellationStatus, PaymentStatus, SlotStatus, WalletTxType,
)
from models.wallet import WalletTransaction
from services import cancellations, payments, wallets
from services.errors import (
    AlreadyCompletedError, AlreadyProcessedError, CancellationWindowClosedError,
    DuplicateRequestError, NotFoundError, ValidationError,
)
from services.hold_reclaimer import release_expired_holds
from services.reservations import reserve
from tests.conftest import NOW, decision_token, make_promotion, window


def paid_booking(field, customer, windows=None, **kwargs):
    result = reserve(field.id, windows or [window("18:00", "19:00"), window("19:00", "20:00")],
                     customer=customer, now=NOW, **kwargs)
    payments.mark_paid(result["payment_id"], now=NOW)
    return Booking.query.filter_by(booking_code=result["booking_code"]).one()


def test_request_on_paid_booking_notifies_owner(field, owner, customer, outbox):
    booking = paid_booking(field, customer)
    outbox.clear()

    result = cancellations.request_cancellation(booking.booking_code, customer.id, "Rain", now=NOW)

    assert result == {
        "status": "cancellation_requested",
        "booking_code": booking.booking_code,
        "refund_amount": 160_000,
        "penalty_percent": 20,
    }
    assert booking.status == BookingStatus.CANCELLATION_PENDING

    req = CancellationRequest.query.filter_by(booking_id=booking.id).one()
    assert req.previous_status == BookingStatus.CONFIRMED
    assert req.status == CancellationStatus.PENDING

    [message] = outbox
    assert message["to"] == owner.email
    approve = decision_token(message, "approve")
    reject = decision_token(message, "reject")
    assert approve == reject
    # only the hash is stored
    assert req.token_hash != approve


def test_request_on_unpaid_booking_has_no_refund(field, customer, outbox):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)

    out = cancellations.request_cancellation(result["booking_code"], customer.id, now=NOW)

    assert out["refund_amount"] == 0
    assert out["penalty_percent"] == 0


def test_request_inside_cutoff_is_refused(field, customer, outbox):
    booking = paid_booking(field, customer, windows=[window("15:00", "16:00", play_date="2030-01-01")])

    with pytest.raises(CancellationWindowClosedError) as exc:
        cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    assert exc.value.status_code == 403
    assert booking.status == BookingStatus.CONFIRMED


def test_request_errors(field, customer, other_customer, outbox):
    booking = paid_booking(field, customer)

    with pytest.raises(NotFoundError):
        cancellations.request_cancellation("BK-MISSING", customer.id, now=NOW)
    with pytest.raises(NotFoundError):
        cancellations.request_cancellation(booking.booking_code, other_customer.id, now=NOW)

    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    with pytest.raises(DuplicateRequestError):
        cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)


def test_request_on_completed_booking(field, customer, outbox):
    booking = paid_booking(field, customer)
    booking.status = BookingStatus.COMPLETED
    db.session.commit()

    with pytest.raises(AlreadyCompletedError):
        cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)


def test_approve_refunds_and_claws_back_owner_share(field, owner, customer, outbox):
    booking = paid_booking(field, customer)
    assert wallets.get_balance(owner.id) == 190_000
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    token = decision_token(outbox[-1])

    result = cancellations.decide(token, "approve", now=NOW + timedelta(hours=1))

    assert result == {"booking_code": booking.booking_code, "decision": "approve", "refund_amount": 160_000}
    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert Payment.query.filter_by(booking_id=booking.id).one().status == PaymentStatus.REFUNDED
    assert {bs.status for bs in BookingSlot.query.filter_by(booking_id=booking.id)} == {BookingSlotStatus.CANCELLED}

    slots = Slot.query.all()
    assert {s.status for s in slots} == {SlotStatus.AVAILABLE}
    assert all(s.booking_id is None for s in slots)

    # 190_000 net * 160_000 / 200_000
    debit = WalletTransaction.query.filter_by(type=WalletTxType.DEBIT_REFUND).one()
    assert debit.amount == -152_000
    assert wallets.get_balance(owner.id) == 38_000

    # customer told about the outcome
    assert outbox[-1]["to"] == customer.email
    assert "approved" in outbox[-1]["subject"]


def test_reject_restores_previous_status(field, owner, customer, outbox):
    booking = paid_booking(field, customer)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    token = decision_token(outbox[-1], "reject")

    result = cancellations.decide(token, "reject", now=NOW)

    assert result["refund_amount"] == 0
    booking = Booking.query.get(booking.id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.PAID
    assert {s.status for s in Slot.query.all()} == {SlotStatus.BOOKED}
    assert wallets.get_balance(owner.id) == 190_000


def test_decision_token_is_single_use(field, customer, outbox):
    booking = paid_booking(field, customer)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    token = decision_token(outbox[-1])

    cancellations.decide(token, "reject", now=NOW)
    with pytest.raises(AlreadyProcessedError) as exc:
        cancellations.decide(token, "approve", now=NOW)

    assert exc.value.status_code == 410
    assert Booking.query.get(booking.id).status == BookingStatus.CONFIRMED


def test_customer_can_ask_again_after_rejection(field, customer, outbox):
    booking = paid_booking(field, customer)
    cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    cancellations.decide(decision_token(outbox[-1]), "reject", now=NOW)

    cancellations.request_cancellation(booking.booking_code, customer.id, "Injury", now=NOW)

    req = CancellationRequest.query.filter_by(booking_id=booking.id).one()
    assert req.status == CancellationStatus.PENDING
    assert req.reason == "Injury"


def test_decide_with_bad_input(field, customer, outbox):
    with pytest.raises(NotFoundError):
        cancellations.decide("not-a-real-token", "approve", now=NOW)
    with pytest.raises(ValidationError):
        cancellations.decide("whatever", "maybe", now=NOW)


def test_zero_total_booking_refunds_nothing(field, owner, customer, outbox):
    make_promotion(owner, code="FREE", discount_type="PERCENT", discount_value=100, min_order_amount=0)
    booking = paid_booking(field, customer, promotion_code="FREE")
    assert booking.final_total == 0

    out = cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    assert out["refund_amount"] == 0

    result = cancellations.decide(decision_token(outbox[-1]), "approve", now=NOW)
    assert result["refund_amount"] == 0
    assert WalletTransaction.query.filter_by(type=WalletTxType.DEBIT_REFUND).count() == 0
    assert Booking.query.get(booking.id).status == BookingStatus.CANCELLED


def test_notification_failure_does_not_undo_request(field, customer, monkeypatch):
    booking = paid_booking(field, customer)

    def smtp_down(to_email, subject, body):
        raise OSError("connection refused")

    monkeypatch.setattr("utils.emailer.send_email", smtp_down)

    result = cancellations.request_cancellation(booking.booking_code, customer.id, now=NOW)
    assert result["status"] == "cancellation_requested"
    assert Booking.query.get(booking.id).status == BookingStatus.CANCELLATION_PENDING


def test_reclaimer_voids_pending_request_of_expired_hold(field, customer, outbox):
    result = reserve(field.id, [window("18:00", "19:00")], customer=customer, now=NOW)
    cancellations.request_cancellation(result["booking_code"], customer.id, now=NOW)
    token = decision_token(outbox[-1])

    release_expired_holds(field_id=field.id, now=NOW + timedelta(minutes=16))

    booking = Booking.query.filter_by(booking_code=result["booking_code"]).one()
    assert booking.status == BookingStatus.CANCELLED
    assert CancellationRequest.query.one().status == CancellationStatus.VOID
    with pytest.raises(AlreadyProcessedError):
        cancellations.decide(token, "approve", now=NOW + timedelta(minutes=20))
