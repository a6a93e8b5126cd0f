"""
Best-effort customer/owner notifications.

Callers send only after their transaction committed; a failed send is
logged and never undoes the state change that triggered it.
"""
import logging

from utils import emailer

logger = logging.getLogger(__name__)


def _money(amount):
    return f"{amount:,}"


def _cancellation_requested(data):
    subject = f"Cancellation requested for booking {data['booking_code']}"
    body = (
        f"The customer asked to cancel booking {data['booking_code']}.\n"
        f"Reason: {data.get('reason') or '-'}\n"
        f"Refund if approved: {_money(data['refund_amount'])}\n\n"
        f"Approve: {data['approve_url']}\n"
        f"Reject: {data['reject_url']}\n\n"
        "Each link can be used once."
    )
    return subject, body


def _cancellation_decided(data):
    approved = data["decision"] == "approve"
    subject = f"Your cancellation for booking {data['booking_code']} was {'approved' if approved else 'rejected'}"
    if approved:
        body = (
            f"Booking {data['booking_code']} has been cancelled.\n"
            f"Refund amount: {_money(data['refund_amount'])}"
        )
    else:
        body = (
            f"The field owner rejected the cancellation of booking {data['booking_code']}.\n"
            "Your booking stays active."
        )
    return subject, body


def _booking_confirmed(data):
    subject = f"Booking {data['booking_code']} confirmed"
    body = (
        f"Payment received: {_money(data['final_total'])}\n"
        f"Check-in code: {data['checkin_code']}\n"
    )
    return subject, body


TEMPLATES = {
    "cancellation_requested": _cancellation_requested,
    "cancellation_decided": _cancellation_decided,
    "booking_confirmed": _booking_confirmed,
}


def send(recipient, template_kind: str, data: dict):
    """Render ``template_kind`` and email it. Returns ``(ok, error)``, never raises."""
    try:
        subject, body = TEMPLATES[template_kind](data)
        ok, err = emailer.send_email(recipient, subject, body)
    except Exception as exc:
        ok, err = False, str(exc)

    if not ok:
        logger.warning("Notification %s to %s failed: %s", template_kind, recipient, err)
    return ok, err
