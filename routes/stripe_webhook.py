import logging

import stripe
from flask import Blueprint, request, jsonify, current_app

from models.payment import Payment
from services import payments
from services.errors import BookingError
from utils.audit import log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event.get("type")
    if event_type not in ("checkout.session.completed", "checkout.session.expired"):
        return jsonify(received=True), 200

    session = event["data"]["object"]
    session_id = session.get("id")
    meta = session.get("metadata", {}) or {}

    payment = None
    if meta.get("payment_id"):
        payment = Payment.query.get(int(meta["payment_id"]))
    if not payment and session_id:
        payment = Payment.query.filter_by(stripe_session_id=session_id).first()
    if not payment:
        logger.warning("Stripe event %s for unknown payment (session %s)", event_type, session_id)
        return jsonify(received=True), 200

    if event_type == "checkout.session.completed":
        try:
            payments.settle_payment(payment.id, session.get("amount_total") or 0, provider_ref=session_id)
        except BookingError as exc:
            # acknowledged so Stripe stops retrying; the intent is already marked FAILED
            logger.warning("Payment %s not applied: %s", payment.id, exc.message)
            return jsonify(received=True, applied=False, error=exc.message), 200
    else:
        payments.fail_intent(payment.id, "checkout_expired")
        log_event("PAYMENT_EXPIRED", entity="payment", entity_id=payment.id,
                  metadata={"stripe_session_id": session_id})

    return jsonify(received=True), 200
