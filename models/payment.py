from datetime import datetime
from models.db import db
from models.statuses import PaymentStatus, PaymentMethod

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    method = db.Column(db.String(20), nullable=False, default=PaymentMethod.CARD)
    provider = db.Column(db.String(20), nullable=True)  # STRIPE for card checkouts
    amount = db.Column(db.Integer, nullable=False)   # smallest unit
    currency = db.Column(db.String(10), nullable=False, default="NPR")

    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)
    stripe_session_id = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
