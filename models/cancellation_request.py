from datetime import datetime
from models.db import db
from models.statuses import CancellationStatus

class CancellationRequest(db.Model):
    __tablename__ = "cancellation_requests"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)

    reason = db.Column(db.String(255), nullable=True)
    refund_amount = db.Column(db.Integer, nullable=False, default=0)
    penalty_percent = db.Column(db.Integer, nullable=False, default=0)

    # sha256 of the single-use decision token; kept after the decision so a replayed link is recognised
    token_hash = db.Column(db.String(128), unique=True, nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default=CancellationStatus.PENDING)
    previous_status = db.Column(db.String(30), nullable=True)

    requested_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    decided_at = db.Column(db.DateTime, nullable=True)
