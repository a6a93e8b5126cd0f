from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    """Append-only trail of reservation events (reserve, settle, cancel, sweep)."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # None for guests and background sweeps
    action = db.Column(db.String(80), nullable=False)  # BOOKING_RESERVE, PAYMENT_SETTLED, HOLDS_RELEASED ...
    entity = db.Column(db.String(80), nullable=True)   # booking, payment, promotion, field
    entity_id = db.Column(db.String(80), nullable=True)  # booking code or row id

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )
