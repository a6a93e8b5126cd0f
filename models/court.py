from datetime import datetime
from models.db import db

class Court(db.Model):
    """One interchangeable playing unit of a field."""
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    field_id = db.Column(db.Integer, db.ForeignKey("fields.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    field = db.relationship("Field", back_populates="courts")

    __table_args__ = (
        db.UniqueConstraint("field_id", "number", name="uq_court_number_per_field"),
    )
