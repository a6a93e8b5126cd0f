from datetime import datetime
from models.db import db
from models.statuses import BookingStatus, BookingSlotStatus, PaymentStatus

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    booking_code = db.Column(db.String(20), unique=True, nullable=False, index=True)

    field_id = db.Column(db.Integer, db.ForeignKey("fields.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # NULL for guest bookings
    customer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(120), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(30), nullable=True)

    # smallest unit
    base_total = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    final_total = db.Column(db.Integer, nullable=False, default=0)
    platform_fee = db.Column(db.Integer, nullable=False, default=0)
    net_to_owner = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(30), nullable=False, default=BookingStatus.PENDING, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)

    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True, index=True)
    promotion_code = db.Column(db.String(40), nullable=True)

    checkin_code = db.Column(db.String(12), nullable=True)
    checkin_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    slots = db.relationship(
        "BookingSlot",
        back_populates="booking",
        order_by="(BookingSlot.play_date, BookingSlot.start_time)",
        cascade="all, delete-orphan",
    )


class BookingSlot(db.Model):
    __tablename__ = "booking_slots"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False)

    play_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    price = db.Column(db.Integer, nullable=False, default=0)  # share of final_total
    status = db.Column(db.String(20), nullable=False, default=BookingSlotStatus.PENDING)

    booking = db.relationship("Booking", back_populates="slots")

    __table_args__ = (
        db.UniqueConstraint("booking_id", "play_date", "start_time", "end_time", name="uq_booking_slot_window"),
    )
