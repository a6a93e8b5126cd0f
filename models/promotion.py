from datetime import datetime
from models.db import db
from models.statuses import PromotionStatus, DiscountType

class Promotion(db.Model):
    __tablename__ = "promotions"

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    code = db.Column(db.String(40), nullable=False)  # always upper-case
    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(20), nullable=False, default=DiscountType.PERCENT)
    discount_value = db.Column(db.Integer, nullable=False)
    max_discount_amount = db.Column(db.Integer, nullable=True)
    min_order_amount = db.Column(db.Integer, nullable=False, default=0)

    usage_limit = db.Column(db.Integer, nullable=True)  # NULL = unlimited
    usage_per_customer = db.Column(db.Integer, nullable=False, default=1)

    start_at = db.Column(db.DateTime, nullable=False)
    end_at = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PromotionStatus.DRAFT)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("owner_user_id", "code", name="uq_promotion_owner_code"),
    )
