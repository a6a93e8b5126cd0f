import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.promotion import Promotion
from models.statuses import BookingStatus, DiscountType, PromotionStatus
from services.errors import NotFoundError, PromotionError, ValidationError, ConflictError

logger = logging.getLogger(__name__)


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def usage_count(promotion_id, customer_id=None) -> int:
    """Bookings that currently consume a usage of the promotion."""
    q = db.session.query(func.count(Booking.id)).filter(
        Booking.promotion_id == promotion_id,
        Booking.status.in_(BookingStatus.COUNTS_FOR_USAGE),
    )
    if customer_id is not None:
        q = q.filter(Booking.customer_user_id == customer_id)
    return q.scalar() or 0


def lock_promotion_for(owner_user_id, code):
    """
    Find an owner's promotion by code and lock its row for the rest of
    the transaction, so concurrent checkouts count usage one at a time.
    """
    code = normalize_code(code)
    if not code:
        return None

    promotion = (
        Promotion.query
        .filter_by(owner_user_id=owner_user_id, code=code)
        .with_for_update()
        .first()
    )
    if promotion:
        return promotion

    if Promotion.query.filter_by(code=code).first():
        raise PromotionError(PromotionError.SHOP_MISMATCH, "Promotion code is not valid for this field")
    raise PromotionError(PromotionError.NOT_FOUND, "Promotion code not found")


def current_status(promotion, now=None) -> str:
    now = now or datetime.utcnow()
    if promotion.status in (PromotionStatus.DRAFT, PromotionStatus.DISABLED):
        return promotion.status
    if now < promotion.start_at:
        return "SCHEDULED"
    if now > promotion.end_at:
        return "EXPIRED"
    return PromotionStatus.ACTIVE


def promotion_to_dict(promotion, now=None) -> dict:
    return {
        "id": promotion.id,
        "code": promotion.code,
        "title": promotion.title,
        "description": promotion.description,
        "discount_type": promotion.discount_type,
        "discount_value": promotion.discount_value,
        "max_discount_amount": promotion.max_discount_amount,
        "min_order_amount": promotion.min_order_amount,
        "usage_limit": promotion.usage_limit,
        "usage_per_customer": promotion.usage_per_customer,
        "usage_count": usage_count(promotion.id),
        "start_at": promotion.start_at.isoformat(),
        "end_at": promotion.end_at.isoformat(),
        "status": promotion.status,
        "current_status": current_status(promotion, now),
    }


def _parse_datetime(value, name):
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}. Use ISO e.g. 2026-01-20T18:00:00")


def _optional_int(data, name):
    value = data.get(name)
    if value is None or value == "":
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if value < 0:
        raise ValidationError(f"{name} must not be negative")
    return value


def create_promotion(owner_user_id, data: dict) -> Promotion:
    code = normalize_code(data.get("code"))
    title = (data.get("title") or "").strip()
    if not code or not title:
        raise ValidationError("code and title are required")

    discount_type = (data.get("discount_type") or DiscountType.PERCENT).strip().upper()
    if discount_type not in (DiscountType.PERCENT, DiscountType.FIXED):
        raise ValidationError("discount_type must be PERCENT or FIXED")

    value = _optional_int(data, "discount_value")
    if not value:
        raise ValidationError("discount_value must be greater than 0")
    if discount_type == DiscountType.PERCENT and value > 100:
        raise ValidationError("Percent discount cannot exceed 100")

    start_at = _parse_datetime(data.get("start_at"), "start_at")
    end_at = _parse_datetime(data.get("end_at"), "end_at")
    if end_at <= start_at:
        raise ValidationError("end_at must be after start_at")

    status = (data.get("status") or PromotionStatus.DRAFT).strip().upper()
    if status not in PromotionStatus.ALL:
        raise ValidationError("Invalid promotion status")

    per_customer = _optional_int(data, "usage_per_customer")
    promotion = Promotion(
        owner_user_id=owner_user_id,
        code=code,
        title=title,
        description=(data.get("description") or "").strip() or None,
        discount_type=discount_type,
        discount_value=value,
        max_discount_amount=_optional_int(data, "max_discount_amount"),
        min_order_amount=_optional_int(data, "min_order_amount") or 0,
        usage_limit=_optional_int(data, "usage_limit"),
        usage_per_customer=per_customer if per_customer is not None else 1,
        start_at=start_at,
        end_at=end_at,
        status=status,
    )
    db.session.add(promotion)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Promotion code {code} already exists")
    return promotion


def list_promotions(owner_user_id):
    return (
        Promotion.query
        .filter_by(owner_user_id=owner_user_id)
        .order_by(Promotion.created_at.desc())
        .all()
    )


def update_promotion_status(owner_user_id, promotion_id, new_status, now=None) -> Promotion:
    now = now or datetime.utcnow()
    new_status = (new_status or "").strip().upper()
    if new_status not in PromotionStatus.ALL:
        raise ValidationError("Invalid promotion status")

    promotion = Promotion.query.get(promotion_id)
    if not promotion or promotion.owner_user_id != owner_user_id:
        raise NotFoundError("Promotion not found")

    if new_status == PromotionStatus.DRAFT and promotion.status != PromotionStatus.DRAFT:
        raise ValidationError("A published promotion cannot go back to draft")
    if new_status == PromotionStatus.ACTIVE and now > promotion.end_at:
        raise ValidationError("Cannot activate an expired promotion")

    promotion.status = new_status
    return promotion
