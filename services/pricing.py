"""
Pricing and promotion rules.

Pure computation over integer amounts in the currency's smallest unit;
nothing here touches the database.
"""
from collections import namedtuple

from models.statuses import DiscountType, PromotionStatus
from services.errors import PromotionError

Quote = namedtuple(
    "Quote",
    ["base_total", "discount", "final_total", "slot_prices", "platform_fee", "net_to_owner"],
)

DEFAULT_PLATFORM_FEE_PERCENT = 5


def round_half_up(numerator: int, denominator: int) -> int:
    """numerator / denominator rounded to the nearest integer, halves away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    sign = -1 if numerator < 0 else 1
    return sign * ((2 * abs(numerator) + denominator) // (2 * denominator))


def validate_promotion(promotion, owner_user_id, base_total, now, usage_count=0,
                       customer_id=None, customer_usage_count=0):
    """Raise PromotionError with the first failing reason, else return None."""
    if promotion.owner_user_id != owner_user_id:
        raise PromotionError(PromotionError.SHOP_MISMATCH, "Promotion code is not valid for this field")
    if promotion.status != PromotionStatus.ACTIVE:
        raise PromotionError(PromotionError.DISABLED, "Promotion is not active")
    if now < promotion.start_at:
        raise PromotionError(PromotionError.NOT_YET_ACTIVE, "Promotion has not started yet")
    if now > promotion.end_at:
        raise PromotionError(PromotionError.EXPIRED, "Promotion has expired")
    if base_total < (promotion.min_order_amount or 0):
        raise PromotionError(
            PromotionError.BELOW_MINIMUM_ORDER,
            f"Order total must be at least {promotion.min_order_amount} to use this promotion",
        )
    if promotion.usage_limit is not None and usage_count >= promotion.usage_limit:
        raise PromotionError(PromotionError.USAGE_LIMIT_REACHED, "Promotion usage limit reached")
    # per-customer limits only apply to signed-in customers
    per_customer = promotion.usage_per_customer
    if customer_id is not None and per_customer is not None and customer_usage_count >= per_customer:
        raise PromotionError(
            PromotionError.CUSTOMER_USAGE_LIMIT_REACHED,
            "You have already used this promotion the maximum number of times",
        )


def compute_discount(promotion, base_total: int) -> int:
    if promotion is None or base_total <= 0:
        return 0

    value = int(promotion.discount_value or 0)
    if promotion.discount_type == DiscountType.PERCENT:
        percent = min(max(value, 0), 100)
        discount = round_half_up(base_total * percent, 100)
        if promotion.max_discount_amount is not None:
            discount = min(discount, promotion.max_discount_amount)
    else:
        discount = max(value, 0)

    return min(discount, base_total)


def split_total(total: int, count: int) -> list:
    """Spread ``total`` over ``count`` slots; earlier slots take the remainder."""
    share, remainder = divmod(total, count)
    return [share + 1 if i < remainder else share for i in range(count)]


def platform_fee_for(final_total: int, fee_percent: int = DEFAULT_PLATFORM_FEE_PERCENT) -> int:
    return round_half_up(final_total * fee_percent, 100)


def quote(base_rate, slot_count, promotion=None, fee_percent=DEFAULT_PLATFORM_FEE_PERCENT) -> Quote:
    """
    Price ``slot_count`` slots at ``base_rate`` each with an optional,
    already validated promotion.
    """
    if not isinstance(base_rate, int) or isinstance(base_rate, bool) or base_rate < 0:
        raise ValueError(f"Invalid base rate {base_rate!r}")
    if not isinstance(slot_count, int) or slot_count < 1:
        raise ValueError(f"Invalid slot count {slot_count!r}")

    base_total = base_rate * slot_count
    discount = compute_discount(promotion, base_total)
    final_total = base_total - discount
    fee = platform_fee_for(final_total, fee_percent)

    return Quote(
        base_total=base_total,
        discount=discount,
        final_total=final_total,
        slot_prices=split_total(final_total, slot_count),
        platform_fee=fee,
        net_to_owner=final_total - fee,
    )
