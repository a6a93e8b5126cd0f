from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from models.statuses import DiscountType, PromotionStatus
from services import pricing
from services.errors import PromotionError

NOW = datetime(2030, 1, 1, 8, 0)


def promo(**overrides):
    values = dict(
        owner_user_id=1,
        discount_type=DiscountType.PERCENT,
        discount_value=10,
        max_discount_amount=None,
        min_order_amount=0,
        usage_limit=None,
        usage_per_customer=1,
        start_at=NOW - timedelta(days=1),
        end_at=NOW + timedelta(days=1),
        status=PromotionStatus.ACTIVE,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_fixed_promotion_example():
    p = promo(discount_type=DiscountType.FIXED, discount_value=50_000, min_order_amount=200_000)
    pricing.validate_promotion(p, 1, 300_000, NOW)

    q = pricing.quote(100_000, 3, p)

    assert q.base_total == 300_000
    assert q.discount == 50_000
    assert q.final_total == 250_000
    assert q.slot_prices == [83_334, 83_333, 83_333]
    assert sum(q.slot_prices) == q.final_total


@pytest.mark.parametrize("rate,count", [(1, 1), (99_999, 7), (100_000, 3), (33, 10), (0, 4)])
def test_slot_prices_always_sum_to_final_total(rate, count):
    q = pricing.quote(rate, count, promo(discount_value=17))
    assert sum(q.slot_prices) == q.final_total
    assert q.final_total + q.discount == q.base_total
    assert q.slot_prices == sorted(q.slot_prices, reverse=True)


def test_percent_discount_never_exceeds_total():
    # stored value above 100 is clamped
    q = pricing.quote(50_000, 2, promo(discount_value=150))
    assert q.discount == 100_000
    assert q.final_total == 0
    assert q.platform_fee == 0


def test_percent_discount_respects_cap_and_rounds_half_up():
    assert pricing.quote(100_000, 3, promo(discount_value=20, max_discount_amount=45_000)).discount == 45_000
    # 15% of 1_010 = 151.5 -> 152
    assert pricing.compute_discount(promo(discount_value=15), 1_010) == 152


def test_fixed_discount_capped_by_base_total():
    q = pricing.quote(10_000, 1, promo(discount_type=DiscountType.FIXED, discount_value=25_000))
    assert q.discount == 10_000
    assert q.final_total == 0


def test_platform_fee_and_net():
    q = pricing.quote(100_000, 2)
    assert q.platform_fee == 10_000
    assert q.net_to_owner == 190_000

    q = pricing.quote(1_010, 1, fee_percent=5)
    # 50.5 rounds up
    assert q.platform_fee == 51
    assert q.net_to_owner == 959


@pytest.mark.parametrize("rate,count", [(-1, 1), (100, 0), ("100", 1), (1.5, 2)])
def test_invalid_rate_data_is_a_programmer_error(rate, count):
    with pytest.raises(ValueError):
        pricing.quote(rate, count)


def test_round_half_up():
    assert pricing.round_half_up(5, 2) == 3
    assert pricing.round_half_up(4, 3) == 1
    assert pricing.round_half_up(-5, 2) == -3


@pytest.mark.parametrize("overrides,kwargs,reason", [
    ({"owner_user_id": 2}, {}, PromotionError.SHOP_MISMATCH),
    ({"status": PromotionStatus.DISABLED}, {}, PromotionError.DISABLED),
    ({"status": PromotionStatus.DRAFT}, {}, PromotionError.DISABLED),
    ({"start_at": NOW + timedelta(hours=1)}, {}, PromotionError.NOT_YET_ACTIVE),
    ({"end_at": NOW - timedelta(hours=1)}, {}, PromotionError.EXPIRED),
    ({"min_order_amount": 500_000}, {}, PromotionError.BELOW_MINIMUM_ORDER),
    ({"usage_limit": 3}, {"usage_count": 3}, PromotionError.USAGE_LIMIT_REACHED),
    ({}, {"customer_id": 9, "customer_usage_count": 1}, PromotionError.CUSTOMER_USAGE_LIMIT_REACHED),
])
def test_promotion_rejection_reasons(overrides, kwargs, reason):
    with pytest.raises(PromotionError) as exc:
        pricing.validate_promotion(promo(**overrides), 1, 300_000, NOW, **kwargs)
    assert exc.value.reason == reason
    assert exc.value.to_dict()["reason"] == reason


def test_per_customer_limit_ignored_for_guests():
    pricing.validate_promotion(promo(), 1, 300_000, NOW, customer_id=None, customer_usage_count=5)
