from dataclasses import replace
from decimal import Decimal

import pytest

from chapterdesk.errors import InvalidConfiguration
from chapterdesk.pricing import (
    URGENCIES,
    RateConfig,
    estimate_cost,
    pages_for_words,
    split_fees,
)


@pytest.fixture()
def rates():
    return RateConfig.from_config(
        {
            "BASE_RATE_PER_PAGE": "400",
            "LEVEL_MULTIPLIERS": {"masters": "1.0", "phd": "1.3"},
            "WORK_TYPE_MULTIPLIERS": {"coursework": "1.0", "revision": "0.8", "statistics": "1.4"},
            "URGENCY_MULTIPLIERS": {"normal": "1.0", "urgent": "1.5", "very_urgent": "2.0"},
            "PLATFORM_FEE_PERCENTAGE": "5",
            "WRITER_COMMISSION_PERCENTAGE": "90",
        }
    )


def test_phd_urgent_ten_pages_costs_7800_and_splits_exactly(rates):
    estimate = estimate_cost("phd", "coursework", "urgent", 10, rates)

    assert estimate.amount == Decimal("7800.00")
    assert estimate.platform_fee == Decimal("390.00")
    assert estimate.writer_share == Decimal("7020.00")
    assert estimate.admin_share == Decimal("390.00")
    assert estimate.to_dict()["amount"] == "7800.00"


def test_cost_never_decreases_with_urgency(rates):
    amounts = [estimate_cost("masters", "statistics", u, 7, rates).amount for u in URGENCIES]
    assert amounts == sorted(amounts)


@pytest.mark.parametrize("amount", ["0.01", "0.05", "19.99", "333.33", "1234.57", "7800"])
def test_fee_parts_always_sum_to_amount(amount):
    split = split_fees(Decimal(amount), Decimal("5"), Decimal("90"))
    assert split.platform_fee + split.writer_share + split.admin_share == split.amount
    assert split.admin_share >= 0


def test_admin_share_absorbs_rounding():
    # 33.33 at 5% is 1.6665 and at 90% is 29.997; both round half up.
    split = split_fees(Decimal("33.33"), Decimal("5"), Decimal("90"))
    assert split.platform_fee == Decimal("1.67")
    assert split.writer_share == Decimal("30.00")
    assert split.admin_share == Decimal("1.66")


def test_full_commission_leaves_no_admin_share():
    split = split_fees(Decimal("0.05"), Decimal("10"), Decimal("90"))
    assert split.admin_share == Decimal("0.00")
    assert split.platform_fee + split.writer_share == Decimal("0.05")


def test_multiplier_outside_bounds_is_rejected(rates):
    bad = replace(rates, urgency_multipliers={**rates.urgency_multipliers, "urgent": Decimal("7.5")})
    with pytest.raises(InvalidConfiguration):
        estimate_cost("phd", "coursework", "normal", 3, bad)


def test_urgency_multipliers_must_not_decrease(rates):
    inverted = replace(
        rates,
        urgency_multipliers={"normal": Decimal("1.5"), "urgent": Decimal("1.2"), "very_urgent": Decimal("2.0")},
    )
    with pytest.raises(InvalidConfiguration):
        inverted.validate()
    with pytest.raises(InvalidConfiguration):
        estimate_cost("phd", "coursework", "very_urgent", 3, inverted)

    flat = replace(rates, urgency_multipliers={u: Decimal("1.0") for u in URGENCIES})
    assert flat.validate() is flat


@pytest.mark.parametrize("platform, writer", [("-1", "90"), ("5", "101"), ("20", "90")])
def test_bad_percentages_are_rejected(platform, writer):
    with pytest.raises(InvalidConfiguration):
        split_fees(Decimal("100"), Decimal(platform), Decimal(writer))


def test_unknown_option_or_empty_order_is_rejected(rates):
    with pytest.raises(InvalidConfiguration):
        estimate_cost("undergrad", "coursework", "normal", 3, rates)
    with pytest.raises(InvalidConfiguration):
        estimate_cost("phd", "coursework", "normal", 0, rates)


def test_pages_round_up():
    assert pages_for_words(2500) == 10
    assert pages_for_words(2501) == 11
    assert pages_for_words(0) == 0
