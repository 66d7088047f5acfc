"""Chapter pricing and fee split.

Amounts are quantized with ROUND_HALF_UP and the admin share absorbs rounding.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import math

from chapterdesk.errors import InvalidConfiguration

MINOR_UNIT = Decimal("0.01")
HUNDRED = Decimal("100")

LEVELS = ("masters", "phd")
WORK_TYPES = ("coursework", "revision", "statistics")
URGENCIES = ("normal", "urgent", "very_urgent")


def to_decimal(value, what="value"):
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidConfiguration(f"{what} is not a number: {value!r}")


def quantize(value):
    return to_decimal(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_minor(value):
    return int(quantize(value) * 100)


def from_minor(minor):
    if minor is None:
        return None
    return (Decimal(int(minor)) / 100).quantize(MINOR_UNIT)


def pages_for_words(word_count, words_per_page=250):
    if not word_count or word_count <= 0:
        return 0
    return math.ceil(word_count / words_per_page)


@dataclass(frozen=True)
class RateConfig:
    base_rate_per_page: Decimal
    level_multipliers: dict
    work_type_multipliers: dict
    urgency_multipliers: dict
    platform_fee_percentage: Decimal
    writer_commission_percentage: Decimal
    multiplier_min: Decimal = Decimal("0.1")
    multiplier_max: Decimal = Decimal("5.0")
    currency: str = "KES"
    words_per_page: int = 250

    @classmethod
    def from_config(cls, config):
        def mults(key):
            return {k: to_decimal(v, f"{key}[{k}]") for k, v in (config.get(key) or {}).items()}

        return cls(
            base_rate_per_page=to_decimal(config.get("BASE_RATE_PER_PAGE", "400"), "BASE_RATE_PER_PAGE"),
            level_multipliers=mults("LEVEL_MULTIPLIERS"),
            work_type_multipliers=mults("WORK_TYPE_MULTIPLIERS"),
            urgency_multipliers=mults("URGENCY_MULTIPLIERS"),
            platform_fee_percentage=to_decimal(config.get("PLATFORM_FEE_PERCENTAGE", "5"), "PLATFORM_FEE_PERCENTAGE"),
            writer_commission_percentage=to_decimal(
                config.get("WRITER_COMMISSION_PERCENTAGE", "90"), "WRITER_COMMISSION_PERCENTAGE"
            ),
            multiplier_min=to_decimal(config.get("MULTIPLIER_MIN", "0.1"), "MULTIPLIER_MIN"),
            multiplier_max=to_decimal(config.get("MULTIPLIER_MAX", "5.0"), "MULTIPLIER_MAX"),
            currency=config.get("CURRENCY", "KES"),
            words_per_page=int(config.get("WORDS_PER_PAGE") or 250),
        )

    def validate(self):
        if self.base_rate_per_page <= 0:
            raise InvalidConfiguration("Base rate per page must be positive")
        for table_name, table in (
            ("level", self.level_multipliers),
            ("work type", self.work_type_multipliers),
            ("urgency", self.urgency_multipliers),
        ):
            for key, value in table.items():
                if not (self.multiplier_min <= value <= self.multiplier_max):
                    raise InvalidConfiguration(
                        f"{table_name} multiplier for {key!r} is {value}, "
                        f"outside [{self.multiplier_min}, {self.multiplier_max}]"
                    )
        ordered = [self.urgency_multipliers[u] for u in URGENCIES if u in self.urgency_multipliers]
        if ordered != sorted(ordered):
            raise InvalidConfiguration(
                "Urgency multipliers must not decrease from " + " to ".join(URGENCIES)
            )
        validate_percentages(self.platform_fee_percentage, self.writer_commission_percentage)
        return self


@dataclass(frozen=True)
class FeeSplit:
    amount: Decimal
    platform_fee: Decimal
    writer_share: Decimal
    admin_share: Decimal
    platform_fee_percentage: Decimal
    writer_commission_percentage: Decimal


@dataclass(frozen=True)
class Estimate:
    amount: Decimal
    platform_fee: Decimal
    writer_share: Decimal
    admin_share: Decimal
    pages: int
    currency: str
    multipliers: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "writer_share": str(self.writer_share),
            "admin_share": str(self.admin_share),
            "pages": self.pages,
            "currency": self.currency,
            "multipliers": {k: str(v) for k, v in self.multipliers.items()},
        }


def validate_percentages(platform_pct, writer_pct):
    platform_pct = to_decimal(platform_pct, "platform fee percentage")
    writer_pct = to_decimal(writer_pct, "writer commission percentage")
    for label, pct in (("Platform fee", platform_pct), ("Writer commission", writer_pct)):
        if not (0 <= pct <= 100):
            raise InvalidConfiguration(f"{label} percentage {pct} must be between 0 and 100")
    if platform_pct + writer_pct > HUNDRED:
        raise InvalidConfiguration("Platform fee and writer commission exceed 100%")
    return platform_pct, writer_pct


def split_fees(amount, platform_pct, writer_pct):
    platform_pct, writer_pct = validate_percentages(platform_pct, writer_pct)
    amount = quantize(amount)
    platform_fee = quantize(amount * platform_pct / HUNDRED)
    writer_share = quantize(amount * writer_pct / HUNDRED)
    admin_share = amount - writer_share - platform_fee
    if admin_share < 0:
        # Both shares rounded up with no admin cut left to absorb it.
        writer_share += admin_share
        admin_share = Decimal("0.00")
    return FeeSplit(
        amount=amount,
        platform_fee=platform_fee,
        writer_share=writer_share,
        admin_share=admin_share,
        platform_fee_percentage=platform_pct,
        writer_commission_percentage=writer_pct,
    )


def _multiplier(table, key, label):
    if key not in table:
        raise InvalidConfiguration(f"Unknown {label} {key!r}")
    return table[key]


def estimate_cost(level, work_type, urgency, pages, rates):
    rates.validate()
    if pages is None or pages <= 0:
        raise InvalidConfiguration("Page count must be positive")
    level_mult = _multiplier(rates.level_multipliers, level, "level")
    work_type_mult = _multiplier(rates.work_type_multipliers, work_type, "work type")
    urgency_mult = _multiplier(rates.urgency_multipliers, urgency, "urgency")

    amount = quantize(rates.base_rate_per_page * pages * level_mult * work_type_mult * urgency_mult)
    split = split_fees(amount, rates.platform_fee_percentage, rates.writer_commission_percentage)
    return Estimate(
        amount=split.amount,
        platform_fee=split.platform_fee,
        writer_share=split.writer_share,
        admin_share=split.admin_share,
        pages=pages,
        currency=rates.currency,
        multipliers={"level": level_mult, "work_type": work_type_mult, "urgency": urgency_mult},
    )


def current_rates():
    from flask import current_app

    return RateConfig.from_config(current_app.config)
