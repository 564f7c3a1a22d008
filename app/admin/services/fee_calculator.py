"""
Discount tiers and monthly fee calculation.

Money is handled as Decimal and quantized to cents with ROUND_HALF_UP,
the same precision as the Numeric(10, 2) columns it is stored in.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Union

from app.core.exceptions import InvalidConfigurationError

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")

Amount = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class DiscountTier:
    min_shifts: int
    discount_percentage: Decimal


def to_money(value: Amount) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _percentage(value: Optional[Amount], field: str) -> Optional[Decimal]:
    if value is None:
        return None
    percentage = Decimal(str(value))
    if percentage < 0 or percentage > HUNDRED:
        raise InvalidConfigurationError(
            "Discount percentage must be between 0 and 100",
            {"field": field, "value": str(value)},
        )
    return percentage


def build_discount_tiers(
    num_shifts: int,
    discount_2_shifts: Optional[Amount] = None,
    discount_3_shifts: Optional[Amount] = None,
    discount_all_shifts: Optional[Amount] = None,
) -> List[DiscountTier]:
    """
    Turn the "2 shifts / 3 shifts / all shifts" discount form into tiers.

    Zero or missing percentages produce no tier. The "all shifts" entry is
    keyed by ``num_shifts`` and overrides a 2- or 3-shift entry that lands
    on the same threshold.
    """
    p2 = _percentage(discount_2_shifts, "discount_2_shifts")
    p3 = _percentage(discount_3_shifts, "discount_3_shifts")
    p_all = _percentage(discount_all_shifts, "discount_all_shifts")

    if num_shifts < 2 and any(p for p in (p2, p3, p_all)):
        raise InvalidConfigurationError(
            "Discounts are not applicable with fewer than 2 shifts",
            {"num_shifts": num_shifts},
        )

    if num_shifts < 3 and p3:
        raise InvalidConfigurationError(
            "Discount for 3 shifts requires at least 3 shifts configured",
            {"num_shifts": num_shifts},
        )

    tiers: Dict[int, Decimal] = {}
    if p2:
        tiers[2] = p2
    if p3:
        tiers[3] = p3
    if p_all:
        tiers[num_shifts] = p_all

    return [DiscountTier(min_shifts=k, discount_percentage=v) for k, v in sorted(tiers.items())]


def validate_discount_tiers(num_shifts: int, tiers: Iterable[DiscountTier]) -> None:
    """Пороги уникальны и не превышают число настроенных смен"""
    seen = set()
    for tier in tiers:
        if tier.min_shifts < 1 or tier.min_shifts > num_shifts:
            raise InvalidConfigurationError(
                f"Discount threshold {tier.min_shifts} is outside 1..{num_shifts}",
                {"min_shifts": tier.min_shifts, "num_shifts": num_shifts},
            )
        if tier.min_shifts in seen:
            raise InvalidConfigurationError(
                f"Duplicate discount threshold {tier.min_shifts}",
                {"min_shifts": tier.min_shifts},
            )
        seen.add(tier.min_shifts)


def find_discount(
    selected_count: int, tiers: Iterable[DiscountTier]
) -> Optional[DiscountTier]:
    """Ровное совпадение порога с количеством выбранных смен"""
    for tier in tiers:
        if tier.min_shifts == selected_count:
            return tier
    return None


def compute_monthly_fee(
    selected_fees: Iterable[Amount],
    selected_count: int,
    tiers: Iterable[DiscountTier],
) -> Decimal:
    """
    Sum the selected shifts' base fees and apply the tier whose threshold
    equals ``selected_count`` exactly; without a match the sum is returned.

    >>> compute_monthly_fee([100, 150], 2, [DiscountTier(2, Decimal("10"))])
    Decimal('225.00')
    """
    total = sum((Decimal(str(fee)) for fee in selected_fees), Decimal("0"))

    tier = find_discount(selected_count, tiers)
    if tier is not None:
        total = total * (1 - Decimal(str(tier.discount_percentage)) / HUNDRED)

    return total.quantize(CENTS, rounding=ROUND_HALF_UP)
