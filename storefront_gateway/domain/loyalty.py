"""Loyalty points policy: tiers, purchase accrual, and expiration planning"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import List, Optional, Sequence

from storefront_gateway.domain.models import LoyaltyEntryStatus, LoyaltyTransaction

# (minimum lifetime points, tier), highest first
TIER_THRESHOLDS = [
    (10_000, 5),
    (5_000, 4),
    (2_000, 3),
    (500, 2),
]


def calculate_tier(lifetime_points: int) -> int:
    """
    Tier is a pure function of lifetime points.

    Tiers: 1 starter, 2 bronze (500), 3 silver (2000), 4 gold (5000), 5 VIP (10000)
    """
    for threshold, tier in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            return tier
    return 1


def points_for_amount(amount: Decimal, points_per_unit: Decimal) -> int:
    """Points earned for a purchase, rounded down to whole points"""
    points = (Decimal(amount) * Decimal(points_per_unit)).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(points), 0)


def min_creditable_amount(points_per_unit: Decimal) -> Optional[Decimal]:
    """Smallest whole-cent amount that earns at least one point, None when no amount does"""
    rate = Decimal(points_per_unit)
    if rate <= 0:
        return None
    return (Decimal(1) / rate).quantize(Decimal("0.01"), rounding=ROUND_CEILING)


@dataclass
class ExpirationPlan:
    """Entries to flip to EXPIRED and the debit to append for them"""

    expired_ids: List[str]
    expired_points: int
    debit_points: int

    @property
    def is_empty(self) -> bool:
        return not self.expired_ids


def plan_expiration(
    entries: Sequence[LoyaltyTransaction],
    balance: int,
    now: datetime,
) -> ExpirationPlan:
    """
    Select ACTIVE credits whose expiry has passed.

    The debit is capped at the current balance: points already spent are
    not charged a second time when their credit lapses.
    """
    expired = [
        e
        for e in entries
        if e.status == LoyaltyEntryStatus.ACTIVE
        and e.amount > 0
        and e.expires_at is not None
        and e.expires_at <= now
    ]
    expired_points = sum(e.amount for e in expired)

    return ExpirationPlan(
        expired_ids=[e.id for e in expired],
        expired_points=expired_points,
        debit_points=min(expired_points, max(balance, 0)),
    )
