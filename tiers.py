"""
Reward tier table and threshold evaluation.

The tier table is fixed. A tier is crossed by a balance transition when
``old_balance < threshold <= new_balance``, and fires at most once per
account: tiers already issued are never returned again, even after a
redemption drops the balance below the threshold and it rises again.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from django.db import models
from django.utils.translation import gettext_lazy as _


class RewardKind(models.TextChoices):
    """What a tier grants."""

    PERCENT_DISCOUNT = "percent_discount", _("Percent discount")
    FREE_SHIPPING = "free_shipping", _("Free shipping")
    FREE_PRODUCT = "free_product", _("Free product entitlement")


@dataclass(frozen=True)
class RewardTier:
    """Static reward tier."""

    id: int
    points_threshold: int
    reward_kind: str
    reward_value: int
    label: str

    @property
    def is_entitlement(self) -> bool:
        return self.reward_kind == RewardKind.FREE_PRODUCT


TIERS: tuple[RewardTier, ...] = (
    RewardTier(1, 500, RewardKind.PERCENT_DISCOUNT, 20, "20% Discount"),
    RewardTier(2, 1000, RewardKind.PERCENT_DISCOUNT, 40, "40% Discount"),
    RewardTier(3, 1500, RewardKind.FREE_SHIPPING, 100, "Free Shipping"),
    RewardTier(4, 2000, RewardKind.FREE_PRODUCT, 1, "Free Product"),
)

FREE_PRODUCT_TIER = next(t for t in TIERS if t.is_entitlement)

# Points consumed by a free product redemption
REDEMPTION_COST = FREE_PRODUCT_TIER.points_threshold


def get_tier(tier_id: int) -> RewardTier:
    """Look up a tier by id."""
    from rewardman.exceptions import RewardmanError

    for tier in TIERS:
        if tier.id == tier_id:
            return tier
    raise RewardmanError("UNKNOWN_TIER", tier_id=tier_id)


def crossed_tiers(
    old_balance: int,
    new_balance: int,
    issued_tiers: Iterable[int],
    tiers: Iterable[RewardTier] = TIERS,
) -> list[int]:
    """
    Tiers newly crossed by a balance transition, ascending by threshold.

    Pure function: no I/O, no mutation. ``tiers`` may be given in any order.

    Args:
        old_balance: Balance before the change
        new_balance: Balance after the change
        issued_tiers: Tier ids already issued to the account (ever)
        tiers: Tier table (defaults to TIERS)

    Returns:
        List of tier ids
    """
    issued = set(issued_tiers)
    return [
        tier.id
        for tier in sorted(tiers, key=lambda t: t.points_threshold)
        if old_balance < tier.points_threshold <= new_balance and tier.id not in issued
    ]


def tier_progress(balance: int, issued_tiers: Iterable[int]) -> list[dict]:
    """Per-tier summary for the account query surface."""
    issued = set(issued_tiers)
    return [
        {
            "tier_id": tier.id,
            "threshold": tier.points_threshold,
            "reward": tier.label,
            "reward_kind": str(tier.reward_kind),
            "achieved": tier.id in issued or balance >= tier.points_threshold,
            "issued": tier.id in issued,
        }
        for tier in sorted(TIERS, key=lambda t: t.points_threshold)
    ]
