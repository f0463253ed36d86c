"""LoyaltyAccount model: per-customer points balance and reward state."""

from django.db import models
from django.utils.translation import gettext_lazy as _

# Largest value a PositiveIntegerField holds on every supported database
MAX_POINTS = 2_147_483_647


class LoyaltyAccount(models.Model):
    """
    Customer loyalty account.

    One account per customer id, created on the first event and never
    deleted. All mutation goes through LedgerService (earn) and
    RedemptionService (spend), under a row lock.

    issued_tiers holds every tier id ever issued to the account. It only
    grows: redemption never removes a tier from it.
    """

    customer_id = models.CharField(
        _("customer id"),
        max_length=100,
        unique=True,
        help_text=_("Commerce platform customer id"),
    )

    balance = models.PositiveIntegerField(
        _("points balance"),
        default=0,
        help_text=_("Points available for redemption"),
    )
    lifetime_points = models.PositiveIntegerField(
        _("lifetime points"),
        default=0,
        help_text=_("Total points ever earned (never decreases)"),
    )

    issued_tiers = models.JSONField(
        _("issued tiers"),
        default=list,
        blank=True,
        help_text=_("Tier ids issued to this account, ever"),
    )
    entitlement_consumed = models.BooleanField(
        _("entitlement consumed"),
        default=False,
        help_text=_("Free product entitlement already redeemed"),
    )

    # Optimistic concurrency check on top of the row lock
    version = models.PositiveIntegerField(_("version"), default=0)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "rewardman_account"
        verbose_name = _("loyalty account")
        verbose_name_plural = _("loyalty accounts")

    def __str__(self):
        return f"{self.customer_id}: {self.balance}pts"

    def has_tier(self, tier_id: int) -> bool:
        return tier_id in self.issued_tiers
