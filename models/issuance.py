"""IssuanceRecord model: one reward grant attempt per (customer, tier)."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class IssuanceStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    ISSUED = "issued", _("Issued")
    FAILED = "failed", _("Failed")


def issuance_key(customer_id: str, tier_id: int) -> str:
    """Idempotency key passed to the reward backend."""
    return f"rewardman:{customer_id}:{tier_id}"


class IssuanceRecord(models.Model):
    """
    Durable record of a reward grant for one (customer, tier) pair.

    Lifecycle: pending -> issued (terminal), or pending -> failed after
    ISSUANCE_MAX_ATTEMPTS. Failed records need manual intervention.
    """

    account = models.ForeignKey(
        "rewardman.LoyaltyAccount",
        on_delete=models.CASCADE,
        related_name="issuances",
        verbose_name=_("account"),
    )
    tier_id = models.PositiveSmallIntegerField(_("tier"))
    idempotency_key = models.CharField(_("idempotency key"), max_length=255, unique=True)

    status = models.CharField(
        _("status"),
        max_length=20,
        choices=IssuanceStatus.choices,
        default=IssuanceStatus.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(_("attempts"), default=0)
    next_attempt_at = models.DateTimeField(_("next attempt at"), null=True, blank=True)
    last_error = models.TextField(_("last error"), blank=True)

    code = models.CharField(
        _("code"),
        max_length=255,
        blank=True,
        help_text=_("Discount code or entitlement marker"),
    )
    issued_at = models.DateTimeField(_("issued at"), null=True, blank=True)
    notified_at = models.DateTimeField(_("notified at"), null=True, blank=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "rewardman_issuance"
        verbose_name = _("issuance record")
        verbose_name_plural = _("issuance records")
        ordering = ["account_id", "tier_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "tier_id"],
                name="rewardman_unique_issuance_per_tier",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="rewardman_i_status_8e4b71_idx"),
        ]

    def __str__(self):
        return f"{self.account.customer_id}:tier{self.tier_id} [{self.status}]"

    @property
    def is_issued(self) -> bool:
        return self.status == IssuanceStatus.ISSUED

    @property
    def tier(self):
        from rewardman.tiers import get_tier

        return get_tier(self.tier_id)
