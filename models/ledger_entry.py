"""LedgerEntry model: append-only audit trail of balance changes."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class EntryType(models.TextChoices):
    EARN = "earn", _("Earn")
    REDEEM = "redeem", _("Redeem")


class LedgerEntry(models.Model):
    """
    Immutable record of a balance change.

    Every earn and redemption is logged here. Entries are append-only.
    The sum of ``points`` over an account equals its balance.
    """

    account = models.ForeignKey(
        "rewardman.LoyaltyAccount",
        on_delete=models.CASCADE,
        related_name="entries",
        verbose_name=_("account"),
    )
    entry_type = models.CharField(
        _("type"),
        max_length=20,
        choices=EntryType.choices,
    )
    points = models.IntegerField(
        _("points"),
        help_text=_("Positive for earn, negative for redemption"),
    )
    balance_after = models.IntegerField(_("balance after"))
    reference = models.CharField(
        _("reference"),
        max_length=255,
        blank=True,
        help_text=_("Event id or redeemed product"),
    )
    created_at = models.DateTimeField(_("created at"), auto_now_add=True, db_index=True)

    class Meta:
        db_table = "rewardman_ledger_entry"
        verbose_name = _("ledger entry")
        verbose_name_plural = _("ledger entries")
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(fields=["account", "-created_at"], name="rewardman_l_account_3c9d2b_idx"),
        ]

    def __str__(self):
        sign = "+" if self.points > 0 else ""
        return f"{sign}{self.points}pts ({self.reference})"
