"""
AppliedEvent model: idempotency guard for inbound loyalty events.

Stores event ids already applied to an account so that a redelivered
event never contributes to the balance twice.
"""

from datetime import timedelta

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class AppliedEvent(models.Model):
    """
    Event id applied to an account.

    Retention is bounded (APPLIED_EVENT_LIMIT per account and
    EVENT_RETENTION_DAYS overall). A redelivery of an event older than
    the retention horizon is not recognized as a duplicate.
    """

    account = models.ForeignKey(
        "rewardman.LoyaltyAccount",
        on_delete=models.CASCADE,
        related_name="applied_events",
        verbose_name=_("account"),
    )
    event_id = models.CharField(_("event id"), max_length=255)
    kind = models.CharField(_("kind"), max_length=30)
    delta = models.IntegerField(_("delta"))
    applied_at = models.DateTimeField(_("applied at"), auto_now_add=True, db_index=True)

    class Meta:
        db_table = "rewardman_applied_event"
        verbose_name = _("applied event")
        verbose_name_plural = _("applied events")
        constraints = [
            models.UniqueConstraint(
                fields=["account", "event_id"],
                name="rewardman_unique_event_per_account",
            ),
        ]
        indexes = [
            models.Index(fields=["account", "-applied_at"], name="rewardman_a_account_6a1f0e_idx"),
        ]

    def __str__(self):
        return f"{self.kind}:{self.event_id[:20]}"

    @classmethod
    def trim_account(cls, account, keep: int) -> int:
        """Keep only the ``keep`` most recent event ids of an account."""
        if keep <= 0:
            return 0
        stale = list(
            cls.objects.filter(account=account)
            .order_by("-applied_at", "-pk")
            .values_list("pk", flat=True)[keep:]
        )
        if not stale:
            return 0
        deleted, _ = cls.objects.filter(pk__in=stale).delete()
        return deleted

    @classmethod
    def trim_all(cls, keep: int) -> tuple[int, int]:
        """
        Apply trim_account() to every account over the limit.

        Returns:
            (accounts trimmed, event ids deleted)
        """
        if keep <= 0:
            return 0, 0
        over_limit = (
            cls.objects.values("account_id")
            .annotate(held=models.Count("pk"))
            .filter(held__gt=keep)
            .values_list("account_id", flat=True)
        )
        accounts = deleted = 0
        for account_id in list(over_limit):
            deleted += cls.trim_account(account_id, keep=keep)
            accounts += 1
        return accounts, deleted

    @classmethod
    def cleanup_old_events(cls, days: int | None = None):
        """Remove event ids older than N days."""
        if days is None:
            from rewardman.conf import rewardman_settings
            days = rewardman_settings.EVENT_RETENTION_DAYS
        cutoff = timezone.now() - timedelta(days=days)
        return cls.objects.filter(applied_at__lt=cutoff).delete()
