"""Notification dispatcher: tells customers about issued rewards.

Failures are logged and never propagated: they do not touch the ledger
or the issuance record status. Resending repeats the same code, so a
duplicate notice is harmless.
"""

import logging

from django.utils import timezone

from rewardman.backends import get_notification_backend
from rewardman.models import IssuanceRecord, IssuanceStatus
from rewardman.protocols import NotificationBackend

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Service for reward notifications.

    Uses @classmethod for extensibility (consistent with other services).
    """

    @classmethod
    def notify(cls, record: IssuanceRecord, backend: NotificationBackend | None = None) -> bool:
        """
        Send the reward notice for an issued record.

        Returns:
            True if the backend accepted the notice
        """
        if not record.is_issued:
            logger.warning("Not notifying %s: record is %s", record.idempotency_key, record.status)
            return False

        customer_id = record.account.customer_id
        try:
            backend = backend or get_notification_backend()
            accepted = backend.notify(customer_id, str(record.tier.reward_kind), record.code)
        except Exception:
            logger.warning("Notification for %s failed", record.idempotency_key, exc_info=True)
            return False

        if accepted is False:
            logger.warning("Notification for %s was not accepted", record.idempotency_key)
            return False

        now = timezone.now()
        IssuanceRecord.objects.filter(pk=record.pk).update(notified_at=now)
        record.notified_at = now
        logger.info("Notified %s about tier %d", customer_id, record.tier_id)
        return True

    @classmethod
    def resend(
        cls,
        customer_id: str,
        tier_id: int,
        backend: NotificationBackend | None = None,
    ) -> bool:
        """Resend the notice for an already issued tier."""
        record = (
            IssuanceRecord.objects.select_related("account")
            .filter(account__customer_id=customer_id, tier_id=tier_id, status=IssuanceStatus.ISSUED)
            .first()
        )
        if record is None:
            logger.warning("Nothing to resend: tier %d not issued to %s", tier_id, customer_id)
            return False
        return cls.notify(record, backend=backend)

    @classmethod
    def sweep(cls, limit: int = 100, backend: NotificationBackend | None = None) -> int:
        """Retry notices for issued records never acknowledged. Returns sent count."""
        records = list(
            IssuanceRecord.objects.filter(status=IssuanceStatus.ISSUED, notified_at__isnull=True)
            .select_related("account")
            .order_by("issued_at", "pk")[:limit]
        )
        return sum(1 for record in records if cls.notify(record, backend=backend))
