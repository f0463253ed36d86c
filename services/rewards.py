"""Reward dispatcher: at-most-once reward issuance per (customer, tier).

Flow per crossed tier:
    1. get_or_create the IssuanceRecord (unique per account + tier)
    2. skip unless it is pending and not backing off
    3. call RewardBackend.issue_reward() with the record's idempotency key
    4. success: mark issued and add the tier to account.issued_tiers
       under the account lock, then notify
    5. failure or timeout: keep pending, count the attempt, schedule a
       retry with exponential backoff; give up (failed) after
       ISSUANCE_MAX_ATTEMPTS

Earned points are never touched here.
"""

import logging
from datetime import datetime, timedelta

import httpx
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from rewardman.backends import get_reward_backend
from rewardman.conf import rewardman_settings
from rewardman.exceptions import RewardmanError
from rewardman.models import IssuanceRecord, IssuanceStatus, LoyaltyAccount, issuance_key
from rewardman.protocols import NotificationBackend, RewardBackend
from rewardman.services.ledger import LedgerService
from rewardman.services.notifications import NotificationDispatcher
from rewardman.signals import issuance_failed, reward_issued
from rewardman.tiers import get_tier

logger = logging.getLogger(__name__)

# Outcome unknown: the reward may or may not exist on the platform
TIMEOUT_ERRORS = (TimeoutError, httpx.TimeoutException)


def backoff_delay(attempts: int) -> timedelta:
    """Delay before the next attempt after ``attempts`` failed ones."""
    base = rewardman_settings.ISSUANCE_BACKOFF_SECONDS
    ceiling = rewardman_settings.ISSUANCE_BACKOFF_MAX_SECONDS
    return timedelta(seconds=min(base * 2 ** max(attempts - 1, 0), ceiling))


class RewardDispatcher:
    """
    Service for reward issuance.

    Uses @classmethod for extensibility (consistent with other services).
    """

    @classmethod
    def dispatch(
        cls,
        customer_id: str,
        tier_ids: list[int],
        backend: RewardBackend | None = None,
        notifier: NotificationBackend | None = None,
    ) -> list[IssuanceRecord]:
        """
        Issue rewards for newly crossed tiers, in ascending threshold order.

        Re-entrant: tiers whose record is already issued, failed, or
        backing off are skipped.

        Args:
            customer_id: Customer id
            tier_ids: Tiers returned by crossed_tiers()
            backend: Reward backend (defaults to REWARD_BACKEND)
            notifier: Notification backend (defaults to NOTIFICATION_BACKEND)

        Returns:
            Records attempted in this call
        """
        if not tier_ids:
            return []

        account = LoyaltyAccount.objects.get(customer_id=customer_id)
        backend = backend or get_reward_backend()
        attempted = []

        for tier in sorted((get_tier(t) for t in tier_ids), key=lambda t: t.points_threshold):
            record = cls._claim(account, tier.id)
            if record is None:
                continue
            record = cls.attempt(record, backend=backend, notifier=notifier)
            attempted.append(record)

        return attempted

    @classmethod
    def attempt(
        cls,
        record: IssuanceRecord,
        backend: RewardBackend | None = None,
        notifier: NotificationBackend | None = None,
    ) -> IssuanceRecord:
        """Make one issuance call for a pending record."""
        backend = backend or get_reward_backend()
        tier = record.tier
        customer_id = record.account.customer_id

        try:
            code = backend.issue_reward(
                customer_id,
                tier.id,
                str(tier.reward_kind),
                tier.reward_value,
                record.idempotency_key,
            )
        except TIMEOUT_ERRORS as exc:
            return cls._record_failure(record, f"timeout (outcome unknown): {exc}")
        except Exception as exc:
            return cls._record_failure(record, f"{exc.__class__.__name__}: {exc}")

        if not code:
            return cls._record_failure(record, "backend returned an empty code")

        record = cls._mark_issued(record, str(code))
        if record.is_issued and record.notified_at is None:
            NotificationDispatcher.notify(record, backend=notifier)
        return record

    @classmethod
    def sweep(
        cls,
        limit: int = 100,
        backend: RewardBackend | None = None,
        notifier: NotificationBackend | None = None,
        now: datetime | None = None,
    ) -> dict:
        """
        Retry pending records whose backoff has elapsed.

        Returns:
            {"attempted": int, "issued": int, "failed": int, "pending": int}
        """
        now = now or timezone.now()
        due = list(
            IssuanceRecord.objects.filter(status=IssuanceStatus.PENDING)
            .filter(Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now))
            .select_related("account")
            .order_by("next_attempt_at", "pk")[:limit]
        )
        summary = {"attempted": 0, "issued": 0, "failed": 0, "pending": 0}
        if not due:
            return summary

        backend = backend or get_reward_backend()
        for record in due:
            record = cls.attempt(record, backend=backend, notifier=notifier)
            summary["attempted"] += 1
            summary[record.status] += 1

        logger.info("Issuance sweep: %s", summary)
        return summary

    @classmethod
    def requeue(cls, record: IssuanceRecord) -> IssuanceRecord:
        """Manual intervention: make a failed or backing-off record due now."""
        with transaction.atomic():
            record = IssuanceRecord.objects.select_for_update().get(pk=record.pk)
            if record.is_issued:
                return record
            record.status = IssuanceStatus.PENDING
            record.next_attempt_at = None
            if record.attempts >= rewardman_settings.ISSUANCE_MAX_ATTEMPTS:
                record.attempts = 0
            record.save(update_fields=["status", "next_attempt_at", "attempts", "updated_at"])
        logger.info("Issuance %s requeued", record.idempotency_key)
        return record

    @classmethod
    def failed(cls, limit: int = 100) -> list[IssuanceRecord]:
        """Records that need manual intervention."""
        return list(
            IssuanceRecord.objects.filter(status=IssuanceStatus.FAILED)
            .select_related("account")
            .order_by("-updated_at")[:limit]
        )

    @classmethod
    def _claim(cls, account: LoyaltyAccount, tier_id: int) -> IssuanceRecord | None:
        record, created = IssuanceRecord.objects.get_or_create(
            account=account,
            tier_id=tier_id,
            defaults={"idempotency_key": issuance_key(account.customer_id, tier_id)},
        )
        if record.status != IssuanceStatus.PENDING:
            logger.debug("Issuance %s already %s", record.idempotency_key, record.status)
            return None
        if not created and record.next_attempt_at and record.next_attempt_at > timezone.now():
            logger.debug("Issuance %s backing off until %s", record.idempotency_key, record.next_attempt_at)
            return None
        return record

    @classmethod
    def _mark_issued(cls, record: IssuanceRecord, code: str) -> IssuanceRecord:
        def mark(account: LoyaltyAccount) -> tuple[IssuanceRecord, bool]:
            locked = IssuanceRecord.objects.select_for_update().get(pk=record.pk)
            if locked.is_issued:
                return locked, False
            locked.status = IssuanceStatus.ISSUED
            locked.code = code
            locked.attempts += 1
            locked.issued_at = timezone.now()
            locked.next_attempt_at = None
            locked.last_error = ""
            locked.save()
            if not account.has_tier(locked.tier_id):
                LedgerService.save_versioned(
                    account,
                    issued_tiers=[*account.issued_tiers, locked.tier_id],
                )
            return locked, True

        try:
            locked, changed = LedgerService.serialized(record.account.customer_id, mark)
        except RewardmanError:
            # The reward exists on the platform; the sweep re-calls with the
            # same idempotency key and gets the same code back.
            logger.exception("Could not record issued reward %s", record.idempotency_key)
            return cls._record_failure(record, "issued but not recorded (ledger conflict)")

        if changed:
            logger.info(
                "Issued tier %d to %s (code %s)",
                locked.tier_id, record.account.customer_id, locked.code,
            )
            reward_issued.send(sender=IssuanceRecord, record=locked)
        return locked

    @classmethod
    def _record_failure(cls, record: IssuanceRecord, error: str) -> IssuanceRecord:
        max_attempts = rewardman_settings.ISSUANCE_MAX_ATTEMPTS

        with transaction.atomic():
            locked = IssuanceRecord.objects.select_for_update().select_related("account").get(pk=record.pk)
            if locked.status != IssuanceStatus.PENDING:
                return locked
            locked.attempts += 1
            locked.last_error = error[:2000]
            if locked.attempts >= max_attempts:
                locked.status = IssuanceStatus.FAILED
                locked.next_attempt_at = None
            else:
                locked.next_attempt_at = timezone.now() + backoff_delay(locked.attempts)
            locked.save()

        if locked.status == IssuanceStatus.FAILED:
            logger.error(
                "Issuance %s failed after %d attempts, manual intervention needed: %s",
                locked.idempotency_key, locked.attempts, error,
            )
            issuance_failed.send(sender=IssuanceRecord, record=locked)
        else:
            logger.warning(
                "Issuance %s attempt %d/%d failed, retry at %s: %s",
                locked.idempotency_key, locked.attempts, max_attempts, locked.next_attempt_at, error,
            )
        return locked
