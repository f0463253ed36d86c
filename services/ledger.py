"""Points ledger: idempotent, per-customer serialized balance changes.

Every mutation of a LoyaltyAccount runs through LedgerService.serialized():
a transaction holding the account row lock (select_for_update), with a
version compare-and-swap on write. Contention (stale version, lock errors,
unique-constraint races) is retried LEDGER_CONFLICT_RETRIES times before
surfacing as LEDGER_CONFLICT.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from rewardman.conf import rewardman_settings
from rewardman.events import Event
from rewardman.exceptions import RewardmanError
from rewardman.models import MAX_POINTS, AppliedEvent, EntryType, LedgerEntry, LoyaltyAccount
from rewardman.signals import points_applied

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleAccount(Exception):
    """Account version changed between read and write."""


@dataclass(frozen=True)
class ApplyResult:
    """
    Outcome of LedgerService.apply().

    For a duplicate, applied is False, both balances equal the current
    balance, and replayed_transition holds the (old, new) pair recorded
    when the event was first applied, if it is still in the ledger.
    """

    event: Event
    old_balance: int
    new_balance: int
    applied: bool
    issued_tiers: tuple[int, ...] = ()
    replayed_transition: tuple[int, int] | None = None

    @property
    def duplicate(self) -> bool:
        return not self.applied


class LedgerService:
    """
    Service for points ledger operations.

    Uses @classmethod for extensibility (consistent with other services).
    """

    @classmethod
    def apply(cls, event: Event) -> ApplyResult:
        """
        Apply an event's delta to its customer's balance exactly once.

        The account is created on the first event for a customer.
        Events with delta 0 are recorded for idempotency but leave the
        balance untouched.

        Args:
            event: Normalized event

        Returns:
            ApplyResult

        Raises:
            RewardmanError: LEDGER_CONFLICT after exhausting retries,
                INVALID_EVENT if the delta would overflow the stored totals
        """
        result = cls.serialized(
            event.customer_id,
            lambda account: cls._apply_locked(account, event),
            create=True,
        )
        if result.applied:
            logger.info(
                "Applied %s (%+d) to %s: %d -> %d",
                event.id, event.delta, event.customer_id, result.old_balance, result.new_balance,
            )
            points_applied.send(
                sender=LoyaltyAccount,
                event=event,
                old_balance=result.old_balance,
                new_balance=result.new_balance,
            )
        else:
            logger.debug("Duplicate event %s for %s ignored", event.id, event.customer_id)
        return result

    @classmethod
    def serialized(
        cls,
        customer_id: str,
        operation: Callable[[LoyaltyAccount], T],
        create: bool = False,
    ) -> T:
        """
        Run ``operation(account)`` under the account's critical section.

        The operation runs inside transaction.atomic() with the account
        row locked. It must write through save_versioned(). Contention is
        retried; RewardmanError raised by the operation propagates as is.

        Raises:
            RewardmanError: ACCOUNT_NOT_FOUND (create=False), LEDGER_CONFLICT
        """
        retries = max(1, rewardman_settings.LEDGER_CONFLICT_RETRIES)
        for attempt in range(1, retries + 1):
            try:
                with transaction.atomic():
                    account = cls.lock(customer_id, create=create)
                    return operation(account)
            except (StaleAccount, IntegrityError, OperationalError) as exc:
                logger.warning(
                    "Ledger contention on %s (attempt %d/%d): %s",
                    customer_id, attempt, retries, exc.__class__.__name__,
                )
        raise RewardmanError("LEDGER_CONFLICT", customer_id=customer_id, attempts=retries)

    @classmethod
    def lock(cls, customer_id: str, create: bool = False) -> LoyaltyAccount:
        """
        Get the account with a row-level lock.

        MUST be called inside transaction.atomic().
        """
        if create:
            LoyaltyAccount.objects.get_or_create(customer_id=customer_id)
        try:
            return LoyaltyAccount.objects.select_for_update().get(customer_id=customer_id)
        except LoyaltyAccount.DoesNotExist:
            raise RewardmanError("ACCOUNT_NOT_FOUND", customer_id=customer_id)

    @classmethod
    def save_versioned(cls, account: LoyaltyAccount, **changes) -> None:
        """
        Write ``changes`` only if nobody else wrote the account since it was read.

        Raises:
            StaleAccount: Version mismatch (retried by serialized())
        """
        updated = LoyaltyAccount.objects.filter(pk=account.pk, version=account.version).update(
            version=F("version") + 1,
            updated_at=timezone.now(),
            **changes,
        )
        if not updated:
            raise StaleAccount(account.customer_id)
        for name, value in changes.items():
            setattr(account, name, value)
        account.version += 1

    @classmethod
    def get_account(cls, customer_id: str) -> LoyaltyAccount | None:
        """Get account for customer (no lock)."""
        try:
            return LoyaltyAccount.objects.get(customer_id=customer_id)
        except LoyaltyAccount.DoesNotExist:
            return None

    @classmethod
    def get_entries(cls, customer_id: str, limit: int = 50) -> list[LedgerEntry]:
        """Ledger history for a customer (most recent first)."""
        return list(LedgerEntry.objects.filter(account__customer_id=customer_id)[:limit])

    @classmethod
    def _apply_locked(cls, account: LoyaltyAccount, event: Event) -> ApplyResult:
        issued = tuple(account.issued_tiers)

        if AppliedEvent.objects.filter(account=account, event_id=event.id).exists():
            return ApplyResult(
                event=event,
                old_balance=account.balance,
                new_balance=account.balance,
                applied=False,
                issued_tiers=issued,
                replayed_transition=cls._recorded_transition(account, event.id),
            )

        old_balance = account.balance
        # lifetime_points >= balance, so this bounds both columns
        if account.lifetime_points + event.delta > MAX_POINTS:
            raise RewardmanError(
                "INVALID_EVENT",
                message="Invalid event: points total out of range",
                event_id=event.id,
                customer_id=account.customer_id,
                max_points=MAX_POINTS,
            )

        AppliedEvent.objects.create(
            account=account,
            event_id=event.id,
            kind=event.kind,
            delta=event.delta,
        )

        if event.delta:
            new_balance = old_balance + event.delta
            cls.save_versioned(
                account,
                balance=new_balance,
                lifetime_points=account.lifetime_points + event.delta,
            )
            LedgerEntry.objects.create(
                account=account,
                entry_type=EntryType.EARN,
                points=event.delta,
                balance_after=new_balance,
                reference=event.id,
            )

        limit = rewardman_settings.APPLIED_EVENT_LIMIT
        if limit:
            AppliedEvent.trim_account(account, keep=limit)

        return ApplyResult(
            event=event,
            old_balance=old_balance,
            new_balance=account.balance,
            applied=True,
            issued_tiers=issued,
        )

    @classmethod
    def _recorded_transition(cls, account: LoyaltyAccount, event_id: str) -> tuple[int, int] | None:
        entry = (
            LedgerEntry.objects.filter(
                account=account,
                entry_type=EntryType.EARN,
                reference=event_id,
            )
            .order_by("pk")
            .first()
        )
        if entry is None:
            return None
        return entry.balance_after - entry.points, entry.balance_after
