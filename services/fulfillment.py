"""Fulfillment dispatcher: places the free product order after a redemption.

The FulfillmentOrder row is written in the redemption transaction; the
platform call happens after commit. A failed or timed out call keeps the
order pending with the same idempotency key and exponential backoff, so
the sweep retries it. The redemption itself is never rolled back.
"""

import logging
from datetime import datetime

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from rewardman.backends import get_fulfillment_backend
from rewardman.conf import rewardman_settings
from rewardman.models import FulfillmentOrder, FulfillmentStatus
from rewardman.protocols import FulfillmentBackend
from rewardman.services.rewards import TIMEOUT_ERRORS, backoff_delay
from rewardman.signals import free_product_ordered, fulfillment_failed

logger = logging.getLogger(__name__)


class FulfillmentDispatcher:
    """
    Service for free product orders.

    Uses @classmethod for extensibility (consistent with other services).
    """

    @classmethod
    def fulfill(cls, customer_id: str, backend: FulfillmentBackend | None = None) -> FulfillmentOrder | None:
        """
        Place the customer's pending free product order, if any.

        Returns:
            The order (in whatever state it ended up), or None
        """
        order = cls.get_order(customer_id)
        if order is None or order.status != FulfillmentStatus.PENDING:
            return order
        return cls.attempt(order, backend=backend)

    @classmethod
    def attempt(cls, order: FulfillmentOrder, backend: FulfillmentBackend | None = None) -> FulfillmentOrder:
        """Make one order call for a pending record."""
        backend = backend or get_fulfillment_backend()
        customer_id = order.account.customer_id

        try:
            order_ref = backend.create_free_product_order(customer_id, order.product_ref, order.idempotency_key)
        except TIMEOUT_ERRORS as exc:
            return cls._record_failure(order, f"timeout (outcome unknown): {exc}")
        except Exception as exc:
            return cls._record_failure(order, f"{exc.__class__.__name__}: {exc}")

        if not order_ref:
            return cls._record_failure(order, "backend returned an empty order id")
        return cls._mark_fulfilled(order, str(order_ref))

    @classmethod
    def sweep(
        cls,
        limit: int = 100,
        backend: FulfillmentBackend | None = None,
        now: datetime | None = None,
    ) -> dict:
        """
        Retry pending orders whose backoff has elapsed.

        Returns:
            {"attempted": int, "fulfilled": int, "failed": int, "pending": int}
        """
        now = now or timezone.now()
        due = list(
            FulfillmentOrder.objects.filter(status=FulfillmentStatus.PENDING)
            .filter(Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now))
            .select_related("account")
            .order_by("next_attempt_at", "pk")[:limit]
        )
        summary = {"attempted": 0, "fulfilled": 0, "failed": 0, "pending": 0}
        if not due:
            return summary

        backend = backend or get_fulfillment_backend()
        for order in due:
            order = cls.attempt(order, backend=backend)
            summary["attempted"] += 1
            summary[order.status] += 1

        logger.info("Fulfillment sweep: %s", summary)
        return summary

    @classmethod
    def requeue(cls, order: FulfillmentOrder) -> FulfillmentOrder:
        """Manual intervention: make a failed or backing-off order due now."""
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(pk=order.pk)
            if order.is_fulfilled:
                return order
            order.status = FulfillmentStatus.PENDING
            order.next_attempt_at = None
            if order.attempts >= rewardman_settings.ISSUANCE_MAX_ATTEMPTS:
                order.attempts = 0
            order.save(update_fields=["status", "next_attempt_at", "attempts", "updated_at"])
        logger.info("Fulfillment %s requeued", order.idempotency_key)
        return order

    @classmethod
    def failed(cls, limit: int = 100) -> list[FulfillmentOrder]:
        """Orders that need manual intervention."""
        return list(
            FulfillmentOrder.objects.filter(status=FulfillmentStatus.FAILED)
            .select_related("account")
            .order_by("-updated_at")[:limit]
        )

    @classmethod
    def get_order(cls, customer_id: str) -> FulfillmentOrder | None:
        return (
            FulfillmentOrder.objects.filter(account__customer_id=customer_id)
            .select_related("account")
            .first()
        )

    @classmethod
    def _mark_fulfilled(cls, order: FulfillmentOrder, order_ref: str) -> FulfillmentOrder:
        with transaction.atomic():
            locked = FulfillmentOrder.objects.select_for_update().select_related("account").get(pk=order.pk)
            if locked.is_fulfilled:
                return locked
            locked.status = FulfillmentStatus.FULFILLED
            locked.order_ref = order_ref
            locked.attempts += 1
            locked.fulfilled_at = timezone.now()
            locked.next_attempt_at = None
            locked.last_error = ""
            locked.save()

        logger.info(
            "Placed free product order %s for %s (%s)",
            order_ref, locked.account.customer_id, locked.product_ref,
        )
        free_product_ordered.send(sender=FulfillmentOrder, order=locked)
        return locked

    @classmethod
    def _record_failure(cls, order: FulfillmentOrder, error: str) -> FulfillmentOrder:
        max_attempts = rewardman_settings.ISSUANCE_MAX_ATTEMPTS

        with transaction.atomic():
            locked = FulfillmentOrder.objects.select_for_update().select_related("account").get(pk=order.pk)
            if locked.status != FulfillmentStatus.PENDING:
                return locked
            locked.attempts += 1
            locked.last_error = error[:2000]
            if locked.attempts >= max_attempts:
                locked.status = FulfillmentStatus.FAILED
                locked.next_attempt_at = None
            else:
                locked.next_attempt_at = timezone.now() + backoff_delay(locked.attempts)
            locked.save()

        if locked.status == FulfillmentStatus.FAILED:
            logger.error(
                "Fulfillment %s failed after %d attempts, manual intervention needed: %s",
                locked.idempotency_key, locked.attempts, error,
            )
            fulfillment_failed.send(sender=FulfillmentOrder, order=locked)
        else:
            logger.warning(
                "Fulfillment %s attempt %d/%d failed, retry at %s: %s",
                locked.idempotency_key, locked.attempts, max_attempts, locked.next_attempt_at, error,
            )
        return locked
