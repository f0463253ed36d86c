"""FulfillmentOrder model: the free product order behind a redemption."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class FulfillmentStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    FULFILLED = "fulfilled", _("Fulfilled")
    FAILED = "failed", _("Failed")


def fulfillment_key(customer_id: str) -> str:
    """Idempotency key passed to the fulfillment backend."""
    return f"rewardman:{customer_id}:free_product"


class FulfillmentOrder(models.Model):
    """
    Durable record of the free product order for a redeemed entitlement.

    Created in the same transaction that consumes the entitlement, so a
    crash after commit leaves a pending order for the sweep. Lifecycle:
    pending -> fulfilled (terminal), or pending -> failed after
    ISSUANCE_MAX_ATTEMPTS.
    """

    account = models.OneToOneField(
        "rewardman.LoyaltyAccount",
        on_delete=models.CASCADE,
        related_name="fulfillment",
        verbose_name=_("account"),
    )
    product_ref = models.CharField(
        _("product"),
        max_length=255,
        help_text=_("Product variant chosen by the customer"),
    )
    idempotency_key = models.CharField(_("idempotency key"), max_length=255, unique=True)

    status = models.CharField(
        _("status"),
        max_length=20,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(_("attempts"), default=0)
    next_attempt_at = models.DateTimeField(_("next attempt at"), null=True, blank=True)
    last_error = models.TextField(_("last error"), blank=True)

    order_ref = models.CharField(
        _("order"),
        max_length=255,
        blank=True,
        help_text=_("Draft order id on the commerce platform"),
    )
    fulfilled_at = models.DateTimeField(_("fulfilled at"), null=True, blank=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "rewardman_fulfillment"
        verbose_name = _("fulfillment order")
        verbose_name_plural = _("fulfillment orders")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="rewardman_f_status_3c9d52_idx"),
        ]

    def __str__(self):
        return f"{self.account.customer_id}:{self.product_ref} [{self.status}]"

    @property
    def is_fulfilled(self) -> bool:
        return self.status == FulfillmentStatus.FULFILLED

    def as_dict(self) -> dict:
        return {
            "product_ref": self.product_ref,
            "status": self.status,
            "order_ref": self.order_ref,
            "attempts": self.attempts,
        }
