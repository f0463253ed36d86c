"""Email NotificationBackend using Django's mail framework."""

from __future__ import annotations

import logging

from django.core.mail import send_mail

from rewardman.conf import rewardman_settings
from rewardman.tiers import RewardKind

logger = logging.getLogger(__name__)


SUBJECTS = {
    RewardKind.PERCENT_DISCOUNT: "You've earned a loyalty discount!",
    RewardKind.FREE_SHIPPING: "You've earned free shipping!",
    RewardKind.FREE_PRODUCT: "You've earned a FREE product!",
}


class EmailNotificationBackend:
    """
    Sends reward notices by email.

    The recipient comes from a customer directory (anything with
    ``get_customer(customer_id) -> {"email", "first_name"} | None``),
    the Shopify client by default.
    """

    def __init__(self, directory=None):
        if directory is None:
            from rewardman.adapters.shopify import ShopifyClient

            directory = ShopifyClient()
        self.directory = directory

    def notify(self, customer_id: str, reward_kind: str, code: str) -> bool:
        customer = self.directory.get_customer(customer_id) or {}
        email = customer.get("email")
        if not email:
            logger.warning("No email address for customer %s", customer_id)
            return False

        first_name = customer.get("first_name") or "Valued Customer"
        sent = send_mail(
            SUBJECTS.get(reward_kind, "You've earned a loyalty reward!"),
            self.render(first_name, reward_kind, code),
            rewardman_settings.NOTIFICATION_FROM_EMAIL or None,
            [email],
        )
        return sent > 0

    @staticmethod
    def render(first_name: str, reward_kind: str, code: str) -> str:
        if reward_kind == RewardKind.FREE_PRODUCT:
            return (
                f"Congratulations, {first_name}!\n\n"
                "You've reached 2,000 loyalty points and earned a FREE product of your choice.\n"
                "Visit your account page in our store to redeem it.\n"
                "This reward stays available in your account until redeemed.\n\n"
                "Thank you for your loyalty!"
            )
        days = rewardman_settings.DISCOUNT_VALIDITY_DAYS
        return (
            f"Congratulations, {first_name}!\n\n"
            "You've reached a new loyalty milestone. Use this code at checkout:\n\n"
            f"    {code}\n\n"
            f"The code is valid for the next {days} days and can be used once.\n\n"
            "Thank you for your loyalty!"
        )
