"""External collaborator protocols consumed by the loyalty core."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class RewardBackend(Protocol):
    """
    Mints rewards on the commerce platform.

    Implemented by adapters/shopify.py.

    Configuration in settings.py:
        REWARDMAN = {
            "REWARD_BACKEND": "rewardman.adapters.shopify.ShopifyRewardBackend",
        }
    """

    def issue_reward(
        self,
        customer_id: str,
        tier_id: int,
        reward_kind: str,
        reward_value: int,
        idempotency_key: str,
    ) -> str:
        """
        Create the reward and return its code (or entitlement marker).

        Must be safe to retry: two calls with the same idempotency_key
        return the same code and never create a second reward.

        Raises:
            TimeoutError / httpx.TimeoutException: Outcome unknown
            Exception: Any other failure
        """
        ...


@runtime_checkable
class NotificationBackend(Protocol):
    """Tells the customer about an issued reward."""

    def notify(self, customer_id: str, reward_kind: str, code: str) -> bool:
        """Send the reward notice. Returns True when accepted."""
        ...


@runtime_checkable
class IdentityResolver(Protocol):
    """Maps an email address to a commerce platform customer id."""

    def resolve_customer_identity(self, email: str) -> str | None:
        """Return the customer id, or None if no customer matches."""
        ...


@runtime_checkable
class FulfillmentBackend(Protocol):
    """
    Places the free product order for a redeemed entitlement.

    Implemented by adapters/shopify.py (draft order with a 100% discount).

    Configuration in settings.py:
        REWARDMAN = {
            "FULFILLMENT_BACKEND": "rewardman.adapters.shopify.ShopifyFulfillmentBackend",
        }
    """

    def create_free_product_order(self, customer_id: str, product_ref: str, idempotency_key: str) -> str:
        """
        Create the order and return its id.

        Must be safe to retry: two calls with the same idempotency_key
        return the same order and never create a second one.

        Raises:
            TimeoutError / httpx.TimeoutException: Outcome unknown
            Exception: Any other failure
        """
        ...

    def list_favorites(self, customer_id: str) -> list:
        """Products the customer saved as favorites (empty when none)."""
        ...
