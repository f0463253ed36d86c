"""Shopify Admin API adapters: reward issuance, free product orders and customer lookup.

Configuration in settings.py:
    REWARDMAN = {
        "SHOPIFY_SHOP_DOMAIN": "my-shop.myshopify.com",
        "SHOPIFY_ACCESS_TOKEN": "shpat_...",
        "REWARD_BACKEND": "rewardman.adapters.shopify.ShopifyRewardBackend",
        "IDENTITY_BACKEND": "rewardman.adapters.shopify.ShopifyIdentityResolver",
        "FULFILLMENT_BACKEND": "rewardman.adapters.shopify.ShopifyFulfillmentBackend",
    }
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import timedelta

import httpx
from django.utils import timezone

from rewardman.conf import rewardman_settings
from rewardman.tiers import RewardKind

logger = logging.getLogger(__name__)


CODE_PREFIXES = {
    (RewardKind.PERCENT_DISCOUNT, 20): "LOYALTY20_",
    (RewardKind.PERCENT_DISCOUNT, 40): "LOYALTY40_",
    (RewardKind.FREE_SHIPPING, 100): "FREESHIP_",
}


def discount_code_for(customer_id: str, reward_kind: str, reward_value: int, idempotency_key: str) -> str:
    """
    Deterministic discount code for an idempotency key.

    The same key always yields the same code, which is what makes a
    retried issuance find the code minted by an earlier attempt.
    """
    prefix = CODE_PREFIXES.get((reward_kind, reward_value), "LOYALTY_")
    suffix = hashlib.sha256(idempotency_key.encode()).hexdigest()[:6].upper()
    return f"{prefix}{str(customer_id)[-6:]}_{suffix}"


def entitlement_marker(customer_id: str) -> str:
    return f"ENTITLEMENT-{customer_id}"


FREE_PRODUCT_DISCOUNT = {
    "description": "Loyalty Reward - Free Product",
    "value_type": "percentage",
    "value": "100",
}


def numeric_id(ref: str) -> int:
    """
    Numeric Shopify id from a plain id or a GraphQL gid.

    "gid://shopify/ProductVariant/123" and "123" both give 123.

    Raises:
        ValueError: No numeric id in ref
    """
    tail = str(ref).rstrip("/").rsplit("/", 1)[-1]
    if not tail.isdigit():
        raise ValueError(f"Not a Shopify id: {ref!r}")
    return int(tail)


class ShopifyClient:
    """Minimal Shopify Admin REST client on top of httpx."""

    def __init__(self, client: httpx.Client | None = None):
        if client is None:
            client = httpx.Client(
                base_url=(
                    f"https://{rewardman_settings.SHOPIFY_SHOP_DOMAIN}"
                    f"/admin/api/{rewardman_settings.SHOPIFY_API_VERSION}"
                ),
                headers={"X-Shopify-Access-Token": rewardman_settings.SHOPIFY_ACCESS_TOKEN},
                timeout=rewardman_settings.COLLABORATOR_TIMEOUT_SECONDS,
            )
        self.client = client

    def discount_code_exists(self, code: str) -> bool:
        """Lookup answers 303 (redirect to the code) when it exists."""
        response = self.client.get(
            "/discount_codes/lookup.json",
            params={"code": code},
            follow_redirects=False,
        )
        if response.status_code == 404:
            return False
        if response.status_code in (200, 303):
            return True
        response.raise_for_status()
        return False

    def create_price_rule(self, payload: dict) -> int:
        response = self.client.post("/price_rules.json", json={"price_rule": payload})
        response.raise_for_status()
        return response.json()["price_rule"]["id"]

    def create_discount_code(self, price_rule_id: int, code: str) -> str:
        response = self.client.post(
            f"/price_rules/{price_rule_id}/discount_codes.json",
            json={"discount_code": {"code": code}},
        )
        response.raise_for_status()
        return response.json()["discount_code"]["code"]

    def get_customer(self, customer_id: str) -> dict | None:
        response = self.client.get(f"/customers/{customer_id}.json")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get("customer")

    def search_customers(self, query: str) -> list[dict]:
        response = self.client.get("/customers/search.json", params={"query": query})
        response.raise_for_status()
        return response.json().get("customers", [])

    def get_customer_metafield(self, customer_id: str, namespace: str, key: str) -> str | None:
        """Raw metafield value, or None if the customer or metafield is missing."""
        response = self.client.get(
            f"/customers/{customer_id}/metafields.json",
            params={"namespace": namespace, "key": key},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        for metafield in response.json().get("metafields", []):
            if metafield.get("namespace") == namespace and metafield.get("key") == key:
                return metafield.get("value")
        return None

    def find_draft_order(self, tag: str) -> dict | None:
        """Draft order carrying ``tag`` among the 250 most recent, if any."""
        response = self.client.get("/draft_orders.json", params={"limit": 250})
        response.raise_for_status()
        for draft_order in response.json().get("draft_orders", []):
            tags = [t.strip() for t in (draft_order.get("tags") or "").split(",")]
            if tag in tags:
                return draft_order
        return None

    def create_draft_order(self, payload: dict) -> dict:
        response = self.client.post("/draft_orders.json", json={"draft_order": payload})
        response.raise_for_status()
        return response.json()["draft_order"]


class ShopifyRewardBackend:
    """
    RewardBackend that mints single-use, customer-restricted discount codes.

    The free product tier mints nothing on Shopify: its marker is recorded
    and the entitlement is consumed through redemption.
    """

    def __init__(self, shopify: ShopifyClient | None = None):
        self.shopify = shopify or ShopifyClient()

    def issue_reward(
        self,
        customer_id: str,
        tier_id: int,
        reward_kind: str,
        reward_value: int,
        idempotency_key: str,
    ) -> str:
        if reward_kind == RewardKind.FREE_PRODUCT:
            return entitlement_marker(customer_id)

        code = discount_code_for(customer_id, reward_kind, reward_value, idempotency_key)
        if self.shopify.discount_code_exists(code):
            logger.info("Discount code %s already exists for %s", code, idempotency_key)
            return code

        price_rule_id = self.shopify.create_price_rule(
            self._price_rule(customer_id, reward_kind, reward_value, idempotency_key)
        )
        return self.shopify.create_discount_code(price_rule_id, code)

    @staticmethod
    def _price_rule(customer_id: str, reward_kind: str, reward_value: int, idempotency_key: str) -> dict:
        now = timezone.now()
        shipping = reward_kind == RewardKind.FREE_SHIPPING
        return {
            "title": f"Loyalty reward {idempotency_key}",
            "target_type": "shipping_line" if shipping else "line_item",
            "target_selection": "all",
            "allocation_method": "each" if shipping else "across",
            "value_type": "percentage",
            "value": f"-{float(reward_value)}",
            "customer_selection": "prerequisite",
            "prerequisite_customer_ids": [int(customer_id)] if str(customer_id).isdigit() else [],
            "once_per_customer": True,
            "usage_limit": 1,
            "starts_at": now.isoformat(),
            "ends_at": (now + timedelta(days=rewardman_settings.DISCOUNT_VALIDITY_DAYS)).isoformat(),
        }


class ShopifyIdentityResolver:
    """IdentityResolver backed by the Shopify customer search."""

    def __init__(self, shopify: ShopifyClient | None = None):
        self.shopify = shopify or ShopifyClient()

    def resolve_customer_identity(self, email: str) -> str | None:
        customers = self.shopify.search_customers(f"email:{email}")
        for customer in customers:
            if (customer.get("email") or "").lower() == email.lower():
                return str(customer["id"])
        return None


class ShopifyFulfillmentBackend:
    """
    FulfillmentBackend that places a 100% discounted draft order.

    The idempotency key is stored as a draft order tag; a retry that finds
    a tagged draft order returns it instead of creating another one.
    Favorites come from a JSON list in a customer metafield.
    """

    def __init__(self, shopify: ShopifyClient | None = None):
        self.shopify = shopify or ShopifyClient()

    def create_free_product_order(self, customer_id: str, product_ref: str, idempotency_key: str) -> str:
        existing = self.shopify.find_draft_order(idempotency_key)
        if existing:
            logger.info("Draft order %s already exists for %s", existing["id"], idempotency_key)
            return str(existing["id"])

        draft_order = self.shopify.create_draft_order(
            {
                "line_items": [{"variant_id": numeric_id(product_ref), "quantity": 1}],
                "customer": {"id": numeric_id(customer_id)},
                "applied_discount": dict(FREE_PRODUCT_DISCOUNT),
                "tags": idempotency_key,
            }
        )
        return str(draft_order["id"])

    def list_favorites(self, customer_id: str) -> list:
        value = self.shopify.get_customer_metafield(
            customer_id,
            rewardman_settings.FAVORITES_METAFIELD_NAMESPACE,
            rewardman_settings.FAVORITES_METAFIELD_KEY,
        )
        if not value:
            return []
        try:
            favorites = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Favorites metafield for %s is not JSON: %r", customer_id, value[:200])
            return []
        if not isinstance(favorites, list):
            logger.warning("Favorites metafield for %s is not a list", customer_id)
            return []
        return favorites
