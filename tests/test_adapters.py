"""
Tests for the Shopify and email adapters.

Shopify calls go through httpx.MockTransport; email uses Django's
locmem backend (mail.outbox).
"""

import json

import httpx
import pytest
from django.core import mail

from rewardman.adapters.email import EmailNotificationBackend
from rewardman.adapters.shopify import (
    ShopifyClient,
    ShopifyFulfillmentBackend,
    ShopifyIdentityResolver,
    ShopifyRewardBackend,
    discount_code_for,
    entitlement_marker,
    numeric_id,
)
from rewardman.backends import get_fulfillment_backend, get_reward_backend
from rewardman.protocols import FulfillmentBackend, IdentityResolver, NotificationBackend, RewardBackend


class FakeShopify:
    """Records Admin API requests and answers from canned responses."""

    def __init__(self, existing_codes=(), customers=None, fail_on=None, draft_orders=None, metafields=None):
        self.requests = []
        self.existing_codes = set(existing_codes)
        self.customers = customers or []
        self.fail_on = fail_on
        self.draft_orders = list(draft_orders or [])
        self.metafields = metafields or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/admin/api/2024-01")

        if self.fail_on and path.startswith(self.fail_on):
            return httpx.Response(500, json={"errors": "Internal Server Error"})

        if path == "/discount_codes/lookup.json":
            if request.url.params["code"] in self.existing_codes:
                return httpx.Response(303, headers={"Location": "https://shop.test/admin/discount_codes/1"})
            return httpx.Response(404)

        if path == "/price_rules.json":
            return httpx.Response(201, json={"price_rule": {"id": 11}})

        if path == "/price_rules/11/discount_codes.json":
            code = json.loads(request.content)["discount_code"]["code"]
            return httpx.Response(201, json={"discount_code": {"id": 99, "code": code}})

        if path == "/draft_orders.json":
            if request.method == "POST":
                draft_order = {"id": 501 + len(self.draft_orders), **json.loads(request.content)["draft_order"]}
                self.draft_orders.append(draft_order)
                return httpx.Response(201, json={"draft_order": draft_order})
            return httpx.Response(200, json={"draft_orders": self.draft_orders})

        if path == "/customers/search.json":
            return httpx.Response(200, json={"customers": self.customers})

        if path.startswith("/customers/") and path.endswith("/metafields.json"):
            customer_id = path.split("/")[2]
            if customer_id not in self.metafields:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={"metafields": self.metafields[customer_id]})

        if path.startswith("/customers/"):
            customer_id = path.split("/")[2].removesuffix(".json")
            for customer in self.customers:
                if str(customer["id"]) == customer_id:
                    return httpx.Response(200, json={"customer": customer})
            return httpx.Response(404, json={"errors": "Not Found"})

        return httpx.Response(404)

    def posted(self, suffix):
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path.endswith(suffix)
        ]


def make_client(fake):
    return ShopifyClient(
        httpx.Client(
            base_url="https://shop.test/admin/api/2024-01",
            transport=httpx.MockTransport(fake),
        )
    )


class TestDiscountCodes:
    def test_prefix_per_tier(self):
        assert discount_code_for("7123456", "percent_discount", 20, "rewardman:7123456:1").startswith("LOYALTY20_123456_")
        assert discount_code_for("7123456", "percent_discount", 40, "rewardman:7123456:2").startswith("LOYALTY40_123456_")
        assert discount_code_for("7123456", "free_shipping", 100, "rewardman:7123456:3").startswith("FREESHIP_123456_")

    def test_deterministic_per_key(self):
        first = discount_code_for("7", "percent_discount", 20, "rewardman:7:1")
        again = discount_code_for("7", "percent_discount", 20, "rewardman:7:1")
        other = discount_code_for("7", "percent_discount", 20, "rewardman:8:1")

        assert first == again
        assert first != other


class TestShopifyRewardBackend:
    def test_conforms_to_protocol(self):
        backend = ShopifyRewardBackend(make_client(FakeShopify()))
        assert isinstance(backend, RewardBackend)

    def test_mints_new_code(self):
        fake = FakeShopify()
        backend = ShopifyRewardBackend(make_client(fake))

        code = backend.issue_reward("7", 1, "percent_discount", 20, "rewardman:7:1")

        assert code == discount_code_for("7", "percent_discount", 20, "rewardman:7:1")
        [rule] = fake.posted("/price_rules.json")
        price_rule = rule["price_rule"]
        assert price_rule["value"] == "-20.0"
        assert price_rule["target_type"] == "line_item"
        assert price_rule["prerequisite_customer_ids"] == [7]
        assert price_rule["usage_limit"] == 1
        assert fake.posted("/discount_codes.json") == [{"discount_code": {"code": code}}]

    def test_free_shipping_rule(self):
        fake = FakeShopify()
        backend = ShopifyRewardBackend(make_client(fake))

        backend.issue_reward("7", 3, "free_shipping", 100, "rewardman:7:3")

        [rule] = fake.posted("/price_rules.json")
        assert rule["price_rule"]["target_type"] == "shipping_line"
        assert rule["price_rule"]["value"] == "-100.0"

    def test_existing_code_reused(self):
        code = discount_code_for("7", "percent_discount", 20, "rewardman:7:1")
        fake = FakeShopify(existing_codes=[code])
        backend = ShopifyRewardBackend(make_client(fake))

        assert backend.issue_reward("7", 1, "percent_discount", 20, "rewardman:7:1") == code
        assert fake.posted("/price_rules.json") == []

    def test_free_product_marker(self):
        fake = FakeShopify()
        backend = ShopifyRewardBackend(make_client(fake))

        assert backend.issue_reward("7", 4, "free_product", 1, "rewardman:7:4") == entitlement_marker("7")
        assert fake.requests == []

    def test_platform_error_raises(self):
        backend = ShopifyRewardBackend(make_client(FakeShopify(fail_on="/price_rules")))

        with pytest.raises(httpx.HTTPStatusError):
            backend.issue_reward("7", 1, "percent_discount", 20, "rewardman:7:1")

    def test_loaded_from_settings(self, settings):
        settings.REWARDMAN = {
            **settings.REWARDMAN,
            "SHOPIFY_SHOP_DOMAIN": "shop.test",
            "SHOPIFY_ACCESS_TOKEN": "shpat_test",
        }

        backend = get_reward_backend()

        assert isinstance(backend, ShopifyRewardBackend)
        assert backend.shopify.client.base_url == httpx.URL("https://shop.test/admin/api/2024-01/")
        assert backend.shopify.client.headers["X-Shopify-Access-Token"] == "shpat_test"


class TestShopifyIdentityResolver:
    def test_matches_email_case_insensitive(self):
        fake = FakeShopify(customers=[{"id": 42, "email": "Maria@Example.com"}])
        resolver = ShopifyIdentityResolver(make_client(fake))

        assert isinstance(resolver, IdentityResolver)
        assert resolver.resolve_customer_identity("maria@example.com") == "42"
        assert fake.requests[0].url.params["query"] == "email:maria@example.com"

    def test_no_match(self):
        fake = FakeShopify(customers=[{"id": 42, "email": "someone@example.com"}])
        resolver = ShopifyIdentityResolver(make_client(fake))

        assert resolver.resolve_customer_identity("maria@example.com") is None

    def test_get_customer_not_found(self):
        assert make_client(FakeShopify()).get_customer("404") is None


class TestShopifyFulfillmentBackend:
    KEY = "rewardman:7:free_product"

    def test_conforms_to_protocol(self):
        assert isinstance(ShopifyFulfillmentBackend(make_client(FakeShopify())), FulfillmentBackend)

    def test_creates_free_draft_order(self):
        fake = FakeShopify()
        backend = ShopifyFulfillmentBackend(make_client(fake))

        order_id = backend.create_free_product_order("7", "gid://shopify/ProductVariant/9", self.KEY)

        assert order_id == "501"
        assert fake.posted("/draft_orders.json") == [
            {
                "draft_order": {
                    "line_items": [{"variant_id": 9, "quantity": 1}],
                    "customer": {"id": 7},
                    "applied_discount": {
                        "description": "Loyalty Reward - Free Product",
                        "value_type": "percentage",
                        "value": "100",
                    },
                    "tags": self.KEY,
                }
            }
        ]

    def test_retry_returns_existing_order(self):
        fake = FakeShopify(draft_orders=[{"id": 777, "tags": f"vip, {self.KEY}"}])
        backend = ShopifyFulfillmentBackend(make_client(fake))

        assert backend.create_free_product_order("7", "9", self.KEY) == "777"
        assert fake.posted("/draft_orders.json") == []

    def test_same_key_twice_creates_one_order(self):
        fake = FakeShopify()
        backend = ShopifyFulfillmentBackend(make_client(fake))

        first = backend.create_free_product_order("7", "9", self.KEY)
        again = backend.create_free_product_order("7", "9", self.KEY)

        assert first == again
        assert len(fake.posted("/draft_orders.json")) == 1

    def test_platform_error_raises(self):
        backend = ShopifyFulfillmentBackend(make_client(FakeShopify(fail_on="/draft_orders")))

        with pytest.raises(httpx.HTTPStatusError):
            backend.create_free_product_order("7", "9", self.KEY)

    def test_unusable_product_ref(self):
        backend = ShopifyFulfillmentBackend(make_client(FakeShopify()))

        with pytest.raises(ValueError):
            backend.create_free_product_order("7", "gid://shopify/ProductVariant/", self.KEY)

    def test_favorites_from_metafield(self):
        fake = FakeShopify(
            metafields={
                "7": [
                    {"namespace": "custom", "key": "favorites", "value": "[\"x\"]"},
                    {"namespace": "loyalty", "key": "favorites", "value": "[\"gid://shopify/Product/1\", 2]"},
                ]
            }
        )
        backend = ShopifyFulfillmentBackend(make_client(fake))

        assert backend.list_favorites("7") == ["gid://shopify/Product/1", 2]
        assert fake.requests[0].url.params["namespace"] == "loyalty"
        assert fake.requests[0].url.params["key"] == "favorites"

    @pytest.mark.parametrize(
        "metafields",
        [{}, {"7": []}, {"7": [{"namespace": "loyalty", "key": "favorites", "value": ""}]}],
    )
    def test_no_favorites(self, metafields):
        backend = ShopifyFulfillmentBackend(make_client(FakeShopify(metafields=metafields)))
        assert backend.list_favorites("7") == []

    @pytest.mark.parametrize("value", ["not json", "{\"a\": 1}"])
    def test_unreadable_favorites(self, value):
        fake = FakeShopify(metafields={"7": [{"namespace": "loyalty", "key": "favorites", "value": value}]})
        backend = ShopifyFulfillmentBackend(make_client(fake))

        assert backend.list_favorites("7") == []

    def test_loaded_from_settings(self, rewardman_settings):
        rewardman_settings(SHOPIFY_SHOP_DOMAIN="shop.test", SHOPIFY_ACCESS_TOKEN="shpat_test")

        backend = get_fulfillment_backend()

        assert isinstance(backend, ShopifyFulfillmentBackend)
        assert backend.shopify.client.base_url == httpx.URL("https://shop.test/admin/api/2024-01/")


class TestNumericId:
    @pytest.mark.parametrize("ref,expected", [("123", 123), ("gid://shopify/ProductVariant/45", 45), (7, 7)])
    def test_parses(self, ref, expected):
        assert numeric_id(ref) == expected

    @pytest.mark.parametrize("ref", ["", "abc", "gid://shopify/ProductVariant/x"])
    def test_rejects(self, ref):
        with pytest.raises(ValueError):
            numeric_id(ref)


class FakeDirectory:
    def __init__(self, customers):
        self.customers = customers

    def get_customer(self, customer_id):
        return self.customers.get(customer_id)


class TestEmailNotificationBackend:
    def test_sends_code(self):
        backend = EmailNotificationBackend(FakeDirectory({"7": {"email": "ana@example.com", "first_name": "Ana"}}))

        assert isinstance(backend, NotificationBackend)
        assert backend.notify("7", "percent_discount", "LOYALTY20_7_ABC123") is True

        [message] = mail.outbox
        assert message.to == ["ana@example.com"]
        assert message.from_email == "loyalty@example.com"
        assert message.subject == "You've earned a loyalty discount!"
        assert "Congratulations, Ana!" in message.body
        assert "LOYALTY20_7_ABC123" in message.body
        assert "90 days" in message.body

    def test_free_product_notice(self):
        backend = EmailNotificationBackend(FakeDirectory({"7": {"email": "ana@example.com"}}))

        backend.notify("7", "free_product", "ENTITLEMENT-7")

        [message] = mail.outbox
        assert message.subject == "You've earned a FREE product!"
        assert "Valued Customer" in message.body
        assert "redeem" in message.body

    def test_unknown_customer(self):
        backend = EmailNotificationBackend(FakeDirectory({}))

        assert backend.notify("7", "free_shipping", "FREESHIP_7_ABC123") is False
        assert mail.outbox == []

    def test_shopify_directory(self):
        fake = FakeShopify(customers=[{"id": 7, "email": "ana@example.com", "first_name": "Ana"}])
        backend = EmailNotificationBackend(make_client(fake))

        assert backend.notify("7", "free_shipping", "FREESHIP_7_ABC123") is True
        assert mail.outbox[0].subject == "You've earned free shipping!"
