"""Pytest fixtures for Rewardman tests."""

import pytest

from rewardman.events import Event, EventKind


class FakeRewardBackend:
    """RewardBackend double: one code per idempotency key, optional failures."""

    def __init__(self):
        self.calls = []
        self.codes = {}
        self.fail_times = 0
        self.error = RuntimeError("platform unavailable")

    def issue_reward(self, customer_id, tier_id, reward_kind, reward_value, idempotency_key):
        self.calls.append(
            {
                "customer_id": customer_id,
                "tier_id": tier_id,
                "reward_kind": reward_kind,
                "reward_value": reward_value,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail_times:
            self.fail_times -= 1
            raise self.error
        return self.codes.setdefault(idempotency_key, f"CODE-{customer_id}-{tier_id}")

    @property
    def minted(self) -> int:
        return len(self.codes)

    def tiers_called(self) -> list[int]:
        return [c["tier_id"] for c in self.calls]


class FakeNotifier:
    """NotificationBackend double."""

    def __init__(self):
        self.sent = []
        self.error = None

    def notify(self, customer_id, reward_kind, code):
        if self.error:
            raise self.error
        self.sent.append((customer_id, reward_kind, code))
        return True


class FakeIdentityResolver:
    def __init__(self, directory=None):
        self.directory = directory or {}

    def resolve_customer_identity(self, email):
        return self.directory.get(email)


class FakeFulfillmentBackend:
    """FulfillmentBackend double: one order per idempotency key, optional failures."""

    def __init__(self, favorites=None):
        self.calls = []
        self.orders = {}
        self.fail_times = 0
        self.error = RuntimeError("platform unavailable")
        self.favorites = favorites or {}
        self.favorites_error = None

    def create_free_product_order(self, customer_id, product_ref, idempotency_key):
        self.calls.append((customer_id, product_ref, idempotency_key))
        if self.fail_times:
            self.fail_times -= 1
            raise self.error
        return self.orders.setdefault(idempotency_key, f"DRAFT-{len(self.orders) + 1}")

    def list_favorites(self, customer_id):
        if self.favorites_error:
            raise self.favorites_error
        return self.favorites.get(customer_id, [])


@pytest.fixture
def reward_backend():
    return FakeRewardBackend()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def identity_resolver():
    return FakeIdentityResolver({"maria@example.com": "C2"})


@pytest.fixture
def fulfillment_backend():
    return FakeFulfillmentBackend({"C1": ["gid://shopify/ProductVariant/9"]})


@pytest.fixture(autouse=True)
def _default_collaborators(monkeypatch, reward_backend, notifier, identity_resolver, fulfillment_backend):
    """Route the configured backends to the fakes."""
    monkeypatch.setattr("rewardman.services.rewards.get_reward_backend", lambda: reward_backend)
    monkeypatch.setattr("rewardman.services.notifications.get_notification_backend", lambda: notifier)
    monkeypatch.setattr("rewardman.service.get_identity_resolver", lambda: identity_resolver)
    monkeypatch.setattr("rewardman.services.fulfillment.get_fulfillment_backend", lambda: fulfillment_backend)
    monkeypatch.setattr("rewardman.service.get_fulfillment_backend", lambda: fulfillment_backend)


@pytest.fixture
def make_event():
    """Build normalized events: make_event("e1", 550) or make_event("r1", 50, kind=...)."""

    def _make(event_id, delta, customer_id="C1", kind=EventKind.ORDER_PAID):
        return Event(id=event_id, customer_id=customer_id, kind=kind, delta=delta)

    return _make


@pytest.fixture
def rewardman_settings(settings):
    """Override REWARDMAN keys: rewardman_settings(ISSUANCE_MAX_ATTEMPTS=1)."""

    def _override(**values):
        settings.REWARDMAN = {**settings.REWARDMAN, **values}

    return _override
