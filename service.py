"""
Rewardman public API.

CORE (essential):
    LoyaltyService.handle_event(raw)   - Normalize, apply, evaluate tiers, dispatch rewards
    LoyaltyService.get_account(id)     - Balance and per-tier progress
    LoyaltyService.redeem(id)          - Redeem the free product entitlement
    LoyaltyService.favorites(id)       - Products saved as favorites

CONVENIENCE (helpers):
    LoyaltyService.process(event)      - Pipeline for an already normalized Event
    LoyaltyService.history(id)         - Ledger entries
"""

import logging
from dataclasses import dataclass, field

from rewardman.backends import get_fulfillment_backend, get_identity_resolver
from rewardman.events import Event, normalize
from rewardman.models import IssuanceRecord, LedgerEntry
from rewardman.protocols import FulfillmentBackend, IdentityResolver, NotificationBackend, RewardBackend
from rewardman.services import FulfillmentDispatcher, LedgerService, RedemptionService, RewardDispatcher
from rewardman.tiers import crossed_tiers, tier_progress

logger = logging.getLogger(__name__)


@dataclass
class EventOutcome:
    """Result of processing one inbound event."""

    event: Event
    applied: bool
    old_balance: int
    new_balance: int
    crossed_tiers: list[int] = field(default_factory=list)
    issuances: list[IssuanceRecord] = field(default_factory=list)

    @property
    def duplicate(self) -> bool:
        return not self.applied

    def as_dict(self) -> dict:
        return {
            "event_id": self.event.id,
            "customer_id": self.event.customer_id,
            "status": "applied" if self.applied else "duplicate",
            "delta": self.event.delta if self.applied else 0,
            "balance": self.new_balance,
            "crossed_tiers": self.crossed_tiers,
            "issuances": [
                {"tier_id": r.tier_id, "status": r.status, "attempts": r.attempts}
                for r in self.issuances
            ],
        }


class LoyaltyService:
    """
    Rewardman public API.

    Uses @classmethod for extensibility. Collaborators default to the
    backends configured in REWARDMAN and can be passed explicitly.
    """

    # ======================================================================
    # CORE API
    # ======================================================================

    @classmethod
    def handle_event(
        cls,
        raw: dict,
        reward_backend: RewardBackend | None = None,
        notification_backend: NotificationBackend | None = None,
        identity_resolver: IdentityResolver | None = None,
    ) -> EventOutcome:
        """
        Full pipeline for an inbound event.

        Args:
            raw: Inbound payload (see rewardman.events)
            reward_backend: RewardBackend override
            notification_backend: NotificationBackend override
            identity_resolver: IdentityResolver override

        Returns:
            EventOutcome

        Raises:
            RewardmanError: INVALID_EVENT, LEDGER_CONFLICT
        """
        if identity_resolver is None and cls._needs_identity(raw):
            identity_resolver = get_identity_resolver()
        event = normalize(raw, identity_resolver)
        return cls.process(event, reward_backend, notification_backend)

    @classmethod
    def process(
        cls,
        event: Event,
        reward_backend: RewardBackend | None = None,
        notification_backend: NotificationBackend | None = None,
    ) -> EventOutcome:
        """
        Apply a normalized event and issue rewards for crossed tiers.

        A redelivered event re-evaluates the transition it caused the
        first time, so a crash between ledger commit and dispatch is
        recovered by the next delivery.
        """
        result = LedgerService.apply(event)

        if result.applied:
            transition = (result.old_balance, result.new_balance)
        else:
            transition = result.replayed_transition

        tiers = crossed_tiers(*transition, result.issued_tiers) if transition else []
        issuances = []
        if tiers:
            issuances = RewardDispatcher.dispatch(
                event.customer_id,
                tiers,
                backend=reward_backend,
                notifier=notification_backend,
            )

        return EventOutcome(
            event=event,
            applied=result.applied,
            old_balance=result.old_balance,
            new_balance=result.new_balance,
            crossed_tiers=tiers,
            issuances=issuances,
        )

    @classmethod
    def get_account(cls, customer_id: str) -> dict:
        """
        Balance and per-tier progress.

        Unknown customers get an empty summary; no account is created.
        """
        account = LedgerService.get_account(customer_id)
        balance = account.balance if account else 0
        issued = account.issued_tiers if account else []
        return {
            "customer_id": customer_id,
            "balance": balance,
            "lifetime_points": account.lifetime_points if account else 0,
            "entitlement_consumed": account.entitlement_consumed if account else False,
            "per_tier": tier_progress(balance, issued),
        }

    @classmethod
    def redeem(
        cls,
        customer_id: str,
        product_ref: str = "",
        fulfillment_backend: FulfillmentBackend | None = None,
    ) -> dict:
        """
        Redeem the free product entitlement.

        Returns:
            {"balance": int, "fulfillment": dict | None}. The order is
            None when no product was chosen; otherwise its status tells
            whether it was placed or is waiting for the sweep.

        Raises:
            RewardmanError: INSUFFICIENT_POINTS, ENTITLEMENT_ALREADY_CONSUMED
        """
        balance = RedemptionService.redeem(
            customer_id,
            product_ref=product_ref,
            fulfillment_backend=fulfillment_backend,
        )
        order = FulfillmentDispatcher.get_order(customer_id) if product_ref else None
        return {"balance": balance, "fulfillment": order.as_dict() if order else None}

    @classmethod
    def favorites(cls, customer_id: str, backend: FulfillmentBackend | None = None) -> list:
        """
        Products the customer saved as favorites, to pick the free product from.

        Platform errors propagate.
        """
        backend = backend or get_fulfillment_backend()
        return list(backend.list_favorites(customer_id))

    # ======================================================================
    # CONVENIENCE API
    # ======================================================================

    @classmethod
    def history(cls, customer_id: str, limit: int = 50) -> list[LedgerEntry]:
        return LedgerService.get_entries(customer_id, limit=limit)

    @staticmethod
    def _needs_identity(raw: dict) -> bool:
        if not isinstance(raw, dict):
            return False
        has_id = raw.get("customerId") or raw.get("customer_id")
        has_email = raw.get("customerEmail") or raw.get("customer_email")
        return bool(has_email and not has_id)
