"""Rewardman services.

- ledger: LedgerService (idempotent earn, per-account critical section)
- rewards: RewardDispatcher (at-most-once issuance, retry sweep)
- notifications: NotificationDispatcher (non-blocking reward notices)
- redemption: RedemptionService (free product entitlement)
- fulfillment: FulfillmentDispatcher (free product order after redemption)
"""

from rewardman.services.ledger import ApplyResult, LedgerService
from rewardman.services.notifications import NotificationDispatcher
from rewardman.services.rewards import RewardDispatcher
from rewardman.services.fulfillment import FulfillmentDispatcher
from rewardman.services.redemption import RedemptionService

__all__ = [
    "ApplyResult",
    "FulfillmentDispatcher",
    "LedgerService",
    "NotificationDispatcher",
    "RewardDispatcher",
    "RedemptionService",
]
