"""Rewardman models."""

from rewardman.models.account import MAX_POINTS, LoyaltyAccount
from rewardman.models.applied_event import AppliedEvent
from rewardman.models.ledger_entry import LedgerEntry, EntryType
from rewardman.models.issuance import IssuanceRecord, IssuanceStatus, issuance_key
from rewardman.models.fulfillment import FulfillmentOrder, FulfillmentStatus, fulfillment_key

__all__ = [
    "LoyaltyAccount",
    "MAX_POINTS",
    # Idempotency guard
    "AppliedEvent",
    # Audit trail
    "LedgerEntry",
    "EntryType",
    # Reward issuance
    "IssuanceRecord",
    "IssuanceStatus",
    "issuance_key",
    # Free product orders
    "FulfillmentOrder",
    "FulfillmentStatus",
    "fulfillment_key",
]
