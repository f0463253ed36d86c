"""Rewardman protocols."""

from rewardman.protocols.collaborators import (
    FulfillmentBackend,
    IdentityResolver,
    NotificationBackend,
    RewardBackend,
)

__all__ = [
    "RewardBackend",
    "NotificationBackend",
    "IdentityResolver",
    "FulfillmentBackend",
]
