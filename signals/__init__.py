"""
Rewardman signals: public event API.

Emitted signals:
- points_applied: Emitted by LedgerService.apply() after a committed earn
- reward_issued: Emitted by RewardDispatcher when a record becomes issued
- issuance_failed: Emitted by RewardDispatcher when a record gives up
- entitlement_redeemed: Emitted by RedemptionService.redeem()
- free_product_ordered: Emitted by FulfillmentDispatcher when an order is placed
- fulfillment_failed: Emitted by FulfillmentDispatcher when an order gives up
"""

from django.dispatch import Signal

# Ledger signals
points_applied = Signal()  # sender=LoyaltyAccount, event=Event, old_balance=int, new_balance=int

# Issuance signals
reward_issued = Signal()  # sender=IssuanceRecord
issuance_failed = Signal()  # sender=IssuanceRecord

# Redemption signals
entitlement_redeemed = Signal()  # sender=LoyaltyAccount, customer_id=str, product_ref=str, new_balance=int

# Fulfillment signals
free_product_ordered = Signal()  # sender=FulfillmentOrder, order=FulfillmentOrder
fulfillment_failed = Signal()  # sender=FulfillmentOrder, order=FulfillmentOrder
