"""Membership subsystem — payout ledger, subscriptions, fund transfer."""

from gunrelay.membership.ledger import PayoutLedger
from gunrelay.membership.subscriptions import SubscriptionBook
from gunrelay.membership.transfer import FundTransfer, RecordingTransfer

__all__ = [
    "PayoutLedger",
    "SubscriptionBook",
    "FundTransfer",
    "RecordingTransfer",
]
