"""Subscription book — users pay a monthly fee to bind a public key to the relays.

Fees are credited straight into the payout ledger's balance, where they
become distributable to relays in proportion to stake. Subscribing again
before expiry extends from the current expiry; after expiry it extends
from now.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from eth_utils import to_checksum_address

from gunrelay.errors import InvalidMonths, Unauthorized, WrongValue
from gunrelay.membership.ledger import PayoutLedger
from gunrelay.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

SECONDS_PER_MONTH = 30 * 24 * 3600


class SubscriptionBook:
    """Per-user subscription expiry and public key registry.

    Usage:
        book = SubscriptionBook(admin, ledger, price_per_month=10**16)
        book.subscribe(user, months=2, pub_key=key, value=2 * 10**16)
        book.is_active(user)  # -> True
    """

    def __init__(
        self,
        admin: str,
        ledger: PayoutLedger,
        price_per_month: int,
        event_log: Optional[EventLog] = None,
        now: Optional[Callable[[], float]] = None,
    ) -> None:
        if price_per_month <= 0:
            raise ValueError("Price per month must be positive")
        self._admin = to_checksum_address(admin)
        self._ledger = ledger
        self._price = price_per_month
        self._event_log = event_log
        self._now = now or time.time
        self._expires: dict[str, int] = {}
        self._pub_keys: dict[str, bytes] = {}

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def price_per_month(self) -> int:
        return self._price

    def set_price(self, caller: str, price_per_month: int) -> None:
        if to_checksum_address(caller) != self._admin:
            raise Unauthorized("Only the admin may change the price")
        if price_per_month <= 0:
            raise ValueError("Price per month must be positive")
        old, self._price = self._price, price_per_month
        logger.info("Subscription price changed %d -> %d", old, price_per_month)
        if self._event_log is not None:
            self._event_log.record(
                EventKind.PRICE_CHANGED, self._admin, old=old, new=price_per_month,
            )

    def subscribe(self, user: str, months: int, pub_key: bytes, value: int) -> int:
        """Pay for ``months`` of service and (re)bind ``pub_key``. Returns new expiry."""
        user = to_checksum_address(user)
        if months <= 0:
            raise InvalidMonths("Months must be greater than zero")
        if value != self._price * months:
            raise WrongValue(
                f"Expected {self._price * months} wei for {months} month(s), got {value}"
            )

        now = int(self._now())
        start = max(now, self._expires.get(user, 0))
        expiry = start + months * SECONDS_PER_MONTH

        self._ledger.deposit(user, value, reason="subscription")
        self._expires[user] = expiry
        self._pub_keys[user] = bytes(pub_key)

        logger.info("User %s subscribed for %d month(s), expires %d", user, months, expiry)
        if self._event_log is not None:
            self._event_log.record(
                EventKind.SUBSCRIBED, user, months=months, expires=expiry,
                pub_key=bytes(pub_key).hex(),
            )
        return expiry

    def expires(self, user: str) -> int:
        return self._expires.get(to_checksum_address(user), 0)

    def is_active(self, user: str) -> bool:
        return self.expires(user) > self._now()

    def user_pub_key(self, user: str) -> bytes:
        return self._pub_keys.get(to_checksum_address(user), b"")
