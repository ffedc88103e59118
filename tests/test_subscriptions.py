"""Tests for the subscription book and its fee flow into the payout ledger."""

import pytest

from gunrelay.crypto.anchor import RootAnchor
from gunrelay.errors import InvalidMonths, Unauthorized, WrongValue
from gunrelay.membership.ledger import PayoutLedger
from gunrelay.membership.subscriptions import SECONDS_PER_MONTH, SubscriptionBook
from gunrelay.membership.transfer import RecordingTransfer
from gunrelay.persistence.event_log import EventKind, EventLog

PRICE = 10**17
ADMIN = "0x" + "ad" * 20
USER = "0x" + "ee" * 20
RELAY = "0x" + "01" * 20
START = 1_700_000_000


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger() -> PayoutLedger:
    return PayoutLedger(anchor=RootAnchor(admin=ADMIN), transfer=RecordingTransfer())


@pytest.fixture
def book(ledger: PayoutLedger, clock: FakeClock) -> SubscriptionBook:
    return SubscriptionBook(ADMIN, ledger, price_per_month=PRICE, now=clock)


class TestSubscribe:
    def test_subscribe_sets_expiry_and_key(self, book: SubscriptionBook) -> None:
        pub_key = bytes(range(33))
        expiry = book.subscribe(USER, months=2, pub_key=pub_key, value=2 * PRICE)
        assert expiry == START + 2 * SECONDS_PER_MONTH
        assert book.expires(USER) == expiry
        assert book.user_pub_key(USER) == pub_key
        assert book.is_active(USER)

    def test_fee_lands_in_ledger(self, book: SubscriptionBook, ledger: PayoutLedger) -> None:
        ledger.join(RELAY, "url", value=10**18)
        book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        assert ledger.balance == 10**18 + PRICE
        assert ledger.distributable_funds == PRICE

    def test_zero_months_rejected(self, book: SubscriptionBook) -> None:
        with pytest.raises(InvalidMonths):
            book.subscribe(USER, months=0, pub_key=b"", value=0)

    def test_wrong_value_rejected(self, book: SubscriptionBook, ledger: PayoutLedger) -> None:
        with pytest.raises(WrongValue):
            book.subscribe(USER, months=1, pub_key=b"", value=PRICE - 1)
        assert ledger.balance == 0
        assert book.expires(USER) == 0

    def test_expiry(self, book: SubscriptionBook, clock: FakeClock) -> None:
        expiry = book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        clock.now = expiry + 1
        assert not book.is_active(USER)

    def test_renewal_extends_from_expiry(self, book: SubscriptionBook, clock: FakeClock) -> None:
        first = book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        clock.now = START + 10
        second = book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        assert second == first + SECONDS_PER_MONTH

    def test_renewal_after_lapse_starts_now(
        self, book: SubscriptionBook, clock: FakeClock,
    ) -> None:
        first = book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        clock.now = first + 1000
        second = book.subscribe(USER, months=1, pub_key=b"\x02", value=PRICE)
        assert second == first + 1000 + SECONDS_PER_MONTH
        assert book.user_pub_key(USER) == b"\x02"

    def test_unknown_user(self, book: SubscriptionBook) -> None:
        assert book.expires(USER) == 0
        assert not book.is_active(USER)
        assert book.user_pub_key(USER) == b""


class TestPrice:
    def test_only_admin_sets_price(self, book: SubscriptionBook) -> None:
        with pytest.raises(Unauthorized):
            book.set_price(USER, PRICE * 5)
        book.set_price(ADMIN, PRICE * 5)
        assert book.price_per_month == PRICE * 5

    def test_new_price_applies(self, book: SubscriptionBook) -> None:
        book.set_price(ADMIN, PRICE * 2)
        with pytest.raises(WrongValue):
            book.subscribe(USER, months=1, pub_key=b"", value=PRICE)
        book.subscribe(USER, months=1, pub_key=b"", value=PRICE * 2)

    def test_events(self, ledger: PayoutLedger, clock: FakeClock) -> None:
        log = EventLog()
        book = SubscriptionBook(ADMIN, ledger, PRICE, event_log=log, now=clock)
        book.set_price(ADMIN, PRICE * 2)
        book.subscribe(USER, months=1, pub_key=b"\xab", value=PRICE * 2)
        kinds = [e.event_kind for e in log.events()]
        assert kinds == [EventKind.PRICE_CHANGED, EventKind.SUBSCRIBED]
        assert log.events()[-1].payload["pub_key"] == "ab"
