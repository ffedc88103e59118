"""Tests for the Web3 oracle-bridge adapter against an in-memory contract."""

from types import SimpleNamespace

import pytest
from eth_account import Account

from gunrelay.chain import Web3RootAnchor
from gunrelay.crypto.merkle import ZERO_HASH
from gunrelay.errors import RootAlreadyPublished

PRIVATE_KEY = "0x" + "11" * 32
ORACLE = "0x" + "0c" * 20
ROOT_A = b"\xaa" * 32
ROOT_B = b"\xbb" * 32


class _Call:
    def __init__(self, value) -> None:
        self._value = value

    def call(self):
        return self._value


class FakeOracleContract:
    def __init__(self) -> None:
        self.stored: dict[int, bytes] = {}
        self.functions = self

    def roots(self, epoch: int) -> _Call:
        return _Call(self.stored.get(epoch, ZERO_HASH))

    def publishRoot(self, epoch: int, root: bytes) -> tuple:
        return ("publishRoot", epoch, root)


class FakeWeb3:
    def __init__(self, contract: FakeOracleContract) -> None:
        self.eth = SimpleNamespace(
            contract=lambda address, abi: contract,
            get_block=lambda number: SimpleNamespace(timestamp=1_700_000_000),
        )


@pytest.fixture
def contract() -> FakeOracleContract:
    return FakeOracleContract()


def _anchor(contract: FakeOracleContract, write_once: bool) -> tuple[Web3RootAnchor, list]:
    anchor = Web3RootAnchor(FakeWeb3(contract), ORACLE, PRIVATE_KEY, 31337, write_once=write_once)
    sent: list = []

    def send(call):
        sent.append(call)
        _, epoch, root = call
        contract.stored[epoch] = root
        return "0x" + "ab" * 32, 7

    anchor._signer.send = send
    return anchor, sent


class TestWeb3RootAnchor:
    def test_publish_sends_transaction(self, contract: FakeOracleContract) -> None:
        anchor, sent = _anchor(contract, write_once=False)
        record = anchor.publish_root(5, ROOT_A)
        assert sent == [("publishRoot", 5, ROOT_A)]
        assert record.tx_hash == "0x" + "ab" * 32
        assert record.timestamp == 1_700_000_000
        assert record.published_by == Account.from_key(PRIVATE_KEY).address
        assert anchor.roots(5) == ROOT_A

    def test_overwrite_allowed_by_default(self, contract: FakeOracleContract) -> None:
        anchor, sent = _anchor(contract, write_once=False)
        anchor.publish_root(5, ROOT_A)
        anchor.publish_root(5, ROOT_B)
        assert len(sent) == 2
        assert anchor.roots(5) == ROOT_B

    def test_write_once_refuses_different_root(self, contract: FakeOracleContract) -> None:
        anchor, sent = _anchor(contract, write_once=True)
        anchor.publish_root(5, ROOT_A)
        with pytest.raises(RootAlreadyPublished):
            anchor.publish_root(5, ROOT_B)
        assert len(sent) == 1
        assert anchor.roots(5) == ROOT_A

    def test_write_once_allows_same_root_and_new_epochs(
        self, contract: FakeOracleContract,
    ) -> None:
        anchor, sent = _anchor(contract, write_once=True)
        anchor.publish_root(5, ROOT_A)
        anchor.publish_root(5, ROOT_A)
        anchor.publish_root(6, ROOT_B)
        assert len(sent) == 3

    def test_sender_must_match_key(self, contract: FakeOracleContract) -> None:
        anchor, sent = _anchor(contract, write_once=False)
        with pytest.raises(ValueError, match="does not match"):
            anchor.publish_root(5, ROOT_A, sender="0x" + "01" * 20)
        assert sent == []
