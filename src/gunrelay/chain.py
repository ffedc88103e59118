"""Web3 adapters for the deployed membership and oracle-bridge contracts.

These classes give the on-chain contracts the same shape as the
in-process RootAnchor and PayoutLedger, so the heartbeat coordinator
runs unchanged against either.

Transactions are signed locally with the configured key and sent raw;
every call waits for one confirmation.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from eth_account import Account
from eth_utils import encode_hex, to_checksum_address
from web3 import HTTPProvider, Web3

from gunrelay.crypto.anchor import AnchorRecord, check_overwrite

logger = logging.getLogger(__name__)

RECEIPT_TIMEOUT_SECONDS = 300


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


MEMBERSHIP_ABI = [
    _fn("getRelayCount", [], ["uint256"], "view"),
    _fn("getRelayAt", [("i", "uint256")], ["address"], "view"),
    _fn("relayUrl", [("relay", "address")], ["string"], "view"),
    _fn("releaseWithProof", [("epoch", "uint256"), ("proof", "bytes32[]")], [], "nonpayable"),
]

ORACLE_ABI = [
    _fn("publishRoot", [("epoch", "uint256"), ("root", "bytes32")], [], "nonpayable"),
    _fn("roots", [("epoch", "uint256")], ["bytes32"], "view"),
    _fn("getEpochId", [], ["uint256"], "view"),
]


def connect(rpc_url: str) -> Web3:
    return Web3(HTTPProvider(rpc_url))


class _Signer:
    """Builds, signs and sends contract transactions from one key."""

    def __init__(self, w3: Web3, private_key: str, chain_id: int) -> None:
        self._w3 = w3
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id

    @property
    def address(self) -> str:
        return self._account.address

    def send(self, call: Any) -> tuple[str, int]:
        """Send a contract function call. Returns (tx hash, block number)."""
        tx = call.build_transaction({
            "from": self._account.address,
            "nonce": self._w3.eth.get_transaction_count(self._account.address),
            "chainId": self._chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent tx %s, waiting for confirmation", encode_hex(tx_hash))

        receipt = self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS,
        )
        if receipt.status != 1:
            raise RuntimeError(f"Transaction {encode_hex(tx_hash)} reverted")
        return encode_hex(tx_hash), receipt.blockNumber


class Web3RelayDirectory:
    """Read-only RelayDirectory over the membership contract."""

    def __init__(self, w3: Web3, membership_address: str) -> None:
        self._contract = w3.eth.contract(
            address=to_checksum_address(membership_address), abi=MEMBERSHIP_ABI,
        )

    def get_relay_count(self) -> int:
        return int(self._contract.functions.getRelayCount().call())

    def get_relay_at(self, i: int) -> str:
        return to_checksum_address(self._contract.functions.getRelayAt(i).call())

    def relay_url(self, address: str) -> str:
        return self._contract.functions.relayUrl(to_checksum_address(address)).call()


class Web3RootAnchor:
    """RootPublisher / RootReader over the oracle-bridge contract.

    The contract enforces the admin check; ``sender``, if given, must be
    the configured key's address. With ``write_once`` the stored root is
    read before sending and a different root for the epoch is refused.
    """

    def __init__(
        self,
        w3: Web3,
        oracle_address: str,
        private_key: str,
        chain_id: int,
        write_once: bool = False,
    ) -> None:
        self._w3 = w3
        self._write_once = write_once
        self._contract = w3.eth.contract(
            address=to_checksum_address(oracle_address), abi=ORACLE_ABI,
        )
        self._signer = _Signer(w3, private_key, chain_id)

    @property
    def address(self) -> str:
        return self._signer.address

    def publish_root(
        self, epoch: int, root: bytes, sender: Optional[str] = None,
    ) -> AnchorRecord:
        if sender is not None and to_checksum_address(sender) != self._signer.address:
            raise ValueError(f"Sender {sender} does not match signing key {self._signer.address}")
        check_overwrite(epoch, self.roots(epoch), root, self._write_once)
        tx_hash, block_number = self._signer.send(
            self._contract.functions.publishRoot(epoch, root)
        )
        block = self._w3.eth.get_block(block_number)
        return AnchorRecord(
            epoch=epoch,
            root_hex=encode_hex(root),
            published_by=self._signer.address,
            timestamp=int(block.timestamp),
            tx_hash=tx_hash,
        )

    def roots(self, epoch: int) -> bytes:
        return bytes(self._contract.functions.roots(epoch).call())

    def get_epoch_id(self) -> int:
        return int(self._contract.functions.getEpochId().call())


class Web3MembershipClient:
    """Relay-side client that submits releaseWithProof for its own key."""

    def __init__(self, w3: Web3, membership_address: str, private_key: str, chain_id: int) -> None:
        self._contract = w3.eth.contract(
            address=to_checksum_address(membership_address), abi=MEMBERSHIP_ABI,
        )
        self._signer = _Signer(w3, private_key, chain_id)

    @property
    def address(self) -> str:
        return self._signer.address

    def release_with_proof(self, epoch: int, proof: Sequence[bytes]) -> str:
        """Submit the claim and return the transaction hash."""
        logger.info(
            "Calling releaseWithProof(epoch=%d) with proof length %d", epoch, len(proof),
        )
        tx_hash, _ = self._signer.send(
            self._contract.functions.releaseWithProof(epoch, list(proof))
        )
        return tx_hash
