"""Payout ledger — relay stakes and stake-proportional release of collected fees.

The ledger holds a single balance made of two parts: the relays' locked
stakes and everything else (subscription fees and other deposits). Only
the second part is ever paid out:

    payable      = max(0, balance - total_stake)
    basis        = payable + total_released
    entitlement  = basis * stake // total_stake - released

``total_released`` is the sum of ``released`` over current records, so
``basis`` is everything the current relays have earned and a relay's share
does not shrink because another relay claimed first. A joining relay
starts with ``released`` at its share of the existing basis, so it earns
only from later deposits. A leaving relay takes its ``released`` out of
the total and its unclaimed share stays with the remaining relays.

A claim must prove, against the anchored Merkle root, that the relay
was alive in the epoch it names.

Invariants enforced:
- ``balance >= total_stake`` after every transaction (stake floor).
- A record's ``released`` never decreases.
- State is committed before the external transfer; a failed transfer
  reverts the whole transaction.
- Every public mutation runs under one lock, so transactions serialize.

Relays are kept in an index-addressed arena (list + address → slot map)
so ``get_relay_at`` enumeration is stable and ``leave`` is O(1) via
swap-and-pop.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Optional, Sequence

from eth_utils import encode_hex, to_checksum_address

from gunrelay.crypto.anchor import RootReader
from gunrelay.crypto.merkle import ZERO_HASH, relay_leaf, verify_proof
from gunrelay.errors import (
    AlreadyRelay,
    InvalidProof,
    NotARelay,
    NothingToRelease,
    RootNotSet,
    TransferFailed,
    ZeroStake,
)
from gunrelay.membership.transfer import FundTransfer
from gunrelay.models.relay import RelayEndpoint, RelayRecord
from gunrelay.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class PayoutLedger:
    """Serialized, in-process ledger of relay stakes and releases.

    Usage:
        ledger = PayoutLedger(anchor=anchor, transfer=transfer)
        ledger.join(relay, "ws://relay.example:8765/gun", value=10**18)
        ledger.deposit(user, value=10**17)
        paid = ledger.release_with_proof(relay, epoch, proof)
    """

    def __init__(
        self,
        anchor: RootReader,
        transfer: FundTransfer,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._anchor = anchor
        self._transfer = transfer
        self._event_log = event_log
        self._lock = threading.RLock()

        self._records: dict[str, RelayRecord] = {}
        self._index: list[str] = []
        self._slots: dict[str, int] = {}

        self._balance = 0
        self._total_stake = 0
        self._total_released = 0

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def total_stake(self) -> int:
        return self._total_stake

    @property
    def total_released(self) -> int:
        """Sum of ``released`` over current relays, including join offsets."""
        return self._total_released

    @property
    def distributable_funds(self) -> int:
        with self._lock:
            return self._payable()

    def relay(self, address: str) -> Optional[RelayRecord]:
        """Snapshot of a relay's record, or None if not staked."""
        with self._lock:
            record = self._records.get(to_checksum_address(address))
            return replace(record) if record is not None else None

    def stake_of(self, address: str) -> int:
        record = self._records.get(to_checksum_address(address))
        return record.stake if record is not None else 0

    def released_of(self, address: str) -> int:
        record = self._records.get(to_checksum_address(address))
        return record.released if record is not None else 0

    def entitlement(self, address: str) -> int:
        """Amount ``address`` could release right now, ignoring proofs."""
        with self._lock:
            record = self._records.get(to_checksum_address(address))
            if record is None:
                return 0
            owed, payable = self._owed(record)
            return max(0, min(owed, payable))

    # Directory accessors (read by the heartbeat coordinator)

    def get_relay_count(self) -> int:
        return len(self._index)

    def get_relay_at(self, i: int) -> str:
        with self._lock:
            if not 0 <= i < len(self._index):
                raise IndexError(f"Relay index {i} out of range")
            return self._index[i]

    def relay_url(self, address: str) -> str:
        """Endpoint URL of a relay, empty string if not staked."""
        record = self._records.get(to_checksum_address(address))
        return record.endpoint_url if record is not None else ""

    def relays(self) -> list[RelayEndpoint]:
        with self._lock:
            return [
                RelayEndpoint(address=a, url=self._records[a].endpoint_url)
                for a in self._index
            ]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def join(self, caller: str, url: str, value: int) -> RelayRecord:
        """Register ``caller`` as a relay staking ``value`` wei."""
        caller = to_checksum_address(caller)
        if value <= 0:
            raise ZeroStake("Stake must be greater than zero")

        with self._lock:
            if caller in self._records:
                raise AlreadyRelay(f"{caller} is already a relay")
            # Entitlement starts at zero.
            debt = self._basis() * value // self._total_stake if self._total_stake else 0
            record = RelayRecord(
                address=caller, endpoint_url=url, stake=value, released=debt,
            )
            self._records[caller] = record
            self._slots[caller] = len(self._index)
            self._index.append(caller)
            self._total_stake += value
            self._balance += value
            self._total_released += debt

        logger.info("Relay %s joined with stake %d at %s", caller, value, url)
        self._record(EventKind.RELAY_JOINED, caller, url=url, stake=value)
        return replace(record)

    def leave(self, caller: str) -> int:
        """Unstake ``caller``, drop it from the directory and refund its stake."""
        caller = to_checksum_address(caller)
        with self._lock:
            record = self._records.get(caller)
            if record is None or record.stake == 0:
                raise NotARelay(f"{caller} is not a relay")

            stake = record.stake
            slot = self._remove_from_index(caller)
            del self._records[caller]
            record.active = False
            self._total_stake -= stake
            self._total_released -= record.released
            self._balance -= stake

            try:
                self._send(caller, stake)
            except TransferFailed:
                self._restore_to_index(caller, slot)
                record.active = True
                self._records[caller] = record
                self._total_stake += stake
                self._total_released += record.released
                self._balance += stake
                raise

        logger.info("Relay %s left, refunded %d", caller, stake)
        self._record(EventKind.RELAY_LEFT, caller, refunded=stake)
        return stake

    def deposit(self, sender: str, value: int, reason: str = "deposit") -> None:
        """Credit funds that are distributable to relays."""
        if value <= 0:
            raise ValueError("Deposit must be positive")
        with self._lock:
            self._balance += value
        self._record(
            EventKind.FUNDS_DEPOSITED, to_checksum_address(sender),
            amount=value, reason=reason,
        )

    def release_with_proof(
        self, caller: str, epoch: int, proof: Sequence[bytes],
    ) -> int:
        """Pay ``caller`` its outstanding share, given proof it was alive in ``epoch``.

        Returns the amount transferred.
        """
        caller = to_checksum_address(caller)
        with self._lock:
            record = self._records.get(caller)
            if record is None or record.stake == 0:
                raise NotARelay(f"{caller} is not a relay")

            root = self._anchor.roots(epoch)
            if root == ZERO_HASH:
                raise RootNotSet(f"No root published for epoch {epoch}")

            leaf = relay_leaf(caller, epoch)
            if not verify_proof(proof, root, leaf):
                raise InvalidProof(
                    f"Proof for {caller} does not match root {encode_hex(root)} "
                    f"of epoch {epoch}"
                )

            owed, payable = self._owed(record)
            if owed <= 0:
                raise NothingToRelease(f"Nothing to release for {caller}")
            amount = min(owed, payable)
            if amount <= 0:
                # Balance is below total stake; stake is never paid out.
                raise NothingToRelease(f"No liquid funds to release for {caller}")

            record.released += amount
            self._total_released += amount
            self._balance -= amount

            try:
                self._send(caller, amount)
            except TransferFailed:
                record.released -= amount
                self._total_released -= amount
                self._balance += amount
                raise

        logger.info("Released %d to %s for epoch %d", amount, caller, epoch)
        self._record(EventKind.FUNDS_RELEASED, caller, amount=amount, epoch=epoch)
        return amount

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _payable(self) -> int:
        return max(0, self._balance - self._total_stake)

    def _basis(self) -> int:
        return self._payable() + self._total_released

    def _owed(self, record: RelayRecord) -> tuple[int, int]:
        """(cumulative share minus already released, currently liquid funds)."""
        payable = self._payable()
        if self._total_stake == 0:
            return 0, payable
        return self._basis() * record.stake // self._total_stake - record.released, payable

    def _send(self, recipient: str, amount: int) -> None:
        try:
            ok = self._transfer(recipient, amount)
        except Exception as exc:
            logger.warning("Transfer of %d to %s raised: %s", amount, recipient, exc)
            raise TransferFailed(f"Transfer to {recipient} failed: {exc}") from exc
        if not ok:
            logger.warning("Transfer of %d to %s was rejected", amount, recipient)
            raise TransferFailed(f"Transfer to {recipient} was rejected")

    def _remove_from_index(self, address: str) -> int:
        """Swap-and-pop ``address`` out of the index. Returns its old slot."""
        slot = self._slots.pop(address)
        last = self._index.pop()
        if last != address:
            self._index[slot] = last
            self._slots[last] = slot
        return slot

    def _restore_to_index(self, address: str, slot: int) -> None:
        """Exact inverse of ``_remove_from_index``."""
        if slot == len(self._index):
            self._index.append(address)
        else:
            moved = self._index[slot]
            self._slots[moved] = len(self._index)
            self._index.append(moved)
            self._index[slot] = address
        self._slots[address] = slot

    def _record(self, kind: EventKind, actor: str, **payload: object) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor, **payload)
