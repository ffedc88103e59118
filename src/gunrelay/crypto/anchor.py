"""Root anchor — the epoch → Merkle root store that payout claims verify against.

The oracle publishes one root per epoch. Any relay can later read the
root back and prove that its leaf is included. Only the admin identity
may publish.

Republishing an epoch replaces the previous root. That retroactively
invalidates proofs built against the old root, so overwrites are logged
and can be refused entirely with ``write_once=True``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from eth_utils import encode_hex, to_checksum_address

from gunrelay.crypto.merkle import HASH_SIZE, ZERO_HASH
from gunrelay.errors import RootAlreadyPublished, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorRecord:
    """A record of a successful root publication."""
    epoch: int
    root_hex: str
    published_by: str
    timestamp: int
    tx_hash: Optional[str] = None


@runtime_checkable
class RootReader(Protocol):
    """Read side of the anchor, consumed by the payout ledger."""

    def roots(self, epoch: int) -> bytes:
        """Root for ``epoch``, or the zero hash if none was published."""
        ...


@runtime_checkable
class RootPublisher(Protocol):
    """Write side of the anchor, consumed by the heartbeat coordinator."""

    def publish_root(
        self, epoch: int, root: bytes, sender: Optional[str] = None,
    ) -> AnchorRecord:
        ...


def check_overwrite(
    epoch: int, previous: Optional[bytes], root: bytes, write_once: bool,
) -> None:
    """Refuse (write-once) or log replacing a different root for ``epoch``."""
    if previous is None or previous in (ZERO_HASH, root):
        return
    if write_once:
        raise RootAlreadyPublished(
            f"Epoch {epoch} already anchored to {encode_hex(previous)}"
        )
    logger.warning(
        "Overwriting root for epoch %d: %s -> %s",
        epoch, encode_hex(previous), encode_hex(root),
    )


class RootAnchor:
    """In-process anchor with single-writer admin control.

    Usage:
        anchor = RootAnchor(admin="0xAdmin...")
        anchor.publish_root(epoch, root, sender="0xAdmin...")
        anchor.roots(epoch)  # -> root
    """

    def __init__(
        self,
        admin: str,
        write_once: bool = False,
        now: Optional[Callable[[], float]] = None,
    ) -> None:
        self._admin = to_checksum_address(admin)
        self._write_once = write_once
        self._now = now or time.time
        self._roots: dict[int, bytes] = {}
        self._timestamps: dict[int, int] = {}
        self._last_epoch = 0
        self._lock = threading.Lock()

    @property
    def admin(self) -> str:
        return self._admin

    def publish_root(
        self, epoch: int, root: bytes, sender: Optional[str] = None,
    ) -> AnchorRecord:
        """Store ``root`` for ``epoch``. Admin only."""
        if sender is None or to_checksum_address(sender) != self._admin:
            raise Unauthorized(f"Only the anchor admin may publish roots (got {sender})")
        if epoch < 0:
            raise ValueError(f"Epoch must be non-negative, got {epoch}")
        if len(root) != HASH_SIZE or root == ZERO_HASH:
            raise ValueError("Root must be a non-zero 32-byte hash")

        with self._lock:
            check_overwrite(epoch, self._roots.get(epoch), root, self._write_once)
            timestamp = int(self._now())
            self._roots[epoch] = bytes(root)
            self._timestamps[epoch] = timestamp
            self._last_epoch = epoch

        record = AnchorRecord(
            epoch=epoch,
            root_hex=encode_hex(root),
            published_by=self._admin,
            timestamp=timestamp,
        )
        logger.info("Published root %s for epoch %d", record.root_hex, epoch)
        return record

    def roots(self, epoch: int) -> bytes:
        return self._roots.get(epoch, ZERO_HASH)

    def root_timestamp(self, epoch: int) -> int:
        """Unix time the epoch's root was (last) written, 0 if unset."""
        return self._timestamps.get(epoch, 0)

    def get_epoch_id(self) -> int:
        """Most recently published epoch.

        Informational only: several epochs can hold roots at once and the
        epoch of a new cycle always comes from the EpochClock.
        """
        return self._last_epoch

    def published_epochs(self) -> list[int]:
        return sorted(self._roots)
