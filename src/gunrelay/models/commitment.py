"""Epoch commitment model.

Every completed heartbeat cycle produces one MerkleCommitment: the epoch,
the surviving relay addresses and the root over their leaves. The root
is what gets anchored; the relay list is what lets any relay rebuild its
own inclusion proof later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from eth_utils import decode_hex, encode_hex, to_checksum_address

from gunrelay.crypto.merkle import MerkleTree, relay_leaf


@dataclass(frozen=True)
class MerkleCommitment:
    """A single epoch's liveness commitment. Immutable once built."""
    epoch: int
    root: bytes
    relays: tuple[str, ...]
    leaves: tuple[bytes, ...]

    @classmethod
    def build(cls, epoch: int, relays: Iterable[str]) -> MerkleCommitment:
        """Build the commitment for ``relays`` alive in ``epoch``.

        Raises EmptyTreeError if ``relays`` is empty.
        """
        addresses = tuple(dict.fromkeys(to_checksum_address(a) for a in relays))
        tree = MerkleTree(relay_leaf(a, epoch) for a in addresses)
        root = tree.compute_root()
        return cls(epoch=epoch, root=root, relays=addresses, leaves=tuple(tree.leaves))

    def proof_for(self, address: str) -> Optional[list[bytes]]:
        """Inclusion proof for ``address``, or None if it was not alive."""
        tree = MerkleTree(self.leaves)
        return tree.proof(relay_leaf(address, self.epoch))

    @property
    def root_hex(self) -> str:
        return encode_hex(self.root)

    def to_payload(self) -> dict[str, Any]:
        return {
            "epoch": self.epoch,
            "root": self.root_hex,
            "relays": list(self.relays),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> MerkleCommitment:
        """Rebuild from a ``to_payload`` dict, checking the stored root."""
        commitment = cls.build(int(payload["epoch"]), payload["relays"])
        if commitment.root != decode_hex(payload["root"]):
            raise ValueError(
                f"Stored root {payload['root']} does not match relays for "
                f"epoch {payload['epoch']} (computed {commitment.root_hex})"
            )
        return commitment
