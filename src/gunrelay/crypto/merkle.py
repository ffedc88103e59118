"""Merkle tree over relay liveness leaves.

Uses Keccak-256 as the hash function, matching the on-chain verifier.
Each leaf is keccak256(address || epoch) with the address in its 20-byte
binary form and the epoch as a 32-byte big-endian integer (Solidity
``abi.encodePacked(address, uint256)``).

Interior nodes hash the two children in sorted order, so a proof is a
plain list of sibling hashes with no left/right markers. Leaves are
de-duplicated and sorted before construction so the root does not depend
on the order in which relays were probed. A level with an odd number of
nodes duplicates its last node.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from eth_abi.packed import encode_packed
from eth_utils import keccak, to_checksum_address

HASH_SIZE = 32
ZERO_HASH = b"\x00" * HASH_SIZE


class EmptyTreeError(ValueError):
    """Raised when a root is requested for a tree with no leaves."""


def relay_leaf(address: str, epoch: int) -> bytes:
    """Compute the leaf hash attesting that ``address`` was alive in ``epoch``."""
    if epoch < 0:
        raise ValueError(f"Epoch must be non-negative, got {epoch}")
    packed = encode_packed(["address", "uint256"], [to_checksum_address(address), epoch])
    return keccak(packed)


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two sibling nodes in sorted order."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def verify_proof(proof: Sequence[bytes], root: bytes, leaf: bytes) -> bool:
    """Return True iff ``proof`` reconstructs ``root`` from ``leaf``.

    Independent of tree construction: only the sorted-pair rule is shared.
    """
    if len(root) != HASH_SIZE or len(leaf) != HASH_SIZE:
        return False
    computed = leaf
    for sibling in proof:
        if len(sibling) != HASH_SIZE:
            return False
        computed = hash_pair(computed, sibling)
    return computed == root


class MerkleTree:
    """A deterministic sorted-pair Keccak-256 Merkle tree.

    Usage:
        tree = MerkleTree([relay_leaf(a, epoch) for a in survivors])
        root = tree.compute_root()
        proof = tree.proof(relay_leaf(survivors[0], epoch))
    """

    def __init__(self, leaves: Iterable[bytes] = ()) -> None:
        self._leaves: list[bytes] = []
        self._levels: list[list[bytes]] = []
        self._computed = False
        for leaf in leaves:
            self.add_leaf(leaf)

    def add_leaf(self, leaf: bytes) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        if len(leaf) != HASH_SIZE:
            raise ValueError(f"Leaf must be {HASH_SIZE} bytes, got {len(leaf)}")
        self._leaves.append(bytes(leaf))

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0]) if self._computed else len(set(self._leaves))

    @property
    def leaves(self) -> list[bytes]:
        """Canonical (sorted, unique) leaf list."""
        if self._computed:
            return list(self._levels[0])
        return sorted(set(self._leaves))

    def compute_root(self) -> bytes:
        """Build all levels and return the root.

        A single leaf is its own root. An empty tree has no root.
        """
        if self._computed:
            return self._levels[-1][0]
        if not self._leaves:
            raise EmptyTreeError("Cannot compute a Merkle root without leaves")

        current = sorted(set(self._leaves))
        self._levels = [current]
        while len(current) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(current), 2):
                left = current[i]
                right = current[i + 1] if i + 1 < len(current) else left
                next_level.append(hash_pair(left, right))
            self._levels.append(next_level)
            current = next_level

        self._computed = True
        return current[0]

    @property
    def root(self) -> bytes:
        return self.compute_root()

    def proof(self, leaf: bytes) -> list[bytes] | None:
        """Sibling hashes from ``leaf`` up to the root.

        Returns None if the leaf is not in the tree.
        """
        self.compute_root()
        try:
            idx = self._levels[0].index(leaf)
        except ValueError:
            return None

        path: list[bytes] = []
        for level in self._levels[:-1]:
            if idx % 2 == 0:
                sibling_idx = idx + 1 if idx + 1 < len(level) else idx
            else:
                sibling_idx = idx - 1
            path.append(level[sibling_idx])
            idx //= 2
        return path
