"""Cryptographic primitives — Merkle commitments, epoch clock, root anchor."""

from gunrelay.crypto.anchor import RootAnchor
from gunrelay.crypto.epoch_clock import EpochClock
from gunrelay.crypto.merkle import MerkleTree, relay_leaf, verify_proof

__all__ = ["MerkleTree", "EpochClock", "RootAnchor", "relay_leaf", "verify_proof"]
