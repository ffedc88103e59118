"""Relay models — ledger records, directory entries and probe outcomes.

All amounts are integers in wei. No floats in the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RelayRecord:
    """A staked relay as held by the payout ledger.

    ``stake`` is fixed at join time. ``released`` only ever grows.
    """
    address: str
    endpoint_url: str
    stake: int
    released: int = 0
    active: bool = True


@dataclass(frozen=True)
class RelayEndpoint:
    """One entry of the public relay directory."""
    address: str
    url: str


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single liveness probe."""
    address: str
    url: str
    alive: bool
    elapsed_seconds: float = 0.0
