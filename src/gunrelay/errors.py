"""Error taxonomy for the payout ledger, the root anchor and the oracle.

Ledger errors are fail-fast: the operation that raised them left no
partial state behind. Heartbeat errors are cycle-local; the next
scheduled cycle starts from scratch.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for rejected ledger transactions."""


class NotARelay(LedgerError):
    """Caller has no stake in the ledger."""


class AlreadyRelay(LedgerError):
    """Caller is already staked."""


class ZeroStake(LedgerError):
    """A join was attempted without any stake."""


class RootNotSet(LedgerError):
    """No root has been published for the requested epoch."""


class InvalidProof(LedgerError):
    """The proof does not reconstruct the published root for the caller's leaf."""


class NothingToRelease(LedgerError):
    """The caller's entitlement is zero."""


class TransferFailed(LedgerError):
    """The external value transfer failed; the whole mutation was reverted."""


class Unauthorized(LedgerError):
    """Caller is not the admin identity."""


class InvalidMonths(LedgerError):
    """Subscription length must be at least one month."""


class WrongValue(LedgerError):
    """Attached value does not match price * months."""


class AnchorError(Exception):
    """Base class for root anchor failures."""


class RootAlreadyPublished(AnchorError):
    """Write-once anchor refused to replace an existing root."""


class HeartbeatError(Exception):
    """Base class for an aborted heartbeat cycle."""


class NoRelaysAlive(HeartbeatError):
    """No relay answered the liveness probe; nothing is published."""


class DirectoryReadFailed(HeartbeatError):
    """The relay directory could not be read; nothing is published."""


class PublishFailed(HeartbeatError):
    """The root could not be written to the anchor."""
