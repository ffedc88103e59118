"""Fund transfer abstraction — how the ledger hands value to a recipient.

The payout ledger never moves funds itself. It commits its own state
first and only then calls a FundTransfer. A transfer that raises or
returns False makes the ledger roll back the whole mutation.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from eth_utils import to_checksum_address


@runtime_checkable
class FundTransfer(Protocol):
    """Sends ``amount`` wei to ``recipient``. Returns False (or raises) on failure."""

    def __call__(self, recipient: str, amount: int) -> bool:
        ...


@dataclass(frozen=True)
class TransferReceipt:
    recipient: str
    amount: int


class RecordingTransfer:
    """In-memory FundTransfer that records every payment it makes.

    Recipients in ``rejecting`` refuse payment, the way a contract
    without a payable fallback would.
    """

    def __init__(self, rejecting: frozenset[str] = frozenset()) -> None:
        self._rejecting = {to_checksum_address(a) for a in rejecting}
        self.receipts: list[TransferReceipt] = []
        self.balances: defaultdict[str, int] = defaultdict(int)

    def reject(self, recipient: str) -> None:
        self._rejecting.add(to_checksum_address(recipient))

    def __call__(self, recipient: str, amount: int) -> bool:
        recipient = to_checksum_address(recipient)
        if recipient in self._rejecting:
            return False
        self.receipts.append(TransferReceipt(recipient=recipient, amount=amount))
        self.balances[recipient] += amount
        return True

    def total_paid(self, recipient: str) -> int:
        return self.balances[to_checksum_address(recipient)]
