"""gunrelay — relay heartbeat oracle and stake-proportional payout ledger."""

__version__ = "0.1.0"
