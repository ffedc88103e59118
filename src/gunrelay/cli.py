"""gunrelay CLI — heartbeat oracle and relay claim tooling.

Usage:
    python -m gunrelay.cli epoch
    python -m gunrelay.cli leaf --address 0xRelay... --epoch 485228
    python -m gunrelay.cli heartbeat
    python -m gunrelay.cli proof --address 0xRelay... --epoch 485228
    python -m gunrelay.cli release --epoch 485228

Chain commands read RPC_URL, PRIVATE_KEY, MEMBERSHIP_ADDR and ORACLE_ADDR
from the environment or a .env file.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from eth_utils import encode_hex

from gunrelay.config import OracleConfig
from gunrelay.crypto.epoch_clock import EpochClock
from gunrelay.crypto.merkle import relay_leaf
from gunrelay.oracle.coordinator import HeartbeatCoordinator, commitment_from_log
from gunrelay.oracle.probe import LivenessProbe
from gunrelay.persistence.event_log import EventLog

DEFAULT_EVENT_LOG = Path("data") / "events.jsonl"


def _load_config(args: argparse.Namespace) -> OracleConfig:
    if args.config is not None:
        return OracleConfig.from_file(args.config)
    return OracleConfig.from_env(args.env_file)


def _event_log_path(args: argparse.Namespace, config: OracleConfig) -> Path:
    return getattr(args, "log", None) or config.event_log_path or DEFAULT_EVENT_LOG


def cmd_epoch(args: argparse.Namespace) -> int:
    config = _load_config(args)
    clock = EpochClock(config.epoch_duration_seconds)
    epoch = clock.epoch_at(args.at) if args.at is not None else clock.current_epoch()
    print(epoch)
    return 0


def cmd_leaf(args: argparse.Namespace) -> int:
    print(encode_hex(relay_leaf(args.address, args.epoch)))
    return 0


def cmd_heartbeat(args: argparse.Namespace) -> int:
    from gunrelay.chain import Web3RelayDirectory, Web3RootAnchor, connect

    config = _load_config(args)
    config.require_chain()
    w3 = connect(config.rpc_url)
    anchor = Web3RootAnchor(
        w3, config.oracle_address, config.private_key, config.chain_id,
        write_once=config.root_write_once,
    )
    coordinator = HeartbeatCoordinator(
        directory=Web3RelayDirectory(w3, config.membership_address),
        anchor=anchor,
        probe=LivenessProbe(config.probe_timeout_seconds),
        clock=EpochClock(config.epoch_duration_seconds),
        sender=anchor.address,
        max_workers=config.probe_workers,
        page_size=config.directory_page_size,
        event_log=EventLog(storage_path=_event_log_path(args, config)),
    )
    result = coordinator.try_cycle()
    if result.success:
        print(json.dumps(result.data, indent=2))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_proof(args: argparse.Namespace) -> int:
    config = _load_config(args)
    event_log = EventLog(storage_path=_event_log_path(args, config))
    commitment = commitment_from_log(event_log, args.epoch)
    if commitment is None:
        print(f"Failed: no published root recorded for epoch {args.epoch}", file=sys.stderr)
        return 1
    proof = commitment.proof_for(args.address)
    if proof is None:
        print(f"Failed: {args.address} was not alive in epoch {args.epoch}", file=sys.stderr)
        return 1
    print(json.dumps({
        "epoch": commitment.epoch,
        "root": commitment.root_hex,
        "leaf": encode_hex(relay_leaf(args.address, args.epoch)),
        "proof": [encode_hex(p) for p in proof],
    }, indent=2))
    return 0


def cmd_release(args: argparse.Namespace) -> int:
    from gunrelay.chain import Web3MembershipClient, connect

    config = _load_config(args)
    config.require_chain()
    client = Web3MembershipClient(
        connect(config.rpc_url), config.membership_address,
        config.private_key, config.chain_id,
    )
    event_log = EventLog(storage_path=_event_log_path(args, config))
    commitment = commitment_from_log(event_log, args.epoch)
    proof = commitment.proof_for(client.address) if commitment is not None else None
    if proof is None:
        print(
            f"Failed: {client.address} has no recorded proof for epoch {args.epoch}",
            file=sys.stderr,
        )
        return 1
    tx_hash = client.release_with_proof(args.epoch, proof)
    print(f"Released: {tx_hash}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gunrelay",
        description="Relay heartbeat oracle and stake-proportional payouts",
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--env-file", type=Path, default=None, help=".env file to load")
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("epoch", help="Print the current heartbeat epoch")
    p.add_argument("--at", type=int, default=None, help="Unix time instead of now")

    p = sub.add_parser("leaf", help="Print the leaf hash for a relay and epoch")
    p.add_argument("--address", required=True)
    p.add_argument("--epoch", type=int, required=True)

    sub.add_parser("heartbeat", help="Probe relays and publish this epoch's root")

    p = sub.add_parser("proof", help="Print a relay's inclusion proof for an epoch")
    p.add_argument("--address", required=True)
    p.add_argument("--epoch", type=int, required=True)
    p.add_argument("--log", type=Path, default=None, help="Event log path")

    p = sub.add_parser("release", help="Claim this key's payout for an epoch")
    p.add_argument("--epoch", type=int, required=True)
    p.add_argument("--log", type=Path, default=None, help="Event log path")

    return parser


COMMANDS = {
    "epoch": cmd_epoch,
    "leaf": cmd_leaf,
    "heartbeat": cmd_heartbeat,
    "proof": cmd_proof,
    "release": cmd_release,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return COMMANDS[args.command](args)
    except ValueError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
