"""Tests for the gunrelay CLI — parsing and the offline commands."""

import json

import pytest
from eth_utils import encode_hex

from gunrelay.cli import build_parser, main
from gunrelay.crypto.merkle import relay_leaf, verify_proof
from gunrelay.models.commitment import MerkleCommitment
from gunrelay.persistence.event_log import EventKind, EventLog

RELAYS = [f"0x{n:040x}" for n in (1, 2, 3)]


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "oracle.json"
    path.write_text(json.dumps({"epoch_duration_seconds": 3600}), encoding="utf-8")
    return path


@pytest.fixture
def log_path(tmp_path):
    path = tmp_path / "events.jsonl"
    commitment = MerkleCommitment.build(7, RELAYS)
    EventLog(storage_path=path).record(
        EventKind.ROOT_PUBLISHED, RELAYS[0], **commitment.to_payload(),
    )
    return path


class TestCLIParsing:
    def test_epoch_command(self) -> None:
        args = build_parser().parse_args(["epoch", "--at", "7200"])
        assert args.command == "epoch"
        assert args.at == 7200

    def test_leaf_command(self) -> None:
        args = build_parser().parse_args(["leaf", "--address", RELAYS[0], "--epoch", "3"])
        assert args.command == "leaf"
        assert args.epoch == 3

    def test_release_requires_epoch(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["release"])


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0

    def test_epoch_at(self, config_file, capsys) -> None:
        assert main(["--config", str(config_file), "epoch", "--at", "7200"]) == 0
        assert capsys.readouterr().out.strip() == "2"

    def test_leaf(self, capsys) -> None:
        assert main(["leaf", "--address", RELAYS[0], "--epoch", "3"]) == 0
        assert capsys.readouterr().out.strip() == encode_hex(relay_leaf(RELAYS[0], 3))

    def test_proof_from_log(self, config_file, log_path, capsys) -> None:
        exit_code = main([
            "--config", str(config_file),
            "proof", "--address", RELAYS[1], "--epoch", "7", "--log", str(log_path),
        ])
        assert exit_code == 0
        out = json.loads(capsys.readouterr().out)
        proof = [bytes.fromhex(p[2:]) for p in out["proof"]]
        root = bytes.fromhex(out["root"][2:])
        assert verify_proof(proof, root, relay_leaf(RELAYS[1], 7))

    def test_proof_unknown_epoch(self, config_file, log_path) -> None:
        exit_code = main([
            "--config", str(config_file),
            "proof", "--address", RELAYS[1], "--epoch", "8", "--log", str(log_path),
        ])
        assert exit_code == 1

    def test_proof_absent_relay(self, config_file, log_path) -> None:
        exit_code = main([
            "--config", str(config_file),
            "proof", "--address", f"0x{9:040x}", "--epoch", "7", "--log", str(log_path),
        ])
        assert exit_code == 1

    def test_heartbeat_without_chain_settings_fails(self, config_file, capsys) -> None:
        assert main(["--config", str(config_file), "heartbeat"]) == 1
        assert "RPC_URL" in capsys.readouterr().err

    def test_bad_config_fails(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"probe_workers": 0}), encoding="utf-8")
        assert main(["--config", str(path), "epoch"]) == 1

    def test_heartbeat_passes_write_once(self, tmp_path, monkeypatch) -> None:
        import gunrelay.chain as chain

        built: dict = {}

        class RecordingAnchor:
            address = "0x" + "ad" * 20

            def __init__(self, w3, oracle_address, private_key, chain_id, write_once=False):
                built["write_once"] = write_once

        class EmptyDirectory:
            def __init__(self, w3, membership_address) -> None:
                pass

            def get_relay_count(self) -> int:
                return 0

        monkeypatch.setattr(chain, "connect", lambda rpc_url: object())
        monkeypatch.setattr(chain, "Web3RootAnchor", RecordingAnchor)
        monkeypatch.setattr(chain, "Web3RelayDirectory", EmptyDirectory)

        path = tmp_path / "oracle.json"
        path.write_text(json.dumps({
            "rpc_url": "http://127.0.0.1:8545",
            "private_key": "0x" + "11" * 32,
            "membership_address": "0x" + "01" * 20,
            "oracle_address": "0x" + "0c" * 20,
            "root_write_once": True,
            "event_log_path": str(tmp_path / "events.jsonl"),
        }), encoding="utf-8")

        # An empty directory aborts the cycle before anything is sent.
        assert main(["--config", str(path), "heartbeat"]) == 1
        assert built == {"write_once": True}
