"""Oracle configuration.

Settings come from the environment, optionally seeded from a ``.env``
file, or from a JSON document. Chain settings are only required by the
commands that talk to a node.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from gunrelay.crypto.epoch_clock import DEFAULT_EPOCH_DURATION_SECONDS
from gunrelay.oracle.coordinator import DEFAULT_PROBE_WORKERS
from gunrelay.oracle.directory import DEFAULT_PAGE_SIZE
from gunrelay.oracle.probe import DEFAULT_PROBE_TIMEOUT_SECONDS

SEPOLIA_CHAIN_ID = 11155111

# field name -> environment variable
_ENV_VARS = {
    "epoch_duration_seconds": "EPOCH_DURATION_SECONDS",
    "probe_timeout_seconds": "PROBE_TIMEOUT_SECONDS",
    "probe_workers": "PROBE_WORKERS",
    "directory_page_size": "DIRECTORY_PAGE_SIZE",
    "root_write_once": "ROOT_WRITE_ONCE",
    "rpc_url": "RPC_URL",
    "private_key": "PRIVATE_KEY",
    "membership_address": "MEMBERSHIP_ADDR",
    "oracle_address": "ORACLE_ADDR",
    "chain_id": "CHAIN_ID",
    "event_log_path": "EVENT_LOG_PATH",
}

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class OracleConfig:
    epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
    probe_workers: int = DEFAULT_PROBE_WORKERS
    directory_page_size: int = DEFAULT_PAGE_SIZE
    root_write_once: bool = False
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    membership_address: Optional[str] = None
    oracle_address: Optional[str] = None
    chain_id: int = SEPOLIA_CHAIN_ID
    event_log_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.epoch_duration_seconds <= 0:
            raise ValueError("epoch_duration_seconds must be positive")
        if self.probe_timeout_seconds <= 0:
            raise ValueError("probe_timeout_seconds must be positive")
        if self.probe_workers <= 0:
            raise ValueError("probe_workers must be positive")
        if self.directory_page_size <= 0:
            raise ValueError("directory_page_size must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> OracleConfig:
        """Build from a mapping of field names to raw (possibly string) values."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: _coerce(k, v) for k, v in data.items() if v is not None})

    @classmethod
    def from_file(cls, path: Path) -> OracleConfig:
        return cls.from_mapping(json.loads(path.read_text(encoding="utf-8")))

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> OracleConfig:
        """Read settings from the environment after loading ``env_file``.

        Values already in the environment win over the file.
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ
        values = {
            name: environ[var] for name, var in _ENV_VARS.items()
            if environ.get(var) not in (None, "")
        }
        return cls.from_mapping(values)

    def require_chain(self) -> None:
        """Raise ValueError naming every chain setting that is missing."""
        missing = [
            _ENV_VARS[name]
            for name in ("rpc_url", "private_key", "membership_address", "oracle_address")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Missing chain settings: {', '.join(missing)}")


def _coerce(name: str, value: Any) -> Any:
    if name in ("epoch_duration_seconds", "probe_workers", "directory_page_size", "chain_id"):
        return int(value)
    if name == "probe_timeout_seconds":
        return float(value)
    if name == "root_write_once":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE
    if name == "event_log_path":
        return Path(value)
    return str(value)
