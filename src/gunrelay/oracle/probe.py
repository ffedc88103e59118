"""Liveness probe — one bounded WebSocket handshake against a relay endpoint.

GunDB relays serve their peer protocol over WebSocket, so a completed
opening handshake is the liveness signal. The probe never raises: any
transport error, DNS failure or timeout means the relay is dead. It does
not retry.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import websocket

from gunrelay.models.relay import ProbeResult, RelayEndpoint

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0

_SCHEME_MAP = {"http://": "ws://", "https://": "wss://"}


def to_websocket_url(url: str) -> str:
    """Normalise a relay URL to a ws:// or wss:// URL."""
    url = url.strip()
    for http, ws in _SCHEME_MAP.items():
        if url.startswith(http):
            return ws + url[len(http):]
    return url


class LivenessProbe:
    """Checks whether a relay completes a WebSocket handshake in time.

    Usage:
        probe = LivenessProbe(timeout_seconds=5.0)
        probe.is_alive("ws://relay.example:8765/gun")  # -> bool
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError(f"Probe timeout must be positive, got {timeout_seconds}")
        self._timeout = timeout_seconds
        self._connect = connect or websocket.create_connection

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def is_alive(self, url: str) -> bool:
        ws_url = to_websocket_url(url)
        if not ws_url:
            return False
        try:
            conn = self._connect(ws_url, timeout=self._timeout)
        except Exception as exc:  # any failure to connect means dead
            logger.debug("Probe %s failed: %s", ws_url, exc)
            return False
        try:
            conn.close()
        except Exception as exc:
            logger.debug("Closing probe connection to %s failed: %s", ws_url, exc)
        return True

    def probe(self, endpoint: RelayEndpoint) -> ProbeResult:
        started = time.monotonic()
        alive = self.is_alive(endpoint.url)
        elapsed = time.monotonic() - started
        logger.debug(
            "Relay %s at %s is %s (%.3fs)",
            endpoint.address, endpoint.url, "alive" if alive else "dead", elapsed,
        )
        return ProbeResult(
            address=endpoint.address, url=endpoint.url, alive=alive,
            elapsed_seconds=elapsed,
        )
