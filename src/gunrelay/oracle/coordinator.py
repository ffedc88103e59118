"""Heartbeat coordinator — one oracle cycle: probe, commit, anchor.

A cycle:
1. Tags itself with the current epoch from the EpochClock.
2. Reads the relay directory page by page.
3. Probes every relay in parallel and waits for all probes to settle.
4. Aborts without publishing if no relay is alive.
5. Builds the Merkle commitment over the survivors.
6. Publishes (epoch, root) to the anchor.

Nothing is published until the full survivor set is known, so a cycle
that fails or is abandoned part-way leaves no trace on the anchor.
Cycles are independent; the next one starts from fresh data.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from gunrelay.crypto.anchor import AnchorRecord, RootPublisher
from gunrelay.crypto.epoch_clock import EpochClock
from gunrelay.errors import (
    DirectoryReadFailed,
    HeartbeatError,
    NoRelaysAlive,
    PublishFailed,
)
from gunrelay.models.commitment import MerkleCommitment
from gunrelay.models.relay import ProbeResult, RelayEndpoint
from gunrelay.oracle.directory import DEFAULT_PAGE_SIZE, RelayDirectory, iter_directory
from gunrelay.oracle.probe import LivenessProbe
from gunrelay.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

DEFAULT_PROBE_WORKERS = 16
# Slack on top of the probe timeout before the barrier gives up on a probe.
BARRIER_GRACE_SECONDS = 1.0


@dataclass(frozen=True)
class CycleResult:
    """Result of a heartbeat cycle."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class HeartbeatCoordinator:
    """Runs heartbeat cycles against a directory and an anchor.

    Usage:
        coordinator = HeartbeatCoordinator(
            directory=ledger, anchor=anchor, probe=LivenessProbe(),
            clock=EpochClock(), sender=admin,
        )
        result = coordinator.try_cycle()
    """

    def __init__(
        self,
        directory: RelayDirectory,
        anchor: RootPublisher,
        probe: LivenessProbe,
        clock: EpochClock,
        sender: Optional[str] = None,
        max_workers: int = DEFAULT_PROBE_WORKERS,
        page_size: int = DEFAULT_PAGE_SIZE,
        event_log: Optional[EventLog] = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._directory = directory
        self._anchor = anchor
        self._probe = probe
        self._clock = clock
        self._sender = sender
        self._max_workers = max_workers
        self._page_size = page_size
        self._event_log = event_log

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> tuple[MerkleCommitment, AnchorRecord]:
        """Run one full cycle. Raises HeartbeatError if the cycle aborts."""
        epoch = self._clock.current_epoch()
        try:
            endpoints = list(iter_directory(self._directory, self._page_size))
        except Exception as exc:
            raise DirectoryReadFailed(
                f"Reading the relay directory for epoch {epoch} failed: {exc}"
            ) from exc
        results = self.probe_all(endpoints)
        survivors = [r.address for r in results if r.alive]

        if not survivors:
            raise NoRelaysAlive(
                f"No relays alive for epoch {epoch} ({len(endpoints)} probed)"
            )

        commitment = MerkleCommitment.build(epoch, survivors)
        try:
            record = self._anchor.publish_root(epoch, commitment.root, sender=self._sender)
        except Exception as exc:
            raise PublishFailed(
                f"Publishing root {commitment.root_hex} for epoch {epoch} failed: {exc}"
            ) from exc

        logger.info(
            "Epoch %d: %d/%d relays alive, root %s published",
            epoch, len(survivors), len(endpoints), commitment.root_hex,
        )
        if self._event_log is not None:
            payload = commitment.to_payload()
            payload["probed"] = len(endpoints)
            payload["tx_hash"] = record.tx_hash
            self._event_log.record(EventKind.ROOT_PUBLISHED, record.published_by, **payload)
        return commitment, record

    def try_cycle(self) -> CycleResult:
        """Run one cycle, reporting an aborted cycle instead of raising."""
        try:
            commitment, record = self.run_cycle()
        except HeartbeatError as exc:
            logger.warning("Heartbeat cycle aborted: %s", exc)
            if self._event_log is not None:
                self._event_log.record(
                    EventKind.CYCLE_ABORTED, self._sender or "oracle",
                    reason=type(exc).__name__, detail=str(exc),
                )
            return CycleResult(success=False, errors=[str(exc)])
        return CycleResult(
            success=True,
            data={
                "epoch": commitment.epoch,
                "root": commitment.root_hex,
                "relays": list(commitment.relays),
                "tx_hash": record.tx_hash,
            },
        )

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def probe_all(self, endpoints: Sequence[RelayEndpoint]) -> list[ProbeResult]:
        """Probe every endpoint concurrently and wait for all to settle.

        A probe still running at the barrier deadline counts as dead.
        Results come back in directory order.
        """
        if not endpoints:
            return []

        workers = min(self._max_workers, len(endpoints))
        rounds = math.ceil(len(endpoints) / workers)
        deadline = rounds * self._probe.timeout_seconds + BARRIER_GRACE_SECONDS

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gunrelay-probe")
        try:
            futures: list[Future[ProbeResult]] = [
                executor.submit(self._probe.probe, endpoint) for endpoint in endpoints
            ]
            wait(futures, timeout=deadline)
            results: list[ProbeResult] = []
            for endpoint, future in zip(endpoints, futures):
                if future.done() and not future.cancelled() and future.exception() is None:
                    results.append(future.result())
                else:
                    future.cancel()
                    if future.done() and not future.cancelled():
                        logger.warning(
                            "Probe of %s raised: %s", endpoint.url, future.exception(),
                        )
                    else:
                        logger.debug("Probe of %s missed the barrier deadline", endpoint.url)
                    results.append(
                        ProbeResult(address=endpoint.address, url=endpoint.url, alive=False)
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results


def commitment_from_log(event_log: EventLog, epoch: int) -> Optional[MerkleCommitment]:
    """Rebuild the most recent commitment published for ``epoch``."""
    for event in reversed(event_log.events(EventKind.ROOT_PUBLISHED)):
        if int(event.payload["epoch"]) == epoch:
            return MerkleCommitment.from_payload(event.payload)
    return None
