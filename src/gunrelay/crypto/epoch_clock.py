"""Epoch clock — maps wall-clock time to heartbeat epochs.

An epoch is the atomic time unit of the relay heartbeat. Each epoch gets
at most one published Merkle root attesting which relays were reachable.

Wall-clock time is the only epoch source. The anchor's last-published
epoch is informational and never used to tag a new cycle.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

DEFAULT_EPOCH_DURATION_SECONDS = 3600


class EpochClock:
    """Pure function of time: ``epoch = floor(unix_seconds / duration)``.

    Usage:
        clock = EpochClock()
        epoch = clock.current_epoch()
        start = clock.epoch_start(epoch)
    """

    def __init__(
        self,
        duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS,
        now: Optional[Callable[[], float]] = None,
    ) -> None:
        if duration_seconds <= 0:
            raise ValueError(f"Epoch duration must be positive, got {duration_seconds}")
        self._duration = int(duration_seconds)
        self._now = now or time.time

    @property
    def duration_seconds(self) -> int:
        return self._duration

    def epoch_at(self, unix_seconds: float) -> int:
        """Epoch containing the given unix timestamp."""
        if unix_seconds < 0:
            raise ValueError("Timestamps before the unix epoch have no heartbeat epoch")
        return int(unix_seconds // self._duration)

    def current_epoch(self) -> int:
        return self.epoch_at(self._now())

    def epoch_start(self, epoch: int) -> int:
        """Unix timestamp at which ``epoch`` begins."""
        return epoch * self._duration

    def seconds_until_next(self) -> float:
        """Seconds remaining before the next epoch boundary."""
        now = self._now()
        return self.epoch_start(self.epoch_at(now) + 1) - now
