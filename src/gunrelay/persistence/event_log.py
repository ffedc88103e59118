"""Append-only event log — the audit record of membership and oracle actions.

Every ledger mutation and every published root produces an event record.
Events are immutable once written. The log serves as:
1. The audit trail for joins, leaves, deposits and releases.
2. The record of each epoch's survivor set, from which relays rebuild
   their own inclusion proofs.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4


class EventKind(str, enum.Enum):
    """Classification of membership and oracle events."""
    RELAY_JOINED = "relay_joined"
    RELAY_LEFT = "relay_left"
    FUNDS_DEPOSITED = "funds_deposited"
    SUBSCRIBED = "subscribed"
    PRICE_CHANGED = "price_changed"
    FUNDS_RELEASED = "funds_released"
    ROOT_PUBLISHED = "root_published"
    CYCLE_ABORTED = "cycle_aborted"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """One immutable log entry; ``event_hash`` covers every other field."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        event_id: Optional[str] = None,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        event_id = event_id or f"{event_kind.value}_{uuid4().hex[:12]}"
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=stamp,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(event_id, event_kind.value, stamp, actor_id, payload),
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "event_id": self.event_id,
                "event_kind": self.event_kind.value,
                "timestamp_utc": self.timestamp_utc,
                "actor_id": self.actor_id,
                "payload": self.payload,
                "event_hash": self.event_hash,
            },
            sort_keys=True,
            ensure_ascii=False,
        )

    @staticmethod
    def from_json(line: str) -> EventRecord:
        """Parse one stored line. Raises ValueError if its hash does not verify."""
        data = json.loads(line)
        computed = _canonical_hash(
            data["event_id"], data["event_kind"], data["timestamp_utc"],
            data["actor_id"], data["payload"],
        )
        if data["event_hash"] != computed:
            raise ValueError(
                f"Integrity check failed for event {data['event_id']}: "
                f"stored {data['event_hash']}, computed {computed}"
            )
        return EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )


class EventLog:
    """Append-only list of EventRecords, mirrored to a JSONL file when given a path.

    Reloading an existing file re-verifies every record and refuses the
    whole file on the first bad hash or repeated id.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        if storage_path is not None and storage_path.exists():
            self._replay(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append ``event``. A repeated event_id raises ValueError."""
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        self._events.append(event)
        self._event_ids.add(event.event_id)
        if self._storage_path is not None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(event.to_json() + "\n")

    def record(self, kind: EventKind, actor_id: str, **payload: Any) -> EventRecord:
        event = EventRecord.create(kind, actor_id, payload)
        self.append(event)
        return event

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        return [e for e in self._events if kind is None or e.event_kind == kind]

    def _replay(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    event = EventRecord.from_json(line)
                except ValueError as exc:
                    raise ValueError(f"{path}:{line_num}: {exc}") from exc
                if event.event_id in self._event_ids:
                    raise ValueError(
                        f"{path}:{line_num}: Duplicate event ID on recovery: {event.event_id}"
                    )
                self._events.append(event)
                self._event_ids.add(event.event_id)
