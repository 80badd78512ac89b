"""
Signal Snapshot Store

Holds the single logical engine state: the current signal set keyed by
pattern_id. Every merge produces a new immutable SignalSnapshot and
notifies subscribers; derived computations read snapshots only and never
mutate them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from ..models.signals import PatternSignal

SnapshotCallback = Callable[["SignalSnapshot"], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SignalSnapshot:
    """Immutable view of the signal set at one merge."""

    version: int
    signals: Mapping[str, PatternSignal]
    created_at: datetime = field(default_factory=_utcnow)

    def __len__(self) -> int:
        return len(self.signals)

    def __iter__(self):
        return iter(self.signals.values())

    def get(self, pattern_id: str) -> Optional[PatternSignal]:
        return self.signals.get(pattern_id)

    def values(self) -> List[PatternSignal]:
        return list(self.signals.values())

    def instruments(self) -> List[str]:
        """Distinct instrument ids, sorted."""
        return sorted({signal.instrument_id for signal in self.signals.values()})

    def for_instrument(self, instrument_id: str) -> List[PatternSignal]:
        return [s for s in self.signals.values() if s.instrument_id == instrument_id]

    def within_horizon(self, now: datetime, hours: Optional[float]) -> List[PatternSignal]:
        """
        Signals triggered within the last ``hours``.

        Undated signals are always kept; ``hours=None`` returns everything.
        """
        if hours is None:
            return self.values()
        cutoff = now - timedelta(hours=hours)
        return [
            s for s in self.signals.values()
            if s.triggered_at is None or s.triggered_at >= cutoff
        ]


EMPTY_SNAPSHOT = SignalSnapshot(version=0, signals=MappingProxyType({}))


class SignalStore:
    """
    Single-writer store with last-writer-wins merge by pattern_id.

    Records are replaced whole, never field-merged, so a redelivered or
    out-of-order update can not leave a mix of old and new fields.
    """

    def __init__(self):
        self._snapshot: SignalSnapshot = EMPTY_SNAPSHOT
        self._subscribers: List[SnapshotCallback] = []
        self.logger = logging.getLogger(__name__)

    @property
    def snapshot(self) -> SignalSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def subscribe(self, callback: SnapshotCallback) -> None:
        """Register a callback invoked with every new snapshot."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: SnapshotCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def apply(self, batch: Iterable[PatternSignal]) -> SignalSnapshot:
        """
        Merge a batch of signals into a new snapshot.

        Later records in the batch win over earlier ones with the same
        pattern_id. Re-applying an identical batch yields identical content.
        """
        merged: Dict[str, PatternSignal] = dict(self._snapshot.signals)
        replaced = 0
        added = 0
        for signal in batch:
            if signal.pattern_id in merged:
                replaced += 1
            else:
                added += 1
            merged[signal.pattern_id] = signal

        self.logger.debug(
            f"Merged batch into snapshot v{self.version + 1}: {added} new, {replaced} replaced"
        )
        return self._publish(merged)

    def prune(self, now: datetime, retention_hours: float) -> SignalSnapshot:
        """Drop signals triggered before the retention cutoff."""
        cutoff = now - timedelta(hours=retention_hours)
        kept = {
            pid: s for pid, s in self._snapshot.signals.items()
            if s.triggered_at is None or s.triggered_at >= cutoff
        }
        dropped = len(self._snapshot.signals) - len(kept)
        if dropped == 0:
            return self._snapshot
        self.logger.info(f"Pruned {dropped} signals older than {retention_hours}h")
        return self._publish(kept)

    def clear(self) -> int:
        """Remove every signal. Returns how many were cleared."""
        cleared = len(self._snapshot.signals)
        self._publish({})
        self.logger.info(f"Cleared {cleared} signals")
        return cleared

    def _publish(self, signals: Dict[str, PatternSignal]) -> SignalSnapshot:
        snapshot = SignalSnapshot(
            version=self._snapshot.version + 1,
            signals=MappingProxyType(signals),
        )
        self._snapshot = snapshot

        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Error in snapshot callback: {e}")

        return snapshot
