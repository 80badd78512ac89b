"""
Pattern Engine

Async facade over the snapshot store and the pure analysis functions.
Feed batches are merged into the store; every recomputation reads the
current snapshot at the current clock time and publishes a fresh
EngineView to presentation callbacks. Nothing derived is cached between
snapshots.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from ..config import Config
from ..models.signals import PatternSignal
from .gate import GateContext, GateResult, RejectionReason, evaluate_trade
from .grouper import InstrumentGroup, analyze_group, build_instrument_groups, group_signals
from .normalizer import parse_batch
from .search import ConfluenceMatch, ConfluenceRule, search_confluence
from .stats import PatternStats, PatternSummary, SignalFilter, pattern_stats, summarize
from .store import SignalSnapshot, SignalStore

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EngineStatus:
    """Engine operational status tracking"""

    def __init__(self):
        self.is_running: bool = False
        self.start_time: Optional[datetime] = None
        self.batches_ingested: int = 0
        self.signals_ingested: int = 0
        self.records_skipped: int = 0
        self.recomputations: int = 0
        self.last_recompute_time: Optional[datetime] = None
        self.error_count: int = 0
        self.last_error: Optional[str] = None


class EngineView(BaseModel):
    """Everything a presentation layer needs for one recomputation."""

    version: int
    evaluated_at: datetime
    groups: List[InstrumentGroup] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def get(self, instrument_id: str) -> Optional[InstrumentGroup]:
        return next((g for g in self.groups if g.instrument_id == instrument_id), None)


class PatternEngine:
    """
    Single-writer engine over the pattern signal feed.

    Recomputation happens after every ingest (when enabled) and on a fixed
    cadence while running, so expiry always reflects the clock at
    recomputation time rather than the time a signal arrived.
    """

    def __init__(self, config: Optional[Config] = None, clock: Optional[Clock] = None):
        self.config = config or Config()
        self.clock: Clock = clock or utc_now

        self.store = SignalStore()
        self.status = EngineStatus()
        self.view_callbacks: List[Callable[[EngineView], None]] = []
        self.error_callbacks: List[Callable[[Exception], None]] = []
        self._last_view: Optional[EngineView] = None

        self._background_tasks: Set[asyncio.Task] = set()
        self._shutdown_event = asyncio.Event()

        self.logger = logging.getLogger(__name__)

    @property
    def snapshot(self) -> SignalSnapshot:
        return self.store.snapshot

    @property
    def last_view(self) -> Optional[EngineView]:
        return self._last_view

    async def start(self) -> None:
        """Start the background recompute loop"""
        if self.status.is_running:
            self.logger.warning("Pattern engine is already running")
            return

        self.logger.info("Starting pattern engine...")
        self._shutdown_event.clear()

        task = asyncio.create_task(self._recompute_task())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        self.status.is_running = True
        self.status.start_time = self.clock()
        self.logger.info(
            f"Pattern engine started (recompute every {self.config.engine.recompute_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the background recompute loop"""
        if not self.status.is_running:
            self.logger.warning("Pattern engine is not running")
            return

        self.logger.info("Stopping pattern engine...")
        self._shutdown_event.set()

        for task in self._background_tasks:
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        self.status.is_running = False
        self.logger.info("Pattern engine stopped")

    async def ingest(self, records: Iterable[Any]) -> SignalSnapshot:
        """
        Merge a feed batch of raw records and/or PatternSignal objects.

        Malformed records are skipped individually; the rest of the batch
        is still merged.
        """
        records = list(records)
        signals = parse_batch(records)
        skipped = len(records) - len(signals)

        snapshot = self.store.apply(signals)
        self.status.batches_ingested += 1
        self.status.signals_ingested += len(signals)
        self.status.records_skipped += skipped

        if self.config.engine.recompute_on_update:
            await self.recompute()
        return snapshot

    async def load_snapshot(self, records: Iterable[Any]) -> SignalSnapshot:
        """Replace the whole signal set with an initial bulk fetch."""
        self.store.clear()
        snapshot = await self.ingest(records)
        self.logger.info(f"Loaded initial snapshot with {len(snapshot)} signals")
        return snapshot

    async def recompute(self) -> EngineView:
        """Rebuild every instrument group at the current clock and notify callbacks."""
        now = self.clock()
        snapshot = self.store.snapshot
        view = EngineView(
            version=snapshot.version,
            evaluated_at=now,
            groups=build_instrument_groups(self._horizon_signals(snapshot, now), now),
        )
        self._last_view = view
        self.status.recomputations += 1
        self.status.last_recompute_time = now

        for callback in list(self.view_callbacks):
            try:
                callback(view)
            except Exception as e:
                self.logger.error(f"Error in view callback: {e}")
                await self._handle_error(e)

        self.logger.debug(f"Recomputed view v{view.version}: {len(view.groups)} instruments")
        return view

    async def _recompute_task(self) -> None:
        """Background task re-evaluating expiry and pruning old signals"""
        interval = self.config.engine.recompute_interval_seconds
        while not self._shutdown_event.is_set():
            try:
                self.store.prune(self.clock(), self.config.engine.retention_hours)
                await self.recompute()
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in recompute task: {e}")
                await self._handle_error(e)
                await asyncio.sleep(interval)

    async def _handle_error(self, error: Exception) -> None:
        """Record errors and notify callbacks"""
        self.status.error_count += 1
        self.status.last_error = str(error)

        for callback in self.error_callbacks:
            try:
                callback(error)
            except Exception as e:
                self.logger.error(f"Error in error callback: {e}")

    def _horizon_signals(self, snapshot: SignalSnapshot, now: datetime) -> List[PatternSignal]:
        return snapshot.within_horizon(now, self.config.engine.horizon_hours)

    # Public query API

    def add_view_callback(self, callback: Callable[[EngineView], None]) -> None:
        """Add a callback for recomputed views"""
        self.view_callbacks.append(callback)

    def add_error_callback(self, callback: Callable[[Exception], None]) -> None:
        self.error_callbacks.append(callback)

    def instrument_groups(self, sort: str = "latest") -> List[InstrumentGroup]:
        now = self.clock()
        snapshot = self.store.snapshot
        return build_instrument_groups(self._horizon_signals(snapshot, now), now, sort=sort)

    def analyze(self, instrument_id: str) -> Optional[InstrumentGroup]:
        """Analyzed group for one instrument, None if it has no signals."""
        now = self.clock()
        signals = [
            s for s in self._horizon_signals(self.store.snapshot, now)
            if s.instrument_id == instrument_id
        ]
        groups = group_signals(signals, now)
        return analyze_group(groups[0]) if groups else None

    def search(self, rules: Iterable[ConfluenceRule]) -> List[ConfluenceMatch]:
        """Confluence search over the full signal set, regardless of expiry."""
        return search_confluence(rules, self.store.snapshot.values())

    def propose_trade(self, instrument_id: str, context: GateContext) -> GateResult:
        group = self.analyze(instrument_id)
        if group is None:
            return GateResult(
                instrument_id=instrument_id,
                rejection=RejectionReason.NO_CANDIDATE,
                detail="No signals for instrument",
            )
        return evaluate_trade(group, context, self.config.gate)

    def filter_signals(self, signal_filter: SignalFilter) -> List[PatternSignal]:
        return signal_filter.apply(self.store.snapshot.values())

    def summary(self) -> PatternSummary:
        return summarize(self.store.snapshot.values(), self.clock())

    def pattern_stats(self) -> Dict[str, PatternStats]:
        return pattern_stats(self.store.snapshot.values())

    def get_status(self) -> EngineStatus:
        return self.status
