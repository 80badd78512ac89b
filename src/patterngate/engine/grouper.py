"""
Instrument Grouper

Partitions a signal set by instrument and then by canonical timeframe.
Timeframe buckets are ordered highest weight first (unknown tags last),
signals within a bucket by confidence descending with ties broken newest
first. The confluence classifier reads the first active bucket as its
anchor, so this ordering is part of the contract.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.signals import PatternSignal, instrument_display_name
from ..models.timeframes import order_index, weight as timeframe_weight
from .confluence import ConfluenceVerdict, classify_confluence
from .narrator import Finding, TimeframeFinding, narrate, summarize_timeframes
from .normalizer import is_active
from .scoring import strength_score


def _timestamp(signal: PatternSignal) -> float:
    """Sort key helper: undated signals behave as the oldest."""
    return signal.triggered_at.timestamp() if signal.triggered_at else float("-inf")


def confidence_order_key(signal: PatternSignal):
    return (-signal.confidence, -_timestamp(signal))


def newest_first_key(signal: PatternSignal):
    return -_timestamp(signal)


class TimeframeGroup(BaseModel):
    """All signals one instrument has on one timeframe."""

    timeframe: str
    signals: List[PatternSignal] = Field(default_factory=list, description="Active signals, confidence desc")
    expired_signals: List[PatternSignal] = Field(default_factory=list, description="Expired or closed signals, confidence desc")

    model_config = ConfigDict(frozen=True)

    @property
    def weight(self) -> int:
        return timeframe_weight(self.timeframe)

    @property
    def is_fully_expired(self) -> bool:
        return not self.signals and bool(self.expired_signals)

    @property
    def all_signals(self) -> List[PatternSignal]:
        return sorted(self.signals + self.expired_signals, key=confidence_order_key)


class InstrumentGroup(BaseModel):
    """
    One instrument's signals grouped by timeframe, plus derived outputs.

    ``verdict``, ``strength``, ``findings`` and ``timeframe_findings`` are
    filled by :func:`analyze_group`; a bare :func:`group_signals` result
    leaves them empty.
    """

    instrument_id: str
    display_name: str = ""
    evaluated_at: datetime
    timeframes: List[TimeframeGroup] = Field(default_factory=list)
    all_signals: List[PatternSignal] = Field(default_factory=list, description="Active + expired, newest first")

    verdict: Optional[ConfluenceVerdict] = None
    strength: Optional[int] = None
    findings: List[Finding] = Field(default_factory=list)
    timeframe_findings: List[TimeframeFinding] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def active_signals(self) -> List[PatternSignal]:
        return [s for tf in self.timeframes for s in tf.signals]

    @property
    def expired_signals(self) -> List[PatternSignal]:
        return [s for tf in self.timeframes for s in tf.expired_signals]

    @property
    def active_timeframes(self) -> List[TimeframeGroup]:
        return [tf for tf in self.timeframes if tf.signals]

    @property
    def latest_triggered_at(self) -> Optional[datetime]:
        dated = [s.triggered_at for s in self.all_signals if s.triggered_at is not None]
        return max(dated) if dated else None

    @property
    def is_analyzed(self) -> bool:
        return self.verdict is not None and self.strength is not None


def _build_group(instrument_id: str, signals: List[PatternSignal], now: datetime) -> InstrumentGroup:
    buckets: Dict[str, List[PatternSignal]] = defaultdict(list)
    for signal in signals:
        buckets[signal.timeframe or "N/A"].append(signal)

    timeframes: List[TimeframeGroup] = []
    for tf in sorted(buckets, key=lambda tag: (order_index(tag), tag)):
        active = []
        expired = []
        for signal in sorted(buckets[tf], key=confidence_order_key):
            (active if is_active(signal, now) else expired).append(signal)
        timeframes.append(TimeframeGroup(timeframe=tf, signals=active, expired_signals=expired))

    ordered = sorted(signals, key=newest_first_key)
    display_name = instrument_display_name(signals, instrument_id)

    return InstrumentGroup(
        instrument_id=instrument_id,
        display_name=display_name,
        evaluated_at=now,
        timeframes=timeframes,
        all_signals=ordered,
    )


def group_signals(signals: Iterable[PatternSignal], now: datetime) -> List[InstrumentGroup]:
    """Group signals per instrument, instruments in order of first appearance."""
    by_instrument: Dict[str, List[PatternSignal]] = defaultdict(list)
    for signal in signals:
        by_instrument[signal.instrument_id].append(signal)

    return [
        _build_group(instrument_id, instrument_signals, now)
        for instrument_id, instrument_signals in by_instrument.items()
    ]


def analyze_group(group: InstrumentGroup) -> InstrumentGroup:
    """Return a copy of the group with verdict, score and findings populated."""
    verdict = classify_confluence(group)
    return group.model_copy(update={
        "verdict": verdict,
        "strength": strength_score(group),
        "findings": narrate(group),
        "timeframe_findings": summarize_timeframes(group, verdict),
    })


def build_instrument_groups(
    signals: Iterable[PatternSignal],
    now: datetime,
    sort: str = "latest",
) -> List[InstrumentGroup]:
    """
    Group and analyze every instrument in the signal set.

    Args:
        signals: Normalized signals for the evaluation horizon
        now: Evaluation instant for expiry
        sort: 'latest' (newest trigger first), 'score' (strength desc) or 'instrument'

    Returns:
        Analyzed instrument groups
    """
    groups = [analyze_group(group) for group in group_signals(signals, now)]

    if sort == "score":
        groups.sort(key=lambda g: (-(g.strength or 0), g.instrument_id))
    elif sort == "instrument":
        groups.sort(key=lambda g: g.instrument_id)
    elif sort == "latest":
        groups.sort(key=lambda g: (
            -(g.latest_triggered_at.timestamp() if g.latest_triggered_at else float("-inf")),
            g.instrument_id,
        ))
    else:
        raise ValueError(f"Unknown sort order: {sort}")

    return groups
