"""
Pattern statistics and filtering.

Aggregate counters over a signal set (active vs completed, win rate,
realised P&L) and a per-pattern-type breakdown, plus the filter used to
narrow a signal list by type, timeframe, direction, confidence band or a
free-text query.
"""

from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from ..models.signals import Direction, PatternSignal, SignalStatus, normalize_pattern_type
from ..models.timeframes import canonical_timeframe
from .normalizer import is_active


class ConfidenceBand(str, Enum):
    HIGH = "HIGH"       # >= 0.7
    MEDIUM = "MEDIUM"   # 0.4 - 0.7
    LOW = "LOW"         # < 0.4

    @classmethod
    def of(cls, confidence: float) -> "ConfidenceBand":
        if confidence >= 0.7:
            return cls.HIGH
        if confidence >= 0.4:
            return cls.MEDIUM
        return cls.LOW


class PatternSummary(BaseModel):
    """Headline counters for a signal set."""

    total_active: int = 0
    total_completed: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    active_by_type: Dict[str, int] = Field(default_factory=dict)


class PatternStats(BaseModel):
    """Outcome statistics for one pattern type."""

    pattern_type: str
    occurrences: int = 0
    wins: int = 0
    losses: int = 0
    total_pnl: float = 0.0

    @property
    def completed(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        return self.wins / self.completed if self.completed else 0.0

    @property
    def avg_pnl(self) -> float:
        return self.total_pnl / self.completed if self.completed else 0.0


def summarize(signals: Iterable[PatternSignal], now: datetime) -> PatternSummary:
    """
    Summary counters.

    Completed means COMPLETED_WIN or COMPLETED_LOSS; active means not
    completed and not expired at ``now``.
    """
    summary = PatternSummary()
    active_by_type: Dict[str, int] = defaultdict(int)

    for signal in signals:
        if signal.status.is_completed:
            summary.total_completed += 1
            if signal.status is SignalStatus.COMPLETED_WIN:
                summary.wins += 1
            else:
                summary.losses += 1
            summary.total_pnl += signal.actual_pnl or 0.0
        elif is_active(signal, now):
            summary.total_active += 1
            active_by_type[signal.pattern_type] += 1

    if summary.total_completed:
        summary.win_rate = summary.wins / summary.total_completed
    summary.total_pnl = round(summary.total_pnl, 2)
    summary.active_by_type = dict(active_by_type)
    return summary


def pattern_stats(signals: Iterable[PatternSignal]) -> Dict[str, PatternStats]:
    """Per pattern type: occurrences and realised outcomes."""
    stats: Dict[str, PatternStats] = {}
    for signal in signals:
        entry = stats.get(signal.pattern_type)
        if entry is None:
            entry = stats[signal.pattern_type] = PatternStats(pattern_type=signal.pattern_type)
        entry.occurrences += 1
        if signal.status is SignalStatus.COMPLETED_WIN:
            entry.wins += 1
        elif signal.status is SignalStatus.COMPLETED_LOSS:
            entry.losses += 1
        if signal.status.is_completed:
            entry.total_pnl += signal.actual_pnl or 0.0
    return stats


class SignalFilter(BaseModel):
    """Conjunctive filter; an empty criterion matches everything."""

    pattern_types: Set[str] = Field(default_factory=set)
    timeframes: Set[str] = Field(default_factory=set)
    direction: Optional[Direction] = None
    confidence_bands: Set[ConfidenceBand] = Field(default_factory=set)
    query: str = ""

    @field_validator("pattern_types", mode="before")
    @classmethod
    def canonicalize_types(cls, v):
        return {normalize_pattern_type(t) for t in (v or [])}

    @field_validator("timeframes", mode="before")
    @classmethod
    def canonicalize_timeframes(cls, v):
        return {canonical_timeframe(t) for t in (v or [])}

    def matches(self, signal: PatternSignal) -> bool:
        if self.pattern_types and signal.pattern_type not in self.pattern_types:
            return False
        if self.timeframes and signal.timeframe not in self.timeframes:
            return False
        if self.direction is not None and signal.direction is not self.direction:
            return False
        if self.confidence_bands and ConfidenceBand.of(signal.confidence) not in self.confidence_bands:
            return False
        if self.query:
            needle = self.query.strip().lower()
            haystack = " ".join([
                signal.instrument_id,
                signal.company_name,
                signal.symbol,
                signal.pattern_type.replace("_", " "),
            ]).lower()
            if needle not in haystack:
                return False
        return True

    def apply(self, signals: Iterable[PatternSignal]) -> List[PatternSignal]:
        return [s for s in signals if self.matches(s)]
